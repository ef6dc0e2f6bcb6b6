"""httpx client for the Vertesia agent runner API."""

from __future__ import annotations

import json
import logging
from contextlib import aclosing
from typing import Any, AsyncIterator, Callable
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from ..config import VertesiaConfig
from ..models import AgentMessage, ConversationRequest, RunHandle, StreamEnd

logger = logging.getLogger(__name__)

MessageHandler = Callable[[AgentMessage], "StreamEnd | None"]

_ERROR_EXCERPT_CHARS = 320


class BackendError(Exception):
    """Raised when the agent backend cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StreamError(BackendError):
    """Raised when a message stream fails to open or breaks mid-way."""


def create_client(config: VertesiaConfig) -> "VertesiaClient":
    return VertesiaClient(config)


def _excerpt(text: str) -> str:
    text = text.strip()
    if len(text) > _ERROR_EXCERPT_CHARS:
        return text[:_ERROR_EXCERPT_CHARS] + "..."
    return text


def _parse_payload(payload_raw: str) -> list[AgentMessage]:
    """Decode one event payload into messages, skipping anything undecodable."""
    try:
        decoded = json.loads(payload_raw)
    except json.JSONDecodeError:
        logger.warning("Skipping non-JSON stream payload: %s", _excerpt(payload_raw))
        return []

    items = decoded if isinstance(decoded, list) else [decoded]
    messages: list[AgentMessage] = []
    for item in items:
        if not isinstance(item, dict):
            logger.warning("Skipping non-object stream payload: %r", item)
            continue
        try:
            messages.append(AgentMessage.model_validate(item))
        except ValidationError as e:
            logger.warning("Skipping malformed agent message: %s", e)
    return messages


async def iter_sse_messages(lines: AsyncIterator[str]) -> AsyncIterator[AgentMessage]:
    """Yield agent messages from server-sent event lines.

    Consecutive ``data:`` lines form one event; a blank line dispatches it.
    A bare JSON object line is accepted as a complete event.
    """
    data_lines: list[str] = []

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")

        if not line.strip():
            if data_lines:
                payload = "\n".join(data_lines)
                data_lines = []
                if payload.strip() == "[DONE]":
                    return
                for message in _parse_payload(payload):
                    yield message
            continue

        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip(" "))
            continue
        if line.startswith(("event:", "id:", "retry:")):
            continue
        if line.lstrip().startswith(("{", "[")):
            for message in _parse_payload(line):
                yield message
            continue
        logger.debug("Ignoring stream line: %s", _excerpt(line))

    if data_lines:
        payload = "\n".join(data_lines)
        if payload.strip() != "[DONE]":
            for message in _parse_payload(payload):
                yield message


class VertesiaClient:
    """Starts conversation runs, streams their messages and signals them.

    Usage::

        async with create_client(config.vertesia) as client:
            run = await client.execute_async(ConversationRequest.for_task("hi", "MultipurposeAgent"))
            reason = await client.stream_messages(run.run_id, on_message, since=0)
            await client.send_signal(run.workflow_id, run.run_id, "UserInput", {"message": "ok"})
    """

    def __init__(self, config: VertesiaConfig, http_client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._http = http_client or self._build_http_client()

    def _build_http_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(
            float(self.config.request_timeout),
            connect=float(self.config.connect_timeout),
        )
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {self.config.api_key}",
                "Accept": "application/json",
            },
        )

    async def __aenter__(self) -> VertesiaClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        logger.debug("%s %s", method, path)
        try:
            resp = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise BackendError(f"{method} {path} failed: {e}") from e

        if resp.is_error:
            raise BackendError(
                f"{method} {path} returned HTTP {resp.status_code}: {_excerpt(resp.text)}",
                status_code=resp.status_code,
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise BackendError(f"{method} {path} returned invalid JSON") from e

    async def execute_async(self, request: ConversationRequest) -> RunHandle:
        data = await self._request_json("POST", "/execute/async", json=request.model_dump())
        try:
            return RunHandle.model_validate(data)
        except ValidationError as e:
            raise BackendError(f"Unexpected response starting conversation: {e}") from e

    async def stream_messages(self, run_id: str, on_message: MessageHandler, since: int = 0) -> StreamEnd | None:
        """Stream messages newer than ``since`` until the handler asks to stop.

        ``on_message`` returns ``None`` to keep receiving or a :class:`StreamEnd`
        to close the stream; that reason is returned. ``None`` means the
        backend ended the stream on its own.
        """
        path = f"/workflows/runs/{quote(run_id, safe='')}/stream"
        logger.debug("GET %s since=%d", path, since)
        # Agent runs can stay silent for a long time; only connecting is bounded.
        timeout = httpx.Timeout(None, connect=float(self.config.connect_timeout))
        try:
            async with self._http.stream(
                "GET",
                path,
                params={"since": since},
                headers={"Accept": "text/event-stream"},
                timeout=timeout,
            ) as resp:
                if resp.is_error:
                    body = (await resp.aread()).decode("utf-8", errors="replace")
                    raise StreamError(
                        f"GET {path} returned HTTP {resp.status_code}: {_excerpt(body)}",
                        status_code=resp.status_code,
                    )
                async with aclosing(iter_sse_messages(resp.aiter_lines())) as messages:
                    async for message in messages:
                        reason = on_message(message)
                        if reason is not None:
                            logger.debug("Stream for run %s stopped: %s", run_id, reason)
                            return StreamEnd(reason)
        except httpx.HTTPError as e:
            raise StreamError(f"Message stream for run {run_id} failed: {e}") from e

        logger.debug("Stream for run %s ended by backend", run_id)
        return None

    async def send_signal(self, workflow_id: str, run_id: str, signal: str, payload: dict[str, Any]) -> None:
        path = f"/workflows/{quote(workflow_id, safe='')}/{quote(run_id, safe='')}/signal/{quote(signal, safe='')}"
        await self._request_json("POST", path, json=payload)
