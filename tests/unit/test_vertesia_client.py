"""Tests for services/vertesia_client.py using httpx.MockTransport."""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Callable

import httpx
import pytest

from agent_cli.config import VertesiaConfig
from agent_cli.models import AgentMessage, ConversationRequest, MessageKind, StreamEnd
from agent_cli.services.vertesia_client import (
    BackendError,
    StreamError,
    VertesiaClient,
    iter_sse_messages,
)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _config() -> VertesiaConfig:
    return VertesiaConfig(api_key="sk-test", site="api-preview.vertesia.io")


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> VertesiaClient:
    config = _config()
    http = httpx.AsyncClient(base_url=config.base_url, transport=httpx.MockTransport(handler))
    return VertesiaClient(config, http_client=http)


def _sse(*messages: dict[str, Any]) -> bytes:
    return "".join(f"data: {json.dumps(m)}\n\n" for m in messages).encode()


async def _lines(*lines: str) -> AsyncIterator[str]:
    for line in lines:
        yield line


async def _collect(lines: AsyncIterator[str]) -> list[AgentMessage]:
    return [m async for m in iter_sse_messages(lines)]


# ---------------------------------------------------------------------------
# SSE parsing
# ---------------------------------------------------------------------------


class TestIterSseMessages:
    @pytest.mark.asyncio
    async def test_single_events(self) -> None:
        msgs = await _collect(
            _lines(
                'data: {"type": "update", "message": "one", "timestamp": 1}',
                "",
                'data: {"type": "complete", "message": "two", "timestamp": 2}',
                "",
            )
        )
        assert [m.message for m in msgs] == ["one", "two"]
        assert msgs[1].type is MessageKind.COMPLETE

    @pytest.mark.asyncio
    async def test_multiline_data_joined(self) -> None:
        msgs = await _collect(_lines('data: {"type": "update",', 'data: "message": "joined"}', ""))
        assert [m.message for m in msgs] == ["joined"]

    @pytest.mark.asyncio
    async def test_comments_and_fields_skipped(self) -> None:
        msgs = await _collect(
            _lines(": keep-alive", "event: message", "id: 7", "retry: 1000", 'data: {"message": "x"}', "")
        )
        assert [m.message for m in msgs] == ["x"]

    @pytest.mark.asyncio
    async def test_done_marker_ends_stream(self) -> None:
        msgs = await _collect(_lines('data: {"message": "a"}', "", "data: [DONE]", "", 'data: {"message": "b"}', ""))
        assert [m.message for m in msgs] == ["a"]

    @pytest.mark.asyncio
    async def test_bad_json_skipped(self) -> None:
        msgs = await _collect(_lines("data: not-json", "", "data: 42", "", 'data: {"message": "ok"}', ""))
        assert [m.message for m in msgs] == ["ok"]

    @pytest.mark.asyncio
    async def test_trailing_event_without_blank_line(self) -> None:
        msgs = await _collect(_lines('data: {"message": "tail"}'))
        assert [m.message for m in msgs] == ["tail"]

    @pytest.mark.asyncio
    async def test_bare_json_lines(self) -> None:
        msgs = await _collect(_lines('{"message": "n1"}', '[{"message": "n2"}, {"message": "n3"}]'))
        assert [m.message for m in msgs] == ["n1", "n2", "n3"]


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class TestBuildHttpClient:
    @pytest.mark.asyncio
    async def test_auth_and_base_url(self) -> None:
        client = VertesiaClient(_config())
        try:
            assert client._http.headers["Authorization"] == "Bearer sk-test"
            assert str(client._http.base_url).rstrip("/") == "https://api-preview.vertesia.io/api/v1"
        finally:
            await client.aclose()


class TestExecuteAsync:
    @pytest.mark.asyncio
    async def test_posts_conversation_request(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"runId": "run-1", "workflowId": "wf-1"})

        async with _client(handler) as client:
            run = await client.execute_async(ConversationRequest.for_task("task", "MultipurposeAgent", True))

        assert run.run_id == "run-1"
        assert run.workflow_id == "wf-1"
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/api/v1/execute/async"
        assert json.loads(seen[0].content) == {
            "type": "conversation",
            "interaction": "MultipurposeAgent",
            "prompt_data": {"task": "task"},
            "interactive": True,
        }

    @pytest.mark.asyncio
    async def test_http_error_raises(self) -> None:
        async with _client(lambda r: httpx.Response(401, text="bad key")) as client:
            with pytest.raises(BackendError, match="HTTP 401: bad key") as exc_info:
                await client.execute_async(ConversationRequest.for_task("t", "a"))
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unexpected_body_raises(self) -> None:
        async with _client(lambda r: httpx.Response(200, json={"status": "ok"})) as client:
            with pytest.raises(BackendError, match="Unexpected response"):
                await client.execute_async(ConversationRequest.for_task("t", "a"))

    @pytest.mark.asyncio
    async def test_connection_error_wrapped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        async with _client(handler) as client:
            with pytest.raises(BackendError, match="unreachable"):
                await client.execute_async(ConversationRequest.for_task("t", "a"))


class TestStreamMessages:
    @pytest.mark.asyncio
    async def test_delivers_until_handler_stops(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = _sse(
                {"type": "update", "message": "working", "timestamp": 1},
                {"type": "complete", "message": "done", "timestamp": 2},
                {"type": "update", "message": "after", "timestamp": 3},
            )
            return httpx.Response(200, content=body, headers={"content-type": "text/event-stream"})

        delivered: list[str] = []

        def on_message(msg: AgentMessage) -> StreamEnd | None:
            delivered.append(msg.message)
            return StreamEnd.DONE if msg.type is MessageKind.COMPLETE else None

        async with _client(handler) as client:
            reason = await client.stream_messages("run-1", on_message, since=1234)

        assert reason is StreamEnd.DONE
        assert delivered == ["working", "done"]
        assert seen[0].url.path == "/api/v1/workflows/runs/run-1/stream"
        assert seen[0].url.params["since"] == "1234"
        assert seen[0].headers["Accept"] == "text/event-stream"

    @pytest.mark.asyncio
    async def test_float_timestamp_complete_still_stops(self) -> None:
        body = _sse({"type": "complete", "message": "done", "timestamp": 1700000000000.5})
        delivered: list[AgentMessage] = []

        def on_message(msg: AgentMessage) -> StreamEnd | None:
            delivered.append(msg)
            return StreamEnd.DONE if msg.type is MessageKind.COMPLETE else None

        async with _client(lambda r: httpx.Response(200, content=body)) as client:
            reason = await client.stream_messages("run-1", on_message)

        assert reason is StreamEnd.DONE
        assert delivered[0].timestamp == 1700000000000

    @pytest.mark.asyncio
    async def test_parser_closed_before_return_on_early_stop(self, monkeypatch: pytest.MonkeyPatch) -> None:
        events: list[str] = []

        async def tracking_parser(lines: AsyncIterator[str]) -> AsyncIterator[AgentMessage]:
            try:
                async for message in iter_sse_messages(lines):
                    yield message
            finally:
                events.append("closed")

        monkeypatch.setattr("agent_cli.services.vertesia_client.iter_sse_messages", tracking_parser)
        body = _sse({"type": "idle"}, {"type": "update", "message": "later"})
        async with _client(lambda r: httpx.Response(200, content=body)) as client:
            reason = await client.stream_messages("run-1", lambda m: StreamEnd.INPUT)
            assert events == ["closed"]

        assert reason is StreamEnd.INPUT

    @pytest.mark.asyncio
    async def test_exhausted_stream_returns_none(self) -> None:
        body = _sse({"type": "update", "message": "a"})
        async with _client(lambda r: httpx.Response(200, content=body)) as client:
            reason = await client.stream_messages("run-1", lambda m: None)
        assert reason is None

    @pytest.mark.asyncio
    async def test_raw_string_reason_normalized(self) -> None:
        body = _sse({"type": "idle"})
        async with _client(lambda r: httpx.Response(200, content=body)) as client:
            reason = await client.stream_messages("run-1", lambda m: "input")
        assert reason is StreamEnd.INPUT

    @pytest.mark.asyncio
    async def test_http_error_raises_stream_error(self) -> None:
        async with _client(lambda r: httpx.Response(404, text="no such run")) as client:
            with pytest.raises(StreamError, match="HTTP 404: no such run") as exc_info:
                await client.stream_messages("missing", lambda m: None)
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_transport_error_raises_stream_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadError("connection reset", request=request)

        async with _client(handler) as client:
            with pytest.raises(StreamError, match="connection reset"):
                await client.stream_messages("run-1", lambda m: None)

    @pytest.mark.asyncio
    async def test_run_id_is_quoted(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=b"")

        async with _client(handler) as client:
            await client.stream_messages("a/b", lambda m: None)
        assert seen[0].url.raw_path.startswith(b"/api/v1/workflows/runs/a%2Fb/stream")


class TestSendSignal:
    @pytest.mark.asyncio
    async def test_posts_payload(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(204)

        async with _client(handler) as client:
            result = await client.send_signal("wf-1", "run-1", "UserInput", {"message": "hi"})

        assert result is None
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/api/v1/workflows/wf-1/run-1/signal/UserInput"
        assert json.loads(seen[0].content) == {"message": "hi"}

    @pytest.mark.asyncio
    async def test_failure_raises(self) -> None:
        async with _client(lambda r: httpx.Response(500, text="boom")) as client:
            with pytest.raises(BackendError, match="HTTP 500"):
                await client.send_signal("wf", "run", "UserInput", {"message": "x"})
