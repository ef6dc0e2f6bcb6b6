"""Interactive conversation loop: start a run, stream, prompt, signal."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable

from ..config import DEFAULT_AGENT
from ..models import AgentMessage, ConversationRequest, MessageKind, RunHandle, StreamEnd

if TYPE_CHECKING:
    from ..cli.prompt import UserPrompt
    from ..cli.renderer import MessageRenderer
    from .vertesia_client import VertesiaClient

logger = logging.getLogger(__name__)

USER_INPUT_SIGNAL = "UserInput"

EXIT_OK = 0
EXIT_ERROR = 1

_INPUT_KINDS = frozenset({MessageKind.IDLE, MessageKind.REQUEST_INPUT})


def now_ms() -> int:
    return int(time.time() * 1000)


def stream_decision(message: AgentMessage) -> StreamEnd | None:
    """Whether a delivered message ends the current streaming call."""
    if message.type in _INPUT_KINDS:
        return StreamEnd.INPUT
    if message.type is MessageKind.COMPLETE:
        return StreamEnd.DONE
    return None


class ConversationDriver:
    """Drives one conversation with an agent until it completes or fails.

    ``since`` only moves forward and is reset to the clock after every
    streaming call, whether or not the call succeeded.
    """

    def __init__(
        self,
        client: VertesiaClient,
        renderer: MessageRenderer,
        prompt: UserPrompt,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.client = client
        self.renderer = renderer
        self.prompt = prompt
        self._clock = clock
        self.since = 0
        self.run_handle: RunHandle | None = None

    def _on_message(self, message: AgentMessage) -> StreamEnd | None:
        if message.message:
            self.renderer.render_message(message.type, message.message, message.timestamp)
        return stream_decision(message)

    async def _stream_once(self, run: RunHandle) -> StreamEnd | None:
        try:
            return await self.client.stream_messages(run.run_id, self._on_message, self.since)
        finally:
            self.since = max(self.since, self._clock())

    async def run(self, task: str, agent: str = DEFAULT_AGENT, interactive: bool = False) -> int:
        """Run the conversation and return the process exit code."""
        self.renderer.render_start(agent, task, interactive)

        try:
            self.run_handle = await self.client.execute_async(
                ConversationRequest.for_task(task, agent, interactive=interactive)
            )
        except Exception as e:
            logger.debug("Failed to start conversation", exc_info=True)
            self.renderer.render_error("Error during conversation:", e)
            return EXIT_ERROR

        self.renderer.render_run_id(self.run_handle.run_id)
        logger.debug("Run %s started (workflow %s)", self.run_handle.run_id, self.run_handle.workflow_id)

        while True:
            try:
                reason = await self._stream_once(self.run_handle)
            except Exception as e:
                logger.debug("Streaming failed for run %s", self.run_handle.run_id, exc_info=True)
                self.renderer.render_error("Error while streaming messages:", e)
                return EXIT_ERROR

            if reason is not StreamEnd.INPUT:
                break

            text = await self.prompt.read()
            try:
                await self.client.send_signal(
                    self.run_handle.workflow_id,
                    self.run_handle.run_id,
                    USER_INPUT_SIGNAL,
                    {"message": text},
                )
            except Exception as e:
                logger.debug("Failed to send %s signal", USER_INPUT_SIGNAL, exc_info=True)
                self.renderer.render_error("Error during conversation:", e)
                return EXIT_ERROR

        self.renderer.render_completed()
        return EXIT_OK
