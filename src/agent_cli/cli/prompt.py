"""Interactive line input for replying to the agent."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import HTML

logger = logging.getLogger(__name__)

LineSource = Callable[[], Awaitable[str]]


def _default_source() -> LineSource:
    session: PromptSession[str] = PromptSession()

    async def ask() -> str:
        return await session.prompt_async(HTML("<ansigreen>You:</ansigreen> "))

    return ask


class UserPrompt:
    """Asks until the user types something other than whitespace.

    ``EOFError`` and ``KeyboardInterrupt`` from the line source propagate.
    """

    def __init__(self, source: LineSource | None = None, on_rejected: Callable[[], None] | None = None) -> None:
        self._source = source
        self._on_rejected = on_rejected

    async def read(self) -> str:
        if self._source is None:
            self._source = _default_source()
        while True:
            line = await self._source()
            text = (line or "").strip()
            if text:
                return text
            logger.debug("Rejected empty input")
            if self._on_rejected:
                self._on_rejected()
