"""Wire configuration, client, renderer and prompt into one conversation."""

from __future__ import annotations

import logging

from ..config import AppConfig
from ..services.conversation import ConversationDriver
from ..services.vertesia_client import create_client
from .prompt import UserPrompt
from .renderer import MessageRenderer

logger = logging.getLogger(__name__)


async def run_conversation(
    config: AppConfig,
    task: str,
    agent: str | None = None,
    interactive: bool = False,
) -> int:
    """Run one conversation against the configured site and return an exit code."""
    renderer = MessageRenderer(style=config.cli.markdown, site=config.vertesia.site)
    prompt = UserPrompt(on_rejected=renderer.render_input_rejected)
    agent = agent or config.cli.default_agent
    logger.debug("Using site %s, agent %s", config.vertesia.site, agent)

    async with create_client(config.vertesia) as client:
        driver = ConversationDriver(client, renderer, prompt)
        return await driver.run(task, agent=agent, interactive=interactive)
