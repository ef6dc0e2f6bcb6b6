"""CLI entry point for the Vertesia agent runner."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import find_dotenv, load_dotenv

from . import __version__
from .config import AppConfig, load_config

_EXIT_INTERRUPTED = 130


def _configure_logging(debug: bool) -> None:
    if not debug:
        return
    from rich.console import Console
    from rich.logging import RichHandler

    logging.basicConfig(
        level=logging.DEBUG,
        format="%(name)s: %(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)],
    )
    # httpcore traces every socket event at DEBUG.
    logging.getLogger("httpcore").setLevel(logging.INFO)


def _load_config_or_exit() -> AppConfig:
    try:
        return load_config()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        print(
            "Add VERTESIA_API_KEY (and optionally VERTESIA_ENVIRONMENT) to a .env file or your environment.",
            file=sys.stderr,
        )
        sys.exit(1)


def _run_agent(config: AppConfig, task: str, agent: str | None, interactive: bool) -> int:
    from .cli.run_mode import run_conversation

    try:
        return asyncio.run(run_conversation(config, task, agent=agent, interactive=interactive))
    except (KeyboardInterrupt, EOFError, asyncio.CancelledError):
        print("\nInterrupted", file=sys.stderr)
        return _EXIT_INTERRUPTED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="agent", description="Vertesia Agent Runner CLI")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Log backend traffic to stderr")
    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Run an agent with a task")
    run_parser.add_argument("task", help="Task description for the agent")
    run_parser.add_argument("-i", "--interactive", action="store_true", help="Enable interactive mode")
    run_parser.add_argument(
        "-a",
        "--agent",
        dest="agent",
        default=None,
        help="Agent type to use (default: MultipurposeAgent)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return

    _configure_logging(args.debug)
    load_dotenv(find_dotenv(usecwd=True))
    config = _load_config_or_exit()

    if args.command == "run":
        exit_code = _run_agent(config, args.task, args.agent, args.interactive)
        if exit_code:
            sys.exit(exit_code)


if __name__ == "__main__":
    main()
