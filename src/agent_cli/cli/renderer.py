"""Rich-based terminal output for agent conversations."""

from __future__ import annotations

from datetime import datetime

from rich.console import Console
from rich.markdown import Heading, Markdown
from rich.markup import escape
from rich.text import Text
from rich.theme import Theme

from ..config import MarkdownStyle
from ..models import MessageKind
from .links import rewrite_links

# ---------------------------------------------------------------------------
# Color palette
# ---------------------------------------------------------------------------

TIMESTAMP_GREY = "grey62"
STATUS_CYAN = "cyan"
OK_GREEN = "green"
ERROR_RED = "red"

_LABELS: dict[MessageKind, tuple[str, str]] = {
    MessageKind.QUESTION: ("User:", "green"),
    MessageKind.ERROR: ("Error:", "red"),
    MessageKind.COMPLETE: ("Complete:", "green"),
    MessageKind.IDLE: ("Idle:", "yellow"),
}
_DEFAULT_LABEL = ("Agent:", "blue")

# Shown verbatim; everything else is agent markdown.
_PLAIN_KINDS = frozenset({MessageKind.QUESTION, MessageKind.IDLE, MessageKind.ERROR})

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def label_for(kind: MessageKind | str | None) -> tuple[str, str]:
    """Return ``(label, style)`` for a message kind; unknown kinds get ``Agent:``."""
    if not isinstance(kind, MessageKind):
        kind = MessageKind(kind)
    return _LABELS.get(kind, _DEFAULT_LABEL)


def format_timestamp(timestamp_ms: int) -> str:
    """Format epoch milliseconds as local time."""
    try:
        return datetime.fromtimestamp(timestamp_ms / 1000).strftime(TIMESTAMP_FORMAT)
    except (OverflowError, OSError, ValueError):
        return str(timestamp_ms)


class _LeftHeading(Heading):
    """Heading rendered left-aligned instead of Rich's centered default."""

    def __rich_console__(self, console, options):
        self.text.justify = "left"
        if self.tag == "h2":
            yield Text("")
        yield self.text


class AgentMarkdown(Markdown):
    elements = {**Markdown.elements, "heading_open": _LeftHeading}


class MessageRenderer:
    """Writes conversation messages and status lines to the terminal.

    Markdown styling comes from the :class:`MarkdownStyle` handed in by the
    caller; ``site`` selects the studio domain used for object links.
    """

    def __init__(
        self,
        style: MarkdownStyle | None = None,
        site: str | None = None,
        console: Console | None = None,
        err_console: Console | None = None,
    ) -> None:
        self.style = style or MarkdownStyle()
        self.site = site
        theme = Theme(self.style.to_theme_styles())
        if console is None:
            console = Console(theme=theme)
        else:
            console.push_theme(theme)
        self.console = console
        self.err_console = err_console or Console(stderr=True)

    def render_message(self, kind: MessageKind | str | None, text: str, timestamp: int) -> None:
        if not isinstance(kind, MessageKind):
            kind = MessageKind(kind)
        label, label_style = label_for(kind)
        self.console.print(
            f"[{TIMESTAMP_GREY}]{escape(format_timestamp(timestamp))}[/{TIMESTAMP_GREY}]"
            f" - [{label_style}]{label}[/{label_style}]"
        )

        if kind in _PLAIN_KINDS:
            self.console.print(Text(text), soft_wrap=True)
            self.console.print()
            return

        self.console.print(AgentMarkdown(rewrite_links(text, self.site)))
        self.console.print()

    def render_start(self, agent: str, task: str, interactive: bool) -> None:
        mode = " in interactive mode" if interactive else ""
        self.console.print(Text(f"Starting {agent}{mode} with task: {task}", style=STATUS_CYAN))

    def render_run_id(self, run_id: str) -> None:
        self.console.print(Text(f"Run ID: {run_id}", style=OK_GREEN))

    def render_completed(self) -> None:
        self.console.print(Text("Conversation completed", style=OK_GREEN))

    def render_input_rejected(self) -> None:
        self.err_console.print(Text("Please enter a message", style="yellow"))

    def render_error(self, prefix: str, error: BaseException | str) -> None:
        detail = error if isinstance(error, str) else (str(error) or type(error).__name__)
        self.err_console.print(f"[{ERROR_RED}]{escape(prefix)}[/{ERROR_RED}] {escape(detail)}")
