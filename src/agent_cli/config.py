"""Configuration loader: YAML file with environment variable fallbacks."""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

DEFAULT_SITE = "api.vertesia.io"
DEFAULT_AGENT = "MultipurposeAgent"
ALLOWED_SITES = (
    "api.vertesia.io",
    "api-preview.vertesia.io",
    "api-staging.vertesia.io",
)


@dataclass
class VertesiaConfig:
    api_key: str
    site: str = DEFAULT_SITE
    connect_timeout: int = 10  # seconds
    request_timeout: int = 60  # seconds; streaming requests have no read timeout

    @property
    def base_url(self) -> str:
        return f"https://{self.site}/api/v1"


@dataclass
class MarkdownStyle:
    """Rich style strings applied to rendered agent markdown."""

    code: str = "cyan"
    code_block: str = "cyan"
    list_bullet: str = "yellow"
    list_number: str = "yellow"
    table: str = "magenta"
    link: str = "underline white"
    strong: str = "bold"
    em: str = "italic"

    def to_theme_styles(self) -> dict[str, str]:
        return {
            "markdown.code": self.code,
            "markdown.code_block": self.code_block,
            "markdown.item.bullet": self.list_bullet,
            "markdown.item.number": self.list_number,
            "markdown.table.border": self.table,
            "markdown.table.header": f"bold {self.table}",
            "markdown.link": self.link,
            "markdown.link_url": self.link,
            "markdown.strong": self.strong,
            "markdown.em": self.em,
        }


@dataclass
class CliConfig:
    default_agent: str = DEFAULT_AGENT
    markdown: MarkdownStyle = field(default_factory=MarkdownStyle)


@dataclass
class AppConfig:
    vertesia: VertesiaConfig
    cli: CliConfig = field(default_factory=CliConfig)


def _get_config_path() -> Path:
    override = os.environ.get("VERTESIA_CONFIG")
    if override:
        return Path(os.path.expanduser(override))
    return Path.home() / ".vertesia" / "config.yaml"


def _clamped_int(raw: Any, default: int, lo: int, hi: int) -> int:
    try:
        value = int(raw)
    except (ValueError, TypeError):
        return default
    return max(lo, min(value, hi))


def _load_markdown_style(raw: Any) -> MarkdownStyle:
    if not isinstance(raw, dict):
        return MarkdownStyle()
    known = {f.name for f in fields(MarkdownStyle)}
    return MarkdownStyle(**{k: str(v) for k, v in raw.items() if k in known and v})


def load_config(config_path: Path | None = None) -> AppConfig:
    raw: dict[str, Any] = {}
    path = config_path or _get_config_path()

    if path.exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}

    vx_raw = raw.get("vertesia", {}) or {}
    api_key = vx_raw.get("api_key") or os.environ.get("VERTESIA_API_KEY", "")
    site = vx_raw.get("site") or os.environ.get("VERTESIA_ENVIRONMENT") or DEFAULT_SITE
    site = str(site).strip()

    if not api_key:
        raise ValueError(
            "API key is required. Set 'vertesia.api_key' in config.yaml "
            f"({path}) or the VERTESIA_API_KEY environment variable (a .env file works too)."
        )
    if site not in ALLOWED_SITES:
        raise ValueError(
            f"Invalid environment {site!r}. Use 'api.vertesia.io' for production, "
            "'api-preview.vertesia.io' for preview or 'api-staging.vertesia.io' for staging."
        )

    connect_timeout = _clamped_int(
        vx_raw.get("connect_timeout", os.environ.get("VERTESIA_CONNECT_TIMEOUT", 10)), 10, 1, 120
    )
    request_timeout = _clamped_int(
        vx_raw.get("request_timeout", os.environ.get("VERTESIA_REQUEST_TIMEOUT", 60)), 60, 5, 600
    )

    vertesia = VertesiaConfig(
        api_key=str(api_key),
        site=site,
        connect_timeout=connect_timeout,
        request_timeout=request_timeout,
    )

    cli_raw = raw.get("cli", {}) or {}
    default_agent = cli_raw.get("default_agent") or os.environ.get("VERTESIA_AGENT") or DEFAULT_AGENT
    cli_config = CliConfig(
        default_agent=str(default_agent),
        markdown=_load_markdown_style(cli_raw.get("markdown")),
    )

    return AppConfig(vertesia=vertesia, cli=cli_config)
