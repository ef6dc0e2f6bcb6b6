"""Rewrite ``store:`` and ``collection:`` shorthand into studio URLs."""

from __future__ import annotations

import re

DEFAULT_UI_DOMAIN = "cloud.vertesia.io"

_UI_DOMAINS: dict[str, str] = {
    "api-preview.vertesia.io": "preview.cloud.vertesia.io",
    "api-staging.vertesia.io": "staging.cloud.vertesia.io",
}

_STORE_RE = re.compile(r"store:([a-zA-Z0-9-]+)")
_COLLECTION_RE = re.compile(r"collection:([a-zA-Z0-9-]+)")


def ui_domain(site: str | None) -> str:
    """Map an API site to the studio host serving its objects."""
    if not site:
        return DEFAULT_UI_DOMAIN
    return _UI_DOMAINS.get(site, DEFAULT_UI_DOMAIN)


def rewrite_links(text: str, site: str | None = None) -> str:
    domain = ui_domain(site)
    text = _STORE_RE.sub(lambda m: f"https://{domain}/store/objects/{m.group(1)}", text)
    return _COLLECTION_RE.sub(lambda m: f"https://{domain}/store/collections/{m.group(1)}", text)
