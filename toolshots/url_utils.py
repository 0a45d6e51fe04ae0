"""Shared URL utilities: normalize tool website URLs."""

from __future__ import annotations

import re
from urllib.parse import urlparse

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_website_url(raw: str | None) -> str:
    """Return an absolute http(s) URL, or an empty string if there is nothing usable."""
    url = str(raw or "").strip()
    if not url:
        return ""
    if not _SCHEME_RE.match(url):
        url = f"https://{url}"
    parsed = urlparse(url)
    if not parsed.netloc or " " in parsed.netloc:
        return ""
    return url


def short_url(url: str, max_len: int = 60) -> str:
    """Truncate a URL for log lines."""
    return url if len(url) <= max_len else url[:max_len] + "..."
