"""URL validation and header redaction helpers."""

from __future__ import annotations

from typing import Mapping

import httpx

from .exceptions import InvalidURLError


SENSITIVE_HEADERS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
}


def sanitize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return headers with sensitive values redacted for transport dumps."""
    redacted: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            redacted[key] = "[REDACTED]"
        else:
            redacted[key] = value
    return redacted


def parse_target_url(url: str) -> httpx.URL:
    """Parse an absolute http(s) URL, raising :class:`InvalidURLError` otherwise."""
    if "\x00" in url:
        raise InvalidURLError("Invalid URL characters", url=url)
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as exc:
        raise InvalidURLError(f"Malformed URL: {exc}", cause=exc) from exc
    if not parsed.scheme or not parsed.host:
        raise InvalidURLError(f"URL must include scheme and host: {url!r}")
    if parsed.scheme not in {"http", "https"}:
        raise InvalidURLError(f"Unsupported URL scheme: {parsed.scheme}")
    return parsed
