"""Helpers for safe debug logging.

The relay authenticates upstream with a Supabase API key that travels both in
the websocket URL and in heartbeat headers. Raw frames, URLs and header maps
pass through here before they reach a log line.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REDACTED = "<redacted>"
_MAX_DEPTH = 8

_SECRET_KEYS: frozenset[str] = frozenset(
    {
        "apikey",
        "api_key",
        "anon_key",
        "supabase_anon_key",
        "authorization",
        "access_token",
        "token",
        "password",
        "cookie",
    }
)

_SECRET_QUERY = re.compile(r"(?i)([?&](?:apikey|api_key|token|access_token)=)[^&#]*")
# JSON-encoded frames may carry the key as "access_token":"..." inside a join payload.
_SECRET_JSON_FIELD = re.compile(r'(?i)("(?:apikey|access_token|token)"\s*:\s*")[^"]*(")')


def redact_url(url: str) -> str:
    """Return *url* with credential query parameters replaced."""
    return _SECRET_QUERY.sub(rf"\1{REDACTED}", url)


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}…<+{len(text) - limit} chars>"


def redact_text(text: str, *, max_string: int = 512) -> str:
    """Redact URL parameters and JSON secret fields, then clip to *max_string*."""
    text = _SECRET_JSON_FIELD.sub(rf"\1{REDACTED}\2", redact_url(text))
    return _clip(text, max_string)


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for log arguments.

    Strings (including raw frames) are scrubbed and clipped, bytes are
    decoded leniently first, and mappings have secret keys masked by name.
    """
    if isinstance(value, (bytes, bytearray)):
        value = bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, str):
        return redact_text(value, max_string=max_string)
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if _depth >= _MAX_DEPTH:
        return "<nested>"

    if isinstance(value, Mapping):
        return {
            str(k): REDACTED
            if str(k).lower() in _SECRET_KEYS
            else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]
    return _clip(repr(value), max_string)
