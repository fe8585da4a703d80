"""Normalization helpers.

Centralizes defensive parsing of keys and timestamps.
"""

from __future__ import annotations

import math
import re
from datetime import UTC, datetime
from typing import Any

# Threshold to distinguish epoch seconds from milliseconds.
_MS_THRESHOLD = 1e11

# datetime.fromisoformat accepts at most microsecond precision.
_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")


def sanitize_key_part(value: Any) -> str:
    """Lower-case and trim a region or vehicle type; ``""`` when unusable."""
    if value is None:
        return ""
    return str(value).strip().lower()


def safe_int(value: Any) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return int(result)


def datetime_to_ms(value: datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return int(value.timestamp() * 1000)


def parse_timestamp_ms(value: Any) -> int | None:
    """Parse an absolute timestamp into epoch milliseconds.

    Accepts ISO-8601 strings (``Z`` suffix allowed, naive values are UTC),
    ``datetime`` objects and numeric epoch values in seconds or milliseconds.
    Anything else yields ``None``.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return datetime_to_ms(value)
    if isinstance(value, (int, float)):
        if math.isnan(value) or value <= 0:
            return None
        return int(value) if value > _MS_THRESHOLD else int(value * 1000)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = f"{text[:-1]}+00:00"
    text = _EXCESS_FRACTION.sub(r"\1", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return datetime_to_ms(parsed)


def now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return datetime_to_ms(datetime.now(UTC))
