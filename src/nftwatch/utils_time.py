"""
Time Utilities
==============

Millisecond timestamps and ISO8601 parsing for marketplace payloads.
"""

import time
from datetime import datetime, timezone
from typing import Optional, Union


def now_ms() -> int:
    """
    Get current Unix timestamp in milliseconds.

    Example:
        >>> ts = now_ms()
        >>> print(ts)  # 1706356800000
    """
    return int(time.time() * 1000)


def ms_to_sec(ts_ms: int) -> float:
    """Convert milliseconds to seconds."""
    return ts_ms / 1000.0


def parse_timestamp(value: Union[str, int, float, None]) -> Optional[datetime]:
    """
    Parse a marketplace timestamp into an aware UTC datetime.

    Reservoir returns ``createdAt`` as ISO8601 strings ("2024-01-27T12:00:00.000Z")
    and sale ``timestamp`` as Unix seconds.

    Args:
        value: ISO8601 string, Unix seconds, or None

    Returns:
        Aware datetime in UTC, or None if the value is missing or unparseable.
    """
    if value is None or value == "":
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            # Milliseconds or garbage past datetime's range
            return None

    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
