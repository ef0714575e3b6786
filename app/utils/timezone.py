"""
Time utilities for the market sync service.

All timestamps are stored as naive UTC datetimes. Provider payloads carry
ISO-8601 strings (with or without a trailing ``Z``), epoch seconds, or
nothing at all; ``parse_datetime`` folds all of them into naive UTC.
"""
from datetime import datetime, timezone
from typing import Any, Optional

# UTC timezone for Python < 3.11 compatibility
try:
    from datetime import UTC
except ImportError:
    UTC = timezone.utc


def utcnow() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def parse_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a provider timestamp into a naive UTC datetime.

    Args:
        value: datetime, ISO-8601 string, or epoch seconds

    Returns:
        Naive UTC datetime, or None if the value cannot be interpreted

    Examples:
        >>> parse_datetime("2025-03-01T15:00:00Z")
        datetime.datetime(2025, 3, 1, 15, 0)
        >>> parse_datetime(None) is None
        True
    """
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        return to_naive_utc(value)

    if isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, UTC).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_naive_utc(datetime.fromisoformat(text))
        except (OverflowError, ValueError):
            return None

    return None
