"""
Sync health classification.

Each status is judged from its most recently synced record:

- ``error``: no records, or the newest sync is older than 2x the interval
- ``degraded``: the newest record carries sync errors, or is older than 1.5x
- ``healthy``: otherwise

The overall health is driven by live and upcoming only; completed matches
are synced once and naturally go quiet.
"""
from datetime import datetime, timedelta
from typing import Optional

HEALTHY = "healthy"
DEGRADED = "degraded"
ERROR = "error"

STALE_FACTOR = 2.0
DELAYED_FACTOR = 1.5


def classify(
    last_synced_at: Optional[datetime],
    error_count: int,
    match_count: int,
    interval: timedelta,
    now: datetime,
) -> str:
    if last_synced_at is None or match_count == 0:
        return ERROR

    age = now - last_synced_at
    if age > interval * STALE_FACTOR:
        return ERROR
    if error_count > 0 or age > interval * DELAYED_FACTOR:
        return DEGRADED
    return HEALTHY


def overall(*statuses: str) -> str:
    if ERROR in statuses:
        return ERROR
    if DEGRADED in statuses:
        return DEGRADED
    return HEALTHY


def format_age(last_synced_at: Optional[datetime], now: datetime) -> str:
    """Compact age string: '42s ago', '5m ago', '3h ago' or 'Never'."""
    if last_synced_at is None:
        return "Never"
    seconds = int((now - last_synced_at).total_seconds())
    if seconds < 60:
        return f"{seconds}s ago"
    if seconds < 3600:
        return f"{seconds // 60}m ago"
    return f"{seconds // 3600}h ago"
