"""
Freshness gate and sync-state decisions.

Both functions are pure: the caller passes ``now`` explicitly, so a run can
be replayed deterministically in tests.

Skip policy, by the stored record's status (age measured from
``last_synced_at``):

    none (new match)         never skip
    LIVE                     skip if age < live window (30s)
    UPCOMING                 skip if age < upcoming window (10min)
    CANCELLED / POSTPONED    same as UPCOMING, so a rescheduled fixture is picked up
    FINISHED                 always skip
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from app.core.config import settings
from app.services.market.types import MatchStatus, SyncPriority, SyncState

# Kickoffs closer than this are bumped to medium priority
MEDIUM_PRIORITY_HORIZON = timedelta(hours=24)


@dataclass(frozen=True)
class FreshnessPolicy:
    live_window: timedelta
    upcoming_window: timedelta


DEFAULT_POLICY = FreshnessPolicy(
    live_window=timedelta(seconds=settings.LIVE_SYNC_INTERVAL_SECONDS),
    upcoming_window=timedelta(seconds=settings.UPCOMING_SYNC_INTERVAL_SECONDS),
)


def should_skip(
    existing: Optional[SyncState],
    now: datetime,
    policy: FreshnessPolicy = DEFAULT_POLICY,
) -> bool:
    """
    Decide whether syncing a match can be skipped.

    Args:
        existing: Sync state of the stored record, or None for a new match
        now: Current time (naive UTC)
        policy: Freshness windows

    Returns:
        True if the stored data is still fresh enough for its status
    """
    if existing is None or existing.last_synced_at is None:
        return False

    if existing.status == MatchStatus.FINISHED:
        return True

    age = now - existing.last_synced_at
    if existing.status == MatchStatus.LIVE:
        return age < policy.live_window
    return age < policy.upcoming_window


def compute_sync_state(
    status: MatchStatus,
    kickoff_date: datetime,
    now: datetime,
    policy: FreshnessPolicy = DEFAULT_POLICY,
) -> SyncState:
    """
    Sync bookkeeping for a match observed at ``now``.

    Priority is high while LIVE, medium for an UPCOMING match kicking off
    within 24 hours (including kickoffs already past), low otherwise.
    ``next_sync_at`` is one freshness window ahead for LIVE and UPCOMING and
    None for every other status.
    """
    if status == MatchStatus.LIVE:
        priority = SyncPriority.HIGH
    elif status == MatchStatus.UPCOMING and kickoff_date - now < MEDIUM_PRIORITY_HORIZON:
        priority = SyncPriority.MEDIUM
    else:
        priority = SyncPriority.LOW

    if status == MatchStatus.LIVE:
        next_sync_at = now + policy.live_window
    elif status == MatchStatus.UPCOMING:
        next_sync_at = now + policy.upcoming_window
    else:
        next_sync_at = None

    return SyncState(
        status=status,
        last_synced_at=now,
        next_sync_at=next_sync_at,
        sync_priority=priority,
    )
