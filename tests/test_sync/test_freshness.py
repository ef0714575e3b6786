"""Unit tests for the freshness gate and sync-state decisions.

Each test follows the pattern:
- Given: The stored sync state (or none) and an observation time
- When: should_skip() / compute_sync_state() is called
- Then: The decision matches the per-status windows
"""
from datetime import datetime, timedelta

import pytest

from app.services.market.freshness import FreshnessPolicy, compute_sync_state, should_skip
from app.services.market.types import MatchStatus, SyncPriority, SyncState

POLICY = FreshnessPolicy(live_window=timedelta(seconds=30), upcoming_window=timedelta(minutes=10))
T0 = datetime(2026, 3, 14, 18, 0, 0)


def state(status: MatchStatus, synced_at=T0) -> SyncState:
    return SyncState(status=status, last_synced_at=synced_at)


class TestShouldSkip:
    """Freshness gate."""

    def test_new_match_is_never_skipped(self):
        assert should_skip(None, T0, POLICY) is False

    def test_record_without_sync_time_is_never_skipped(self):
        assert should_skip(state(MatchStatus.LIVE, synced_at=None), T0, POLICY) is False

    def test_live_match_within_window_is_skipped(self):
        """Re-fetched 10s after a live sync: skip."""
        assert should_skip(state(MatchStatus.LIVE), T0 + timedelta(seconds=10), POLICY) is True

    def test_live_match_after_window_is_synced(self):
        """Re-fetched 31s after a live sync: proceed."""
        assert should_skip(state(MatchStatus.LIVE), T0 + timedelta(seconds=31), POLICY) is False

    def test_live_window_boundary_is_exclusive(self):
        assert should_skip(state(MatchStatus.LIVE), T0 + timedelta(seconds=30), POLICY) is False

    def test_upcoming_match_within_window_is_skipped(self):
        assert should_skip(state(MatchStatus.UPCOMING), T0 + timedelta(minutes=5), POLICY) is True

    def test_upcoming_match_after_window_is_synced(self):
        assert should_skip(state(MatchStatus.UPCOMING), T0 + timedelta(minutes=11), POLICY) is False

    @pytest.mark.parametrize("age", [timedelta(seconds=1), timedelta(days=30)])
    def test_finished_match_is_always_skipped(self, age):
        assert should_skip(state(MatchStatus.FINISHED), T0 + age, POLICY) is True

    @pytest.mark.parametrize("status", [MatchStatus.CANCELLED, MatchStatus.POSTPONED])
    def test_cancelled_and_postponed_use_upcoming_window(self, status):
        assert should_skip(state(status), T0 + timedelta(minutes=5), POLICY) is True
        assert should_skip(state(status), T0 + timedelta(minutes=11), POLICY) is False


class TestComputeSyncState:
    """Priority and next sync time."""

    def test_live_match_is_high_priority(self):
        result = compute_sync_state(MatchStatus.LIVE, T0 - timedelta(minutes=40), T0, POLICY)

        assert result.sync_priority == SyncPriority.HIGH
        assert result.last_synced_at == T0
        assert result.next_sync_at == T0 + timedelta(seconds=30)

    def test_upcoming_match_within_a_day_is_medium_priority(self):
        result = compute_sync_state(MatchStatus.UPCOMING, T0 + timedelta(hours=3), T0, POLICY)

        assert result.sync_priority == SyncPriority.MEDIUM
        assert result.next_sync_at == T0 + timedelta(minutes=10)

    def test_upcoming_match_past_kickoff_is_medium_priority(self):
        result = compute_sync_state(MatchStatus.UPCOMING, T0 - timedelta(minutes=5), T0, POLICY)

        assert result.sync_priority == SyncPriority.MEDIUM

    def test_distant_upcoming_match_is_low_priority(self):
        result = compute_sync_state(MatchStatus.UPCOMING, T0 + timedelta(days=3), T0, POLICY)

        assert result.sync_priority == SyncPriority.LOW
        assert result.next_sync_at == T0 + timedelta(minutes=10)

    @pytest.mark.parametrize("status", [MatchStatus.FINISHED, MatchStatus.CANCELLED, MatchStatus.POSTPONED])
    def test_terminal_statuses_have_no_next_sync(self, status):
        result = compute_sync_state(status, T0 + timedelta(hours=1), T0, POLICY)

        assert result.next_sync_at is None
        assert result.sync_priority == SyncPriority.LOW
        assert result.status == status
