"""Unit tests for the payload transformer and field map.

Test Strategy:
1. Test identifier extraction (priority order, sentinels)
2. Test status normalisation
3. Test descriptive fallbacks across provider versions
4. Test live-only and finished-only fields
5. Test sync bookkeeping derived from the observation time

Each test follows the pattern:
- Given: A raw upstream payload
- When: transform() is called with a fixed ``now``
- Then: The canonical match (or None) matches expectations
"""
import sys
from datetime import timedelta
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))
from conftest import NOW, build_raw_match

from app.services.market.field_map import get_path, resolve
from app.services.market.freshness import FreshnessPolicy
from app.services.market.transformer import extract_match_id, normalize_status, transform
from app.services.market.types import MatchStatus, SyncPriority

POLICY = FreshnessPolicy(live_window=timedelta(seconds=30), upcoming_window=timedelta(minutes=10))


class TestMatchIdentity:
    """Identifier extraction."""

    @pytest.mark.parametrize("sentinel", ["undefined", "null", "", "  "])
    def test_sentinel_id_is_rejected(self, sentinel):
        """Should return None for ids that JavaScript providers emit when missing."""
        raw = build_raw_match(match_id=sentinel)
        raw.pop("match_id", None)

        assert transform(raw, NOW, POLICY) is None

    def test_missing_id_is_rejected(self):
        raw = build_raw_match()
        del raw["id"]

        assert transform(raw, NOW, POLICY) is None

    def test_id_falls_back_to_alternate_keys(self):
        """Should read match_id, then matchId, when id is absent."""
        raw = build_raw_match()
        del raw["id"]
        raw["matchId"] = 777

        match = transform(raw, NOW, POLICY)

        assert match is not None
        assert match.match_id == "777"

    def test_numeric_id_is_stringified(self):
        assert extract_match_id({"id": 12345}) == "12345"

    def test_non_mapping_payload_is_rejected(self):
        assert transform(["not", "a", "match"], NOW, POLICY) is None


class TestStatusNormalisation:
    """Provider status vocabulary -> lifecycle."""

    @pytest.mark.parametrize("raw_status,expected", [
        ("LIVE", MatchStatus.LIVE),
        ("live", MatchStatus.LIVE),
        ("FINISHED", MatchStatus.FINISHED),
        ("completed", MatchStatus.FINISHED),
        ("CANCELLED", MatchStatus.CANCELLED),
        ("canceled", MatchStatus.CANCELLED),
        ("POSTPONED", MatchStatus.POSTPONED),
        ("UPCOMING", MatchStatus.UPCOMING),
        ("NOT_STARTED", MatchStatus.UPCOMING),
        (None, MatchStatus.UPCOMING),
        (3, MatchStatus.UPCOMING),
    ])
    def test_normalize_status(self, raw_status, expected):
        assert normalize_status(raw_status) == expected


class TestDescriptiveFields:
    """Field map fallbacks and defaults."""

    def test_current_provider_shape(self):
        match = transform(build_raw_match(), NOW, POLICY)

        assert match.home_team == "Liverpool"
        assert match.away_team == "Chelsea"
        assert match.league == "Premier League"
        assert match.home_team_id == "40"
        assert match.league_country == "England"
        assert match.kickoff_date == NOW + timedelta(hours=6)

    def test_legacy_provider_shape(self):
        """Should read the older homeTeam/leagueName/matchDate spellings."""
        raw = {
            "match_id": "legacy-1",
            "homeTeam": {"name": "Arsenal", "logo": "a.png"},
            "awayTeam": {"name": "Spurs"},
            "leagueName": "Premier League",
            "matchDate": "2026-03-15T12:30:00",
            "odds": {"consensus": {"home": 2.1, "draw": 3.3, "away": 3.6}},
        }

        match = transform(raw, NOW, POLICY)

        assert match.match_id == "legacy-1"
        assert match.home_team == "Arsenal"
        assert match.home_team_logo == "a.png"
        assert match.league == "Premier League"
        assert match.consensus_odds == {"home": 2.1, "draw": 3.3, "away": 3.6}
        assert match.is_consensus_odds is False

    def test_defaults_when_names_missing(self):
        raw = {"id": "bare-1"}

        match = transform(raw, NOW, POLICY)

        assert match.home_team == "Home Team"
        assert match.away_team == "Away Team"
        assert match.league == "Unknown League"
        assert match.status == MatchStatus.UPCOMING
        # Missing kickoff falls back to the observation time
        assert match.kickoff_date == NOW

    def test_odds_and_books(self):
        match = transform(build_raw_match(), NOW, POLICY)

        assert match.consensus_odds == {"home": 1.80, "draw": 3.40, "away": 4.50}
        assert match.is_consensus_odds is True
        assert match.primary_book == "pinnacle"
        assert match.book_count == 2

    def test_missing_odd_defaults_to_zero(self):
        raw = build_raw_match(odds={"home": 2.0, "away": 3.0})

        match = transform(raw, NOW, POLICY)

        assert match.consensus_odds == {"home": 2.0, "draw": 0.0, "away": 3.0}

    def test_model_confidence_is_clamped(self):
        raw = build_raw_match(models={"v2_lightgbm": {"pick": "away", "confidence": 1.7}})

        match = transform(raw, NOW, POLICY)

        assert match.v2_model["confidence"] == 1.0
        assert match.v1_model is None

    def test_raw_payload_is_kept(self):
        raw = build_raw_match()

        match = transform(raw, NOW, POLICY)

        assert match.raw_payload == raw


class TestOutOfRangeValues:
    """Values that parse but do not fit a datetime or an int."""

    def test_kickoff_beyond_datetime_range_falls_back_to_now(self):
        raw = build_raw_match(kickoff_at="9999-12-31T23:59:59-05:00")

        match = transform(raw, NOW, POLICY)

        assert match.kickoff_date == NOW

    def test_infinite_score_and_minute_default(self):
        raw = build_raw_match(status="LIVE", score={"home": float("inf"), "away": 2}, minute=float("nan"))

        match = transform(raw, NOW, POLICY)

        assert match.current_score == {"home": 0, "away": 2}
        assert match.elapsed_minutes is None


class TestLifecycleFields:
    """Live-only and finished-only fields."""

    def test_live_fields_populated_for_live_match(self):
        raw = build_raw_match(
            status="LIVE",
            score={"home": 1, "away": 0},
            minute=57,
            live_data={"statistics": {"shots": [7, 3]}},
        )

        match = transform(raw, NOW, POLICY)

        assert match.status == MatchStatus.LIVE
        assert match.current_score == {"home": 1, "away": 0}
        assert match.elapsed_minutes == 57
        assert match.period == "Live"
        assert match.live_statistics == {"shots": [7, 3]}
        assert match.final_result is None

    def test_live_fields_ignored_for_upcoming_match(self):
        raw = build_raw_match(status="UPCOMING", score={"home": 1, "away": 0}, minute=57)

        match = transform(raw, NOW, POLICY)

        assert match.current_score is None
        assert match.elapsed_minutes is None

    def test_finished_fields_populated_for_finished_match(self):
        raw = build_raw_match(
            status="FINISHED",
            final_score="2-1",
            outcome="H",
            venue="Anfield",
            referee="M. Oliver",
            attendance="53000",
        )

        match = transform(raw, NOW, POLICY)

        assert match.status == MatchStatus.FINISHED
        assert match.final_result == {"score": "2-1", "outcome": "H", "outcome_text": None}
        assert match.venue == "Anfield"
        assert match.attendance == 53000
        assert match.current_score is None

    def test_additional_markets_block(self):
        block = {"btts": {"yes": 0.6, "no": 0.4}}
        raw = build_raw_match(additional_markets_v2=block)

        match = transform(raw, NOW, POLICY)

        assert match.additional_markets == block

    def test_non_mapping_markets_block_is_dropped(self):
        raw = build_raw_match(additional_markets_v2="n/a")

        assert transform(raw, NOW, POLICY).additional_markets is None


class TestSyncBookkeeping:
    """SyncState derived at transform time."""

    def test_live_match_sync_state(self):
        match = transform(build_raw_match(status="LIVE"), NOW, POLICY)

        assert match.sync.last_synced_at == NOW
        assert match.sync.next_sync_at == NOW + timedelta(seconds=30)
        assert match.sync.sync_priority == SyncPriority.HIGH

    def test_to_record_flattens_sync_state(self):
        match = transform(build_raw_match(), NOW, POLICY)

        record = match.to_record()

        assert record["status"] == "UPCOMING"
        assert record["last_synced_at"] == NOW
        assert record["next_sync_at"] == NOW + timedelta(minutes=10)
        assert record["sync_priority"] == "medium"
        assert "sync" not in record


class TestFieldMap:
    """Dotted-path resolution."""

    def test_get_path_walks_nested_mappings(self):
        assert get_path({"a": {"b": {"c": 1}}}, "a.b.c") == 1
        assert get_path({"a": {"b": None}}, "a.b.c") is None
        assert get_path({"a": "leaf"}, "a.b") is None

    def test_empty_string_counts_as_absent(self):
        payload = {"id": "", "match_id": "m-2"}

        assert resolve(payload, "match_id") == "m-2"

    def test_zero_is_present(self):
        assert resolve({"minute": 0, "elapsed": 12}, "elapsed_minutes") == 0
