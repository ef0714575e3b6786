"""
Upstream payload -> CanonicalMatch.

``transform`` is pure: everything time-dependent is derived from the ``now``
argument. It returns None (a skip, not an error) when the payload carries no
usable match id.
"""
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from app.core.logging import get_logger
from app.services.market.field_map import resolve
from app.services.market.freshness import DEFAULT_POLICY, FreshnessPolicy, compute_sync_state
from app.services.market.types import CanonicalMatch, MatchStatus
from app.utils.timezone import parse_datetime

logger = get_logger(__name__)

# Identifier values that JavaScript-backed providers emit for missing ids
SENTINEL_IDS = frozenset({"", "undefined", "null"})

_STATUS_ALIASES = {
    "LIVE": MatchStatus.LIVE,
    "FINISHED": MatchStatus.FINISHED,
    "COMPLETED": MatchStatus.FINISHED,
    "CANCELLED": MatchStatus.CANCELLED,
    "CANCELED": MatchStatus.CANCELLED,
    "POSTPONED": MatchStatus.POSTPONED,
}


def extract_match_id(raw: Mapping[str, Any]) -> Optional[str]:
    """Return the external id as a string, or None if absent or a sentinel."""
    value = resolve(raw, "match_id")
    if value is None:
        return None
    match_id = str(value).strip()
    if match_id in SENTINEL_IDS:
        return None
    return match_id


def normalize_status(value: Any) -> MatchStatus:
    """Map a provider status onto the lifecycle; unknown values become UPCOMING."""
    if not isinstance(value, str):
        return MatchStatus.UPCOMING
    return _STATUS_ALIASES.get(value.strip().upper(), MatchStatus.UPCOMING)


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _as_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (OverflowError, TypeError, ValueError):
        return default


def _as_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _mapping(value: Any) -> Optional[Dict[str, Any]]:
    return dict(value) if isinstance(value, Mapping) and value else None


def _odds_triple(value: Any) -> Optional[Dict[str, float]]:
    if not isinstance(value, Mapping):
        return None
    return {side: _as_float(value.get(side)) for side in ("home", "draw", "away")}


def _model_snapshot(value: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(value, Mapping):
        return None
    confidence = _as_float(value.get("confidence"))
    return {
        "pick": value.get("pick") or None,
        "confidence": min(max(confidence, 0.0), 1.0),
        "probs": value.get("probs") or None,
    }


def _score(value: Any) -> Optional[Dict[str, int]]:
    if not isinstance(value, Mapping):
        return None
    return {
        "home": max(_as_int(value.get("home"), 0), 0),
        "away": max(_as_int(value.get("away"), 0), 0),
    }


def _final_result(raw: Mapping[str, Any]) -> Dict[str, Any]:
    final = resolve(raw, "final_result")
    if isinstance(final, Mapping):
        return dict(final)
    return {
        "score": resolve(raw, "final_score"),
        "outcome": resolve(raw, "outcome"),
        "outcome_text": resolve(raw, "outcome_text"),
    }


def transform(
    raw: Mapping[str, Any],
    now: datetime,
    policy: FreshnessPolicy = DEFAULT_POLICY,
) -> Optional[CanonicalMatch]:
    """
    Map one upstream payload onto a CanonicalMatch.

    Args:
        raw: Upstream match payload
        now: Observation time (naive UTC); becomes ``last_synced_at``
        policy: Freshness windows used for ``next_sync_at``

    Returns:
        CanonicalMatch, or None if no usable identifier was found
    """
    if not isinstance(raw, Mapping):
        return None

    match_id = extract_match_id(raw)
    if match_id is None:
        logger.debug("Skipping payload without usable match id", extra={"raw_id": raw.get("id")})
        return None

    status = normalize_status(resolve(raw, "status"))
    kickoff_date = parse_datetime(resolve(raw, "kickoff_date")) or now

    books = resolve(raw, "all_bookmakers")
    books = dict(books) if isinstance(books, Mapping) and books else None

    match = CanonicalMatch(
        match_id=match_id,
        home_team=str(resolve(raw, "home_team")),
        away_team=str(resolve(raw, "away_team")),
        league=str(resolve(raw, "league")),
        status=status,
        kickoff_date=kickoff_date,
        sync=compute_sync_state(status, kickoff_date, now, policy),
        home_team_id=_optional_str(resolve(raw, "home_team_id")),
        away_team_id=_optional_str(resolve(raw, "away_team_id")),
        home_team_logo=resolve(raw, "home_team_logo"),
        away_team_logo=resolve(raw, "away_team_logo"),
        league_id=_optional_str(resolve(raw, "league_id")),
        league_country=resolve(raw, "league_country"),
        league_flag_url=resolve(raw, "league_flag_url"),
        league_flag_emoji=resolve(raw, "league_flag_emoji"),
        consensus_odds=_odds_triple(resolve(raw, "consensus_odds")),
        is_consensus_odds=bool(resolve(raw, "novig_odds")),
        all_bookmakers=books,
        primary_book=next(iter(books)) if books else None,
        book_count=len(books) if books else 0,
        v1_model=_model_snapshot(resolve(raw, "v1_model")),
        v2_model=_model_snapshot(resolve(raw, "v2_model")),
        additional_markets=_mapping(resolve(raw, "additional_markets")),
        raw_payload=dict(raw),
    )

    if status == MatchStatus.LIVE:
        match.current_score = _score(resolve(raw, "current_score"))
        match.elapsed_minutes = _as_int(resolve(raw, "elapsed_minutes"))
        match.period = str(resolve(raw, "period"))
        match.live_statistics = resolve(raw, "live_statistics")
        match.momentum = resolve(raw, "momentum")
    elif status == MatchStatus.FINISHED:
        match.final_result = _final_result(raw)
        match.match_statistics = resolve(raw, "match_statistics")
        match.venue = _optional_str(resolve(raw, "venue"))
        match.referee = _optional_str(resolve(raw, "referee"))
        match.attendance = _as_int(resolve(raw, "attendance"))

    return match
