"""
Source-path table for upstream match payloads.

The provider has renamed fields across API versions (``id`` vs ``match_id``
vs ``matchId``, ``home.name`` vs ``homeTeam.name`` ...). Every canonical
field lists the dotted paths it may be read from, in priority order. A new
provider spelling is a new entry here; the transformer does not change.
"""
from typing import Any, Dict, Mapping, Optional, Tuple

FIELD_SOURCES: Dict[str, Tuple[str, ...]] = {
    # Identity
    "match_id": ("id", "match_id", "matchId"),

    # Descriptive
    "home_team": ("home.name", "homeTeam.name", "home_name"),
    "away_team": ("away.name", "awayTeam.name", "away_name"),
    "home_team_id": ("home.id", "homeTeam.id"),
    "away_team_id": ("away.id", "awayTeam.id"),
    "home_team_logo": ("home.logo_url", "homeTeam.logo"),
    "away_team_logo": ("away.logo_url", "awayTeam.logo"),
    "league": ("league.name", "leagueName"),
    "league_id": ("league.id",),
    "league_country": ("league.country",),
    "league_flag_url": ("league.flagUrl", "league.flag"),
    "league_flag_emoji": ("league.flagEmoji",),

    # Lifecycle
    "status": ("status",),
    "kickoff_date": ("kickoff_at", "kickoff_utc", "matchDate"),

    # Market snapshot
    "novig_odds": ("odds.novig_current",),
    "consensus_odds": ("odds.novig_current", "odds.consensus"),
    "all_bookmakers": ("odds.books",),

    # Model snapshot
    "v1_model": ("models.v1_consensus", "predictions.v1"),
    "v2_model": ("models.v2_lightgbm", "predictions.v2"),

    # Live only
    "current_score": ("score", "live_data.current_score"),
    "elapsed_minutes": ("minute", "elapsed", "live_data.minute"),
    "period": ("period", "live_data.period"),
    "live_statistics": ("live_data.statistics", "statistics"),
    "momentum": ("momentum",),

    # Finished only
    "final_result": ("final_result",),
    "final_score": ("score", "final_score"),
    "outcome": ("outcome",),
    "outcome_text": ("outcome_text",),
    "match_statistics": ("match_statistics", "statistics"),
    "venue": ("venue",),
    "referee": ("referee",),
    "attendance": ("attendance",),

    # Provider market probabilities
    "additional_markets": ("additional_markets_v2", "model_markets", "predictions.additional_markets_v2"),
}

# Fallbacks for descriptive fields that must never be empty
FIELD_DEFAULTS: Dict[str, Any] = {
    "home_team": "Home Team",
    "away_team": "Away Team",
    "league": "Unknown League",
    "period": "Live",
}


def get_path(payload: Any, path: str) -> Optional[Any]:
    """Walk a dotted path through nested mappings; None when any hop is missing."""
    current = payload
    for key in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
        if current is None:
            return None
    return current


def resolve(payload: Mapping[str, Any], field_name: str) -> Optional[Any]:
    """
    First present value for ``field_name`` across its source paths.

    None and empty strings count as absent; falsy numbers such as 0 do not.
    Falls back to ``FIELD_DEFAULTS`` when nothing is found.

    Raises:
        KeyError: If ``field_name`` has no entry in FIELD_SOURCES
    """
    for path in FIELD_SOURCES[field_name]:
        value = get_path(payload, path)
        if value is None or value == "":
            continue
        return value
    return FIELD_DEFAULTS.get(field_name)
