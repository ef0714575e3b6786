"""
Value types shared by the market sync pipeline.

``CanonicalMatch`` is what the transformer produces and the repository
persists. ``SyncState`` is the slice of a record the freshness gate reasons
about; it is passed into and returned from pure functions rather than read
from the clock.
"""
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class MatchStatus(str, Enum):
    """Lifecycle status of a canonical match."""
    UPCOMING = "UPCOMING"
    LIVE = "LIVE"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"
    POSTPONED = "POSTPONED"


class SyncPriority(str, Enum):
    """Coarse scheduling hint for a match."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Statuses that never get a next_sync_at
TERMINAL_STATUSES = frozenset({MatchStatus.FINISHED, MatchStatus.CANCELLED, MatchStatus.POSTPONED})

# Statuses accepted by the upstream query, in the order a full run visits them
FETCH_STATUSES = ("live", "upcoming", "completed")


@dataclass(frozen=True)
class SyncState:
    """Sync bookkeeping for one match."""
    status: MatchStatus
    last_synced_at: Optional[datetime] = None
    next_sync_at: Optional[datetime] = None
    sync_priority: SyncPriority = SyncPriority.LOW

    @classmethod
    def from_record(cls, record: Any) -> "SyncState":
        """Build from a stored ``MarketMatch`` row (or anything with the same attributes)."""
        return cls(
            status=MatchStatus(record.status),
            last_synced_at=record.last_synced_at,
            next_sync_at=record.next_sync_at,
            sync_priority=SyncPriority(record.sync_priority or SyncPriority.LOW.value),
        )


@dataclass
class CanonicalMatch:
    """Canonical match record produced from one upstream payload."""
    match_id: str
    home_team: str
    away_team: str
    league: str
    status: MatchStatus
    kickoff_date: datetime
    sync: SyncState

    home_team_id: Optional[str] = None
    away_team_id: Optional[str] = None
    home_team_logo: Optional[str] = None
    away_team_logo: Optional[str] = None
    league_id: Optional[str] = None
    league_country: Optional[str] = None
    league_flag_url: Optional[str] = None
    league_flag_emoji: Optional[str] = None

    consensus_odds: Optional[Dict[str, float]] = None
    is_consensus_odds: bool = False
    all_bookmakers: Optional[Dict[str, Any]] = None
    primary_book: Optional[str] = None
    book_count: int = 0

    v1_model: Optional[Dict[str, Any]] = None
    v2_model: Optional[Dict[str, Any]] = None

    # Populated only while LIVE
    current_score: Optional[Dict[str, int]] = None
    elapsed_minutes: Optional[int] = None
    period: Optional[str] = None
    live_statistics: Optional[Any] = None
    momentum: Optional[Any] = None

    # Populated only once FINISHED
    final_result: Optional[Dict[str, Any]] = None
    match_statistics: Optional[Any] = None
    venue: Optional[str] = None
    referee: Optional[str] = None
    attendance: Optional[int] = None

    additional_markets: Optional[Dict[str, Any]] = None
    raw_payload: Dict[str, Any] = field(default_factory=dict)

    def to_record(self) -> Dict[str, Any]:
        """Column values for the ``market_matches`` row, sync bookkeeping included."""
        values = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name not in ("sync", "status")
        }
        values["status"] = self.status.value
        values["last_synced_at"] = self.sync.last_synced_at
        values["next_sync_at"] = self.sync.next_sync_at
        values["sync_priority"] = self.sync.sync_priority.value
        return values
