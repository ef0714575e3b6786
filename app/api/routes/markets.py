"""Market read routes.

Provides endpoints for:
- Derived market probabilities for one stored match
- Same-game parlay candidates across upcoming matches
"""
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.models import MarketMatch
from app.repositories import MarketMatchRepository
from app.services.betting import MatchMarkets, generate_candidates, markets_from_table
from app.services.market.types import MatchStatus
from app.services.markets import MarketProbabilityTable, compute_markets

logger = logging.getLogger(__name__)

router = APIRouter(tags=["markets"])


def get_repository(db: Session = Depends(get_db)) -> MarketMatchRepository:
    """Dependency to get the market match repository."""
    return MarketMatchRepository(db)


def table_for_record(record: MarketMatch) -> Optional[MarketProbabilityTable]:
    """
    Derive markets for a stored match at its current clock.

    Upcoming matches have the full 90 minutes ahead, live matches use the
    stored clock, and anything else counts as fully played. The stored
    provider market block is the baseline the live estimate is blended with.
    """
    if record.status == MatchStatus.UPCOMING.value:
        elapsed = 0
    elif record.status == MatchStatus.LIVE.value:
        elapsed = record.elapsed_minutes
    else:
        elapsed = None
    return compute_markets(
        record.consensus_odds, record.current_score, elapsed, baseline=record.additional_markets
    )


@router.get("/matches/{match_id}/markets")
async def get_match_markets(
    match_id: str,
    repository: MarketMatchRepository = Depends(get_repository),
):
    """
    Derived totals, team totals, BTTS and Asian handicap for one match.

    ``markets`` is null when the stored consensus odds are unusable.
    """
    record = repository.get_by_match_id(match_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Match {match_id} not found")

    table = table_for_record(record)
    return {
        "matchId": record.match_id,
        "status": record.status,
        "homeTeam": record.home_team,
        "awayTeam": record.away_team,
        "currentScore": record.current_score,
        "elapsedMinutes": record.elapsed_minutes,
        "markets": table.to_dict() if table else None,
    }


@router.get("/parlays/same-game")
async def get_same_game_parlays(
    limit: int = Query(50, ge=1, le=500, description="Maximum candidates returned"),
    source: Literal["provider", "derived"] = Query(
        "provider", description="provider: stored market blocks; derived: computed from consensus odds"
    ),
    min_leg_probability: float = Query(0.55, ge=0.5, le=0.95),
    repository: MarketMatchRepository = Depends(get_repository),
):
    """
    Same-game parlay candidates over upcoming matches, best first.
    """
    matches = []
    if source == "provider":
        for record in repository.list_with_markets(MatchStatus.UPCOMING):
            match = MatchMarkets.from_record(record)
            if match is not None:
                matches.append(match)
    else:
        for record in repository.list_by_status(MatchStatus.UPCOMING):
            table = table_for_record(record)
            if table is None:
                continue
            matches.append(MatchMarkets(
                match_id=record.match_id,
                markets=markets_from_table(table),
                home_team=record.home_team,
                away_team=record.away_team,
                league=record.league,
                kickoff_date=record.kickoff_date,
            ))

    candidates = generate_candidates(matches, min_leg_probability)
    logger.info(f"Same-game parlays ({source}): {len(candidates)} candidates from {len(matches)} matches")

    return {
        "source": source,
        "matchCount": len(matches),
        "total": len(candidates),
        "parlays": [c.to_dict() for c in candidates[:limit]],
    }
