"""
Betting services package: same-game parlay generation.
"""

from app.services.betting.parlay_builder import (
    MatchMarkets,
    ParlayCandidate,
    SameGameParlayBuilder,
    generate_candidates,
    markets_from_table,
)

__all__ = [
    "MatchMarkets",
    "ParlayCandidate",
    "SameGameParlayBuilder",
    "generate_candidates",
    "markets_from_table",
]
