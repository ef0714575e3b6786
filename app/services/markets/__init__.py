"""
Derived market probabilities (totals, team totals, BTTS, Asian handicap).
"""
from app.services.markets.derived_markets import MarketProbabilityTable, compute_markets

__all__ = ["MarketProbabilityTable", "compute_markets"]
