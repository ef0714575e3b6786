"""
Repository layer for data access.

Usage:
    from app.repositories import MarketMatchRepository
    from app.core.database import SessionLocal

    db = SessionLocal()
    repo = MarketMatchRepository(db)
    match = repo.get_by_match_id("12345")
    db.close()
"""

from app.repositories.base import BaseRepository
from app.repositories.market_match_repository import MarketMatchRepository, StaleWriteError
from app.repositories.sync_metadata_repository import SyncMetadataRepository

__all__ = [
    "BaseRepository",
    "MarketMatchRepository",
    "StaleWriteError",
    "SyncMetadataRepository",
]
