"""
Database models.

Usage:
    from app.models import MarketMatch, SyncMetadata
"""
from app.models.models import Base, MarketMatch, SyncMetadata

__all__ = ["Base", "MarketMatch", "SyncMetadata"]
