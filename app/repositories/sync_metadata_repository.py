"""
Repository for the per-status sync run ledger.
"""
import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.models import SyncMetadata
from app.repositories.base import BaseRepository


class SyncMetadataRepository(BaseRepository[SyncMetadata]):
    """One SyncMetadata row per (source, data_type)."""

    def __init__(self, db: Session):
        super().__init__(SyncMetadata, db)

    def get(self, source: str, data_type: str) -> Optional[SyncMetadata]:
        return self.where_first(SyncMetadata.source == source, SyncMetadata.data_type == data_type)

    def get_or_create(self, source: str, data_type: str) -> SyncMetadata:
        """Return the ledger row for (source, data_type), staging a new one if missing."""
        metadata = self.get(source, data_type)
        if metadata is None:
            metadata = self.add(SyncMetadata(
                id=str(uuid.uuid4()),
                source=source,
                data_type=data_type,
                records_processed=0,
                records_synced=0,
                records_skipped=0,
                records_failed=0,
            ))
        return metadata

    def list_for_source(self, source: str) -> List[SyncMetadata]:
        return self.where(SyncMetadata.source == source)
