"""
Record store for canonical market matches.

``upsert`` is the only mutation path for match data. It runs as one
read-modify-write inside a single transaction and enforces the record
invariants:

- one row per ``match_id``
- ``last_synced_at`` strictly advances (``StaleWriteError`` otherwise)
- once FINISHED, status and finished-only fields are frozen
- a successful upsert clears the error bookkeeping and bumps ``sync_count``
"""
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.models.models import MarketMatch
from app.repositories.base import BaseRepository
from app.services.market.types import CanonicalMatch, MatchStatus, SyncPriority, SyncState
from app.utils.timezone import utcnow

logger = get_logger(__name__)

# Columns that stay fixed once a record reaches FINISHED
_FINISHED_FROZEN = ("status", "final_result", "match_statistics", "venue", "referee", "attendance")
_LIVE_ONLY = ("current_score", "elapsed_minutes", "period", "live_statistics", "momentum")


class StaleWriteError(Exception):
    """An upsert would not advance ``last_synced_at``."""

    def __init__(self, match_id: str, stored: datetime, attempted: datetime):
        self.match_id = match_id
        self.stored = stored
        self.attempted = attempted
        super().__init__(
            f"Stale write for match {match_id}: last_synced_at {attempted.isoformat()} "
            f"does not advance stored {stored.isoformat()}"
        )


class MarketMatchRepository(BaseRepository[MarketMatch]):
    """Repository for MarketMatch rows."""

    def __init__(self, db: Session):
        super().__init__(MarketMatch, db)

    # ========================================================================
    # Reads
    # ========================================================================

    def get_by_match_id(self, match_id: str) -> Optional[MarketMatch]:
        return self.where_first(MarketMatch.match_id == match_id)

    def get_sync_state(self, match_id: str) -> Optional[SyncState]:
        """Sync bookkeeping of the stored record, or None if the match is new."""
        row = (
            self.db.query(
                MarketMatch.status,
                MarketMatch.last_synced_at,
                MarketMatch.next_sync_at,
                MarketMatch.sync_priority,
            )
            .filter(MarketMatch.match_id == match_id)
            .first()
        )
        return SyncState.from_record(row) if row else None

    def list_by_status(self, status: MatchStatus, limit: Optional[int] = None) -> List[MarketMatch]:
        query = self.query().filter(MarketMatch.status == status.value).order_by(MarketMatch.kickoff_date)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def most_recently_synced(self, status: MatchStatus) -> Optional[MarketMatch]:
        return (
            self.query()
            .filter(MarketMatch.status == status.value)
            .order_by(desc(MarketMatch.last_synced_at))
            .first()
        )

    def count_by_status(self, status: MatchStatus) -> int:
        return self.count(MarketMatch.status == status.value)

    def list_with_markets(self, status: MatchStatus, limit: Optional[int] = None) -> List[MarketMatch]:
        """Matches in ``status`` that carry a provider market block."""
        query = (
            self.query()
            .filter(MarketMatch.status == status.value, MarketMatch.additional_markets.isnot(None))
            .order_by(MarketMatch.kickoff_date)
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    # ========================================================================
    # Writes
    # ========================================================================

    def upsert(self, match: CanonicalMatch) -> MarketMatch:
        """
        Create or update the record for ``match.match_id`` and commit.

        Args:
            match: Canonical match; its ``sync.last_synced_at`` is the write time

        Returns:
            The persisted MarketMatch

        Raises:
            StaleWriteError: If the write would not advance last_synced_at
        """
        try:
            row = self._apply(match)
            self.db.commit()
        except IntegrityError:
            # Concurrent first insert of the same match; retry as an update
            self.db.rollback()
            try:
                row = self._apply(match)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
        except Exception:
            self.db.rollback()
            raise
        return row

    def _apply(self, match: CanonicalMatch) -> MarketMatch:
        values = match.to_record()
        written_at = values["last_synced_at"] or utcnow()

        row = (
            self.query()
            .filter(MarketMatch.match_id == match.match_id)
            .with_for_update()
            .first()
        )

        if row is None:
            row = MarketMatch(
                id=str(uuid.uuid4()),
                created_at=written_at,
                updated_at=written_at,
                sync_count=0,
                sync_error_count=0,
                **values,
            )
            self.db.add(row)
            self.db.flush()
        else:
            if row.last_synced_at is not None and written_at <= row.last_synced_at:
                raise StaleWriteError(match.match_id, row.last_synced_at, written_at)

            if row.status == MatchStatus.FINISHED.value:
                for column in _FINISHED_FROZEN:
                    values.pop(column, None)
                for column in _LIVE_ONLY:
                    values[column] = None
                values["next_sync_at"] = None
                values["sync_priority"] = SyncPriority.LOW.value

            for column, value in values.items():
                setattr(row, column, value)

        row.sync_error_count = 0
        row.last_sync_error = None
        row.sync_count = (row.sync_count or 0) + 1
        row.updated_at = written_at
        return row

    def record_sync_error(self, match_id: str, message: str) -> bool:
        """
        Increment the error counter and store the message on an existing row.

        Returns:
            True if a row was updated
        """
        try:
            updated = (
                self.query()
                .filter(MarketMatch.match_id == match_id)
                .update(
                    {
                        MarketMatch.sync_error_count: MarketMatch.sync_error_count + 1,
                        MarketMatch.last_sync_error: message[:1000],
                        MarketMatch.updated_at: utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return updated > 0
