"""Sync orchestrator for the upstream market feed.

For each requested status (live, then upcoming, then completed) a run:

1. fetches raw matches (with retry, see ``MarketApiClient``)
2. transforms each payload; no usable id -> skipped
3. consults the freshness gate against the stored record -> skipped
4. upserts, clearing the row's error bookkeeping -> synced
5. on a per-match failure counts an error, schedules best-effort error
   recording on the row, and moves on

A failed fetch becomes one aggregate error for that status and never stops
the remaining statuses. Counts are kept per status and rolled into a run
summary with the wall-clock duration.

Sync Schedule (see app/core/scheduler.py):
- live: every minute (30s freshness window)
- upcoming: every 10 minutes
- completed: every 30 minutes
"""
import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import clear_sync_run_id, get_logger, set_sync_run_id
from app.core.metrics import record_sync_batch
from app.models.models import SyncMetadata
from app.repositories.market_match_repository import MarketMatchRepository, StaleWriteError
from app.repositories.sync_metadata_repository import SyncMetadataRepository
from app.services.market.client import FetchError, MarketApiClient
from app.services.market.freshness import DEFAULT_POLICY, FreshnessPolicy, should_skip
from app.services.market.transformer import transform
from app.services.market.types import FETCH_STATUSES, MatchStatus
from app.services.sync import health
from app.services.sync.error_recorder import SyncErrorRecorder
from app.utils.timezone import utcnow

logger = get_logger(__name__)

SYNC_SOURCE = "market_api"

# Stored status each fetch status is reported under
STORED_STATUS = {
    "live": MatchStatus.LIVE,
    "upcoming": MatchStatus.UPCOMING,
    "completed": MatchStatus.FINISHED,
}


@dataclass
class StatusResult:
    """Mutable counters for one status batch; survive cancellation."""
    synced: int = 0
    errors: int = 0
    skipped: int = 0
    cancelled: bool = False
    error_messages: List[str] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.synced + self.errors + self.skipped

    def to_dict(self) -> Dict:
        data = {"synced": self.synced, "errors": self.errors, "skipped": self.skipped}
        if self.cancelled:
            data["cancelled"] = True
        return data


def resolve_statuses(sync_type: str) -> Sequence[str]:
    """
    Expand a trigger ``type`` into the statuses to visit.

    Raises:
        ValueError: For anything other than live, upcoming, completed or all
    """
    if sync_type == "all":
        return FETCH_STATUSES
    if sync_type in FETCH_STATUSES:
        return (sync_type,)
    raise ValueError(f"Unknown sync type: {sync_type}. Must be one of: {['all', *FETCH_STATUSES]}")


class MarketSyncOrchestrator:
    """
    Coordinates market sync runs.

    All sync operations (scheduled, manual, background jobs) go through this
    orchestrator.
    """

    def __init__(
        self,
        db: Session,
        client: Optional[MarketApiClient] = None,
        error_recorder: Optional[SyncErrorRecorder] = None,
        clock: Callable[[], datetime] = utcnow,
        policy: FreshnessPolicy = DEFAULT_POLICY,
    ):
        """
        Initialize the orchestrator.

        Args:
            db: SQLAlchemy database session
            client: Market API client (created lazily from settings when omitted)
            error_recorder: Side channel for per-match error bookkeeping
            clock: Source of naive-UTC "now"
            policy: Freshness windows
        """
        self.db = db
        self.matches = MarketMatchRepository(db)
        self.metadata = SyncMetadataRepository(db)
        self.error_recorder = error_recorder or SyncErrorRecorder()
        self.clock = clock
        self.policy = policy
        self._client = client

    @property
    def client(self) -> MarketApiClient:
        """Lazy load the API client."""
        if self._client is None:
            self._client = MarketApiClient()
        return self._client

    # ========================================================================
    # Runs
    # ========================================================================

    async def run(
        self,
        sync_type: str = "all",
        force: bool = False,
        timeout: Optional[float] = None,
    ) -> Dict:
        """
        Run a sync over one or all statuses.

        Args:
            sync_type: live, upcoming, completed or all
            force: Bypass the freshness gate
            timeout: Deadline for the whole run in seconds (defaults to
                SYNC_RUN_TIMEOUT_SECONDS); the in-flight batch is cancelled
                and statuses not yet started are reported as cancelled

        Returns:
            Dict with success flag, per-status results, summary and the
            collected error messages
        """
        statuses = resolve_statuses(sync_type)
        timeout = settings.SYNC_RUN_TIMEOUT_SECONDS if timeout is None else timeout

        run_id = uuid.uuid4().hex[:12]
        token = set_sync_run_id(run_id)
        started = time.perf_counter()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        results: Dict[str, StatusResult] = {status: StatusResult() for status in statuses}
        logger.info(f"Starting market sync (type={sync_type}, force={force})", extra={"sync_type": sync_type, "force": force})

        try:
            for status in statuses:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    results[status].cancelled = True
                    logger.warning(f"Sync run deadline reached before {status} batch started", extra={"status": status})
                    continue
                try:
                    await asyncio.wait_for(
                        self.sync_status(status, force=force, result=results[status]),
                        timeout=remaining,
                    )
                except asyncio.TimeoutError:
                    results[status].cancelled = True
                    logger.warning(
                        f"Sync run deadline reached during {status} batch",
                        extra={"status": status, **results[status].to_dict()},
                    )

            await self.error_recorder.drain()
        finally:
            clear_sync_run_id(token)

        duration_ms = int((time.perf_counter() - started) * 1000)
        summary = {
            "totalSynced": sum(r.synced for r in results.values()),
            "totalErrors": sum(r.errors for r in results.values()),
            "totalSkipped": sum(r.skipped for r in results.values()),
            "duration": f"{duration_ms}ms",
        }
        cancelled = [status for status, r in results.items() if r.cancelled]
        if cancelled:
            summary["cancelled"] = cancelled

        logger.info(
            f"Market sync complete: {summary['totalSynced']} synced, "
            f"{summary['totalErrors']} errors, {summary['totalSkipped']} skipped ({duration_ms}ms)",
            extra={"sync_type": sync_type, "duration_ms": duration_ms},
        )

        return {
            "success": True,
            "results": {status: r.to_dict() for status, r in results.items()},
            "summary": summary,
            "error_messages": [msg for r in results.values() for msg in r.error_messages],
        }

    async def sync_status(
        self,
        status: str,
        force: bool = False,
        result: Optional[StatusResult] = None,
    ) -> StatusResult:
        """
        Sync one status batch.

        Args:
            status: live, upcoming or completed
            force: Bypass the freshness gate
            result: Counter object to fill in; pass one in to keep partial
                counts if the batch is cancelled

        Returns:
            The filled StatusResult
        """
        result = result if result is not None else StatusResult()
        started = time.perf_counter()
        metadata = self._start_metadata(status)

        try:
            try:
                raw_matches = await self.client.fetch_matches(status)
            except FetchError as e:
                result.errors += 1
                result.error_messages.append(f"{status}: {e.message}")
                logger.error(f"Fetch failed for {status} matches: {e.message}", extra={"status": status})
                self._finish_metadata(metadata, result, started, "failed", error=e.message)
                return result

            for raw in raw_matches:
                # Let pending diagnostics and cancellation run between matches
                await asyncio.sleep(0)
                self._sync_one(raw, status, force, result)

            state = "partial" if result.errors else "success"
            self._finish_metadata(metadata, result, started, state)
        except asyncio.CancelledError:
            result.cancelled = True
            self._finish_metadata(metadata, result, started, "cancelled")
            raise
        except Exception as e:
            result.errors += 1
            result.error_messages.append(f"{status}: {e}")
            logger.error(f"Sync batch failed for {status}: {e}", extra={"status": status}, exc_info=True)
            self.db.rollback()
            self._finish_metadata(metadata, result, started, "failed", error=str(e))
            return result

        logger.info(
            f"Synced {status}: {result.synced} synced, {result.errors} errors, {result.skipped} skipped",
            extra={"status": status, **result.to_dict()},
        )
        return result

    def _sync_one(self, raw: Dict, status: str, force: bool, result: StatusResult) -> None:
        now = self.clock()
        try:
            match = transform(raw, now, self.policy)
        except Exception as e:
            match_id = raw.get("id") if isinstance(raw, dict) else None
            result.errors += 1
            result.error_messages.append(f"{match_id}: {e}")
            logger.error(
                f"Failed to transform match {match_id}: {e}",
                extra={"status": status, "match_id": match_id},
                exc_info=True,
            )
            return

        if match is None:
            result.skipped += 1
            return

        try:
            if not force and should_skip(self.matches.get_sync_state(match.match_id), now, self.policy):
                result.skipped += 1
                return

            self.matches.upsert(match)
            result.synced += 1
        except StaleWriteError as e:
            # Stored data is at least as new as this observation
            logger.debug(str(e), extra={"status": status, "match_id": match.match_id})
            result.skipped += 1
        except Exception as e:
            result.errors += 1
            result.error_messages.append(f"{match.match_id}: {e}")
            logger.error(
                f"Failed to sync match {match.match_id}: {e}",
                extra={"status": status, "match_id": match.match_id},
                exc_info=True,
            )
            self.error_recorder.record(match.match_id, str(e))

    # ========================================================================
    # Metadata / health
    # ========================================================================

    def _start_metadata(self, status: str) -> SyncMetadata:
        metadata = self.metadata.get_or_create(SYNC_SOURCE, status)
        metadata.last_sync_started_at = utcnow()
        metadata.last_sync_status = "running"
        metadata.error_message = None
        self.db.commit()
        return metadata

    def _finish_metadata(
        self,
        metadata: SyncMetadata,
        result: StatusResult,
        started: float,
        state: str,
        error: Optional[str] = None,
    ) -> None:
        duration = time.perf_counter() - started
        metadata.last_sync_completed_at = utcnow()
        metadata.last_sync_status = state
        metadata.records_processed = result.processed
        metadata.records_synced = result.synced
        metadata.records_skipped = result.skipped
        metadata.records_failed = result.errors
        metadata.sync_duration_ms = round(duration * 1000, 1)
        if error is None and result.error_messages:
            error = result.error_messages[0]
        metadata.error_message = error
        self.db.commit()
        record_sync_batch(metadata.data_type, result.synced, result.skipped, result.errors, duration)

    def get_sync_status(self) -> Dict:
        """
        Return per-status sync health and the run ledger.

        Returns:
            Dict with ``status`` (per fetch status), ``overall`` and ``runs``
        """
        now = self.clock()
        intervals = {
            "live": self.policy.live_window,
            "upcoming": self.policy.upcoming_window,
            "completed": self.policy.upcoming_window,
        }

        report = {}
        for status, stored_status in STORED_STATUS.items():
            newest = self.matches.most_recently_synced(stored_status)
            count = self.matches.count_by_status(stored_status)
            last_synced_at = newest.last_synced_at if newest else None
            error_count = newest.sync_error_count if newest else 0
            report[status] = {
                "status": health.classify(last_synced_at, error_count, count, intervals[status], now),
                "lastSyncedAt": last_synced_at.isoformat() if last_synced_at else None,
                "timeSinceLastSync": health.format_age(last_synced_at, now),
                "matchCount": count,
                "syncErrors": error_count,
                "syncCount": newest.sync_count if newest else 0,
            }

        runs = {
            m.data_type: {
                "lastSyncStatus": m.last_sync_status,
                "lastSyncStartedAt": m.last_sync_started_at.isoformat() if m.last_sync_started_at else None,
                "lastSyncCompletedAt": m.last_sync_completed_at.isoformat() if m.last_sync_completed_at else None,
                "processed": m.records_processed,
                "synced": m.records_synced,
                "skipped": m.records_skipped,
                "failed": m.records_failed,
                "durationMs": m.sync_duration_ms,
                "error": m.error_message,
            }
            for m in self.metadata.list_for_source(SYNC_SOURCE)
        }

        return {
            "success": True,
            "status": report,
            "overall": {
                "status": health.overall(report["live"]["status"], report["upcoming"]["status"]),
                "lastCheckedAt": now.isoformat(),
            },
            "runs": runs,
        }

    async def cleanup(self):
        """Close the API client if this orchestrator created it."""
        if self._client is not None:
            await self._client.aclose()
