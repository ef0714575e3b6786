"""
Fire-and-forget recording of per-match sync failures.

When an upsert fails, the orchestrator asks the recorder to bump the stored
row's ``sync_error_count`` and ``last_sync_error``. The write runs as a
separate task on its own session and is never awaited by the batch; if it
fails, the failure goes to the ``app.sync.diagnostics`` logger and nowhere
else.
"""
import asyncio
from typing import Callable, Set

from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.core.logging import get_diagnostics_logger, get_logger
from app.repositories.market_match_repository import MarketMatchRepository

logger = get_logger(__name__)
diagnostics_logger = get_diagnostics_logger()


class SyncErrorRecorder:
    """
    Schedules error bookkeeping writes off the critical path.

    Attributes:
        session_factory: Callable returning a fresh Session per write
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def record(self, match_id: str, message: str) -> None:
        """Schedule a write; returns immediately."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync caller): write inline, still never raising
            self._write(match_id, message)
            return

        task = loop.create_task(self._write_async(match_id, message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for scheduled writes; used at the end of a run and in tests."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _write_async(self, match_id: str, message: str) -> None:
        self._write(match_id, message)

    def _write(self, match_id: str, message: str) -> None:
        db = self.session_factory()
        try:
            updated = MarketMatchRepository(db).record_sync_error(match_id, message)
            if not updated:
                logger.debug(f"No stored row to record sync error on for match {match_id}")
        except Exception as e:
            diagnostics_logger.warning(
                f"Failed to record sync error for match {match_id}: {e}",
                extra={"match_id": match_id, "original_error": message},
                exc_info=True,
            )
        finally:
            db.close()
