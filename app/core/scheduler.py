"""
Scheduled market sync jobs.

Jobs:
- live sync: every minute (the 30s freshness window skips matches synced
  by an overlapping manual run)
- upcoming sync: every 10 minutes
- completed sync: every 30 minutes (each match is written once as FINISHED)

Scheduler: APScheduler (AsyncIOScheduler, runs on the FastAPI event loop)
"""
import logging
from typing import Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.core.metrics import update_scheduler_metrics
from app.services.sync.error_recorder import SyncErrorRecorder
from app.services.sync.orchestrator import MarketSyncOrchestrator

logger = logging.getLogger(__name__)

# status -> (interval minutes, misfire grace seconds)
SYNC_JOBS: Dict[str, tuple] = {
    "live": (1, 30),
    "upcoming": (10, 300),
    "completed": (30, 600),
}


async def run_sync_job(
    sync_type: str,
    session_factory: Callable[[], Session] = SessionLocal,
) -> Optional[Dict]:
    """
    Run one scheduled sync on its own session.

    Never raises: a scheduled job that throws would only be logged by
    APScheduler, so failures are logged here with context instead.

    Returns:
        The orchestrator result, or None if the run failed
    """
    db = session_factory()
    orchestrator = MarketSyncOrchestrator(db, error_recorder=SyncErrorRecorder(session_factory))
    try:
        result = await orchestrator.run(sync_type=sync_type)
        summary = result["summary"]
        logger.info(
            f"✅ Scheduled {sync_type} sync: {summary['totalSynced']} synced, "
            f"{summary['totalErrors']} errors, {summary['totalSkipped']} skipped ({summary['duration']})"
        )
        return result
    except Exception as e:
        logger.error(f"❌ Scheduled {sync_type} sync failed: {e}", exc_info=True)
        return None
    finally:
        await orchestrator.cleanup()
        db.close()


class AutomationScheduler:
    """
    Owns the APScheduler instance and the sync job definitions.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False
        self.session_factory = session_factory

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting market sync scheduler...")

        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,  # Never overlap runs of the same job
                "misfire_grace_time": 60,
            },
        )

        for sync_type, (minutes, grace) in SYNC_JOBS.items():
            self._schedule_sync(sync_type, minutes, grace)

        self.scheduler.start()
        self.running = True
        update_scheduler_metrics()

        logger.info("✅ Scheduler started with %d jobs", len(self.scheduler.get_jobs()))
        self._log_scheduled_jobs()

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=False)
        self.running = False
        update_scheduler_metrics()
        logger.info("✅ Scheduler stopped")

    def _schedule_sync(self, sync_type: str, minutes: int, grace: int):
        if self.scheduler is None:
            return

        self.scheduler.add_job(
            run_sync_job,
            trigger=IntervalTrigger(minutes=minutes),
            args=[sync_type, self.session_factory],
            id=f"market_sync_{sync_type}",
            name=f"Market sync ({sync_type})",
            misfire_grace_time=grace,
        )
        logger.info(f"✅ Scheduled: {sync_type} market sync (every {minutes} min)")

    def _log_scheduled_jobs(self):
        """Log all scheduled jobs for visibility."""
        jobs = self.scheduler.get_jobs()
        for job in jobs:
            next_run = job.next_run_time
            next_run_str = next_run.strftime("%Y-%m-%d %H:%M:%S UTC") if next_run else "Pending"
            logger.info(f"  • {job.name} (id={job.id}, next run: {next_run_str})")


# Global scheduler instance
_scheduler: Optional[AutomationScheduler] = None


async def start_scheduler():
    """Start the global scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AutomationScheduler()
        await _scheduler.start()
    return _scheduler


async def stop_scheduler():
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


def get_scheduler() -> Optional[AutomationScheduler]:
    """Get the global scheduler instance."""
    return _scheduler
