#!/usr/bin/env python3
"""
Background runner for the market sync scheduler.

Runs the sync jobs as a standalone service, without the HTTP API.
It can be run via systemd, supervisor, or directly.

Usage:
    python run_scheduler.py                  # Run in foreground
    python run_scheduler.py --list-jobs      # Show job definitions
    python run_scheduler.py --trigger live   # Run one sync now and exit
"""
import asyncio
import argparse
import signal
import sys
from typing import Optional

from app.core.config import settings
from app.core.database import init_db
from app.core.logging import configure_logging, get_logger
from app.core.scheduler import SYNC_JOBS, AutomationScheduler, run_sync_job

configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = get_logger(__name__)


class SchedulerRunner:
    """Runner for the market sync scheduler."""

    def __init__(self):
        self.scheduler: Optional[AutomationScheduler] = None
        self.shutdown = False

    async def start(self):
        """Start the scheduler and run until shutdown."""
        logger.info("🚀 Starting scheduler runner...")

        init_db()
        self.scheduler = AutomationScheduler()
        await self.scheduler.start()

        logger.info("✅ Scheduler is now running")
        logger.info("Press Ctrl+C to stop")

        # Setup signal handlers for graceful shutdown
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._set_shutdown)

        # Keep running until shutdown
        while not self.shutdown:
            await asyncio.sleep(1)

        await self.scheduler.stop()
        logger.info("✅ Scheduler runner stopped")

    def _set_shutdown(self):
        """Set shutdown flag."""
        logger.info("⏹️  Shutdown signal received")
        self.shutdown = True


async def run_trigger(sync_type: str) -> bool:
    """Run one sync immediately, outside the schedule."""
    init_db()
    print(f"🔄 Triggering {sync_type} market sync")
    result = await run_sync_job(sync_type)
    if result is None:
        print(f"❌ {sync_type} sync failed (see logs)")
        return False

    summary = result["summary"]
    print(
        f"✅ {sync_type} sync: {summary['totalSynced']} synced, "
        f"{summary['totalErrors']} errors, {summary['totalSkipped']} skipped ({summary['duration']})"
    )
    return True


def list_jobs():
    """Print the job definitions."""
    print("=" * 60)
    print("SCHEDULED MARKET SYNC JOBS")
    print("=" * 60)
    print()
    for sync_type, (minutes, grace) in SYNC_JOBS.items():
        print(f"📋 Market sync ({sync_type})")
        print(f"   ID: market_sync_{sync_type}")
        print(f"   Schedule: every {minutes} min (misfire grace {grace}s)")
        print()
    print("=" * 60)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run the market sync scheduler"
    )

    parser.add_argument(
        "--trigger",
        type=str,
        choices=sorted(list(SYNC_JOBS) + ["all"]),
        metavar="SYNC_TYPE",
        help="Run one sync (live, upcoming, completed or all) and exit"
    )

    parser.add_argument(
        "--list-jobs",
        action="store_true",
        help="List all scheduled jobs and exit"
    )

    args = parser.parse_args()

    if args.list_jobs:
        list_jobs()
        return 0

    if args.trigger:
        result = asyncio.run(run_trigger(args.trigger))
        return 0 if result else 1

    runner = SchedulerRunner()

    try:
        asyncio.run(runner.start())
    except KeyboardInterrupt:
        logger.info("🛑 Received interrupt, shutting down...")
        return 0
    except Exception as e:
        logger.error(f"❌ Scheduler error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
