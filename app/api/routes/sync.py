"""Market sync API routes.

Provides endpoints for:
- Scheduled sync trigger (shared cron secret)
- Manual sync trigger (admin operators, optional force)
- Sync health monitoring
"""
import logging
import time
from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.auth import Operator, require_admin, verify_cron_secret
from app.core.database import get_db
from app.services.sync.orchestrator import MarketSyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/market", tags=["market-sync"])

SyncType = Literal["live", "upcoming", "completed", "all"]

# Manual trigger returns at most this many error messages
MAX_ERROR_MESSAGES = 5


class ManualSyncRequest(BaseModel):
    """Body of the manual sync trigger."""
    type: SyncType = Field("all", description="Which statuses to sync")
    force: Any = Field(False, description="Bypass the freshness gate (only a literal true counts)")


def get_orchestrator(db: Session = Depends(get_db)) -> MarketSyncOrchestrator:
    """Dependency to get sync orchestrator instance."""
    return MarketSyncOrchestrator(db)


def _failure(error: Exception, started: float) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": str(error) or error.__class__.__name__,
            "duration": f"{int((time.perf_counter() - started) * 1000)}ms",
        },
    )


@router.get("/sync", dependencies=[Depends(verify_cron_secret)])
async def scheduled_sync(
    type: SyncType = Query("all", description="live, upcoming, completed or all"),
    orchestrator: MarketSyncOrchestrator = Depends(get_orchestrator),
):
    """
    Scheduled sync trigger for an external periodic invoker.

    Requires ``Authorization: Bearer {CRON_SECRET}``.

    Returns:
        {success, results: {status: {synced, errors, skipped}}, summary}
    """
    started = time.perf_counter()
    try:
        result = await orchestrator.run(sync_type=type)
    except Exception as e:
        logger.error(f"❌ Scheduled market sync failed: {e}", exc_info=True)
        return _failure(e, started)
    finally:
        await orchestrator.cleanup()

    return {
        "success": result["success"],
        "results": result["results"],
        "summary": result["summary"],
    }


@router.post("/sync-manual")
async def manual_sync(
    request: Optional[ManualSyncRequest] = None,
    operator: Operator = Depends(require_admin),
    orchestrator: MarketSyncOrchestrator = Depends(get_orchestrator),
):
    """
    Manual sync trigger for admin operators.

    401 without a recognised credential, 403 for a non-admin operator.
    ``force: true`` upserts every fetched match regardless of freshness.
    """
    started = time.perf_counter()
    request = request or ManualSyncRequest()
    force = request.force is True
    logger.info(f"🔄 Manual market sync requested (type={request.type}, force={force})")

    try:
        result = await orchestrator.run(sync_type=request.type, force=force)
    except Exception as e:
        logger.error(f"❌ Manual market sync failed: {e}", exc_info=True)
        return _failure(e, started)
    finally:
        await orchestrator.cleanup()

    messages = result["error_messages"]
    return {
        "success": result["success"],
        "results": result["results"],
        "summary": result["summary"],
        "errorMessages": messages[:MAX_ERROR_MESSAGES],
        "moreErrors": max(0, len(messages) - MAX_ERROR_MESSAGES),
    }


@router.get("/sync-status")
async def sync_status(
    orchestrator: MarketSyncOrchestrator = Depends(get_orchestrator),
) -> Dict:
    """
    Per-status sync health (healthy, degraded, error) and the run ledger.
    """
    return orchestrator.get_sync_status()
