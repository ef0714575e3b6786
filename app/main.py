"""
Main FastAPI application for the Market Match Sync API.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy import text

from app.core.config import settings
from app.core.database import SessionLocal, init_db
from app.core.logging import configure_logging, get_logger
from app.core.middleware import CorrelationIdMiddleware
from app.core import metrics
from app.api.routes import markets, sync

# Load environment variables from .env file
from dotenv import load_dotenv
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# Configure structured logging (JSON in deployments, colored output locally)
configure_logging(
    level=settings.LOG_LEVEL,
    json_output=settings.LOG_JSON
)
logger = get_logger(__name__)


# Configure rate limiting
def get_rate_limit_key(request: Request) -> str:
    """
    Get the rate limit key for a request.

    Uses IP address, with fallback to X-Forwarded-For for proxied requests.
    """
    # Check for forwarded address (behind proxy/load balancer)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=["60/minute"],
    storage_uri=settings.REDIS_URL if settings.RATE_LIMIT_STORAGE == "redis" else "memory://",
    enabled=settings.RATE_LIMIT_ENABLED
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    init_db()

    if settings.SCHEDULER_ENABLED:
        from app.core.scheduler import start_scheduler
        await start_scheduler()
        logger.info("Market sync scheduler started")
    else:
        logger.info("Market sync scheduler disabled (SCHEDULER_ENABLED=false)")

    metrics.update_scheduler_metrics()
    logger.info("Application started")

    yield

    # Shutdown
    if settings.SCHEDULER_ENABLED:
        from app.core.scheduler import stop_scheduler
        await stop_scheduler()
        logger.info("Market sync scheduler stopped")
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Keeps a local store of football match records in sync with an upstream market provider",
    lifespan=lifespan
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add correlation ID middleware (must be added before CORS for proper header handling)
app.add_middleware(CorrelationIdMiddleware)

# Initialize Prometheus metrics BEFORE including routes
instrumentator = Instrumentator()
instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
logger.info("Prometheus metrics initialized at /metrics")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# API v1 - All routes use /api/v1/ prefix for versioning
app.include_router(sync.router, prefix="/api/v1")  # Market sync triggers and health
app.include_router(markets.router, prefix="/api/v1")  # Derived markets and parlays


@app.get("/")
@limiter.limit("60/minute")
async def root(request: Request):
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "endpoints": {
            "api_version": "v1",
            "sync": {
                "scheduled": "/api/v1/market/sync",
                "manual": "/api/v1/market/sync-manual",
                "status": "/api/v1/market/sync-status",
            },
            "markets": {
                "match": "/api/v1/matches/{match_id}/markets",
                "same_game_parlays": "/api/v1/parlays/same-game",
            },
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }
    }


@app.get("/health")
@limiter.limit("120/minute")  # Higher limit for health checks
async def health_check(request: Request):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION
    }


@app.get("/api/health")
@limiter.limit("60/minute")
async def api_health(request: Request):
    """Detailed API health check with component-level status."""
    health_status = {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "components": {}
    }

    # Database
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        health_status["components"]["database"] = {"status": "connected"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["components"]["database"] = {"status": "error", "error": str(e)}
        health_status["status"] = "degraded"
    finally:
        db.close()

    # Scheduler
    from app.core.scheduler import get_scheduler
    scheduler = get_scheduler()
    health_status["components"]["scheduler"] = {
        "enabled": settings.SCHEDULER_ENABLED,
        "running": bool(scheduler and scheduler.running),
    }

    return health_status


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
