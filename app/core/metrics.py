"""
Prometheus metrics for the market sync service.

Metrics exposed:
- Upstream market API request outcomes and retries
- Per-status match sync results and batch durations
- Scheduler status gauges
"""
from prometheus_client import Counter, Gauge, Histogram

# Upstream market API
market_api_requests_total = Counter(
    "market_api_requests_total",
    "Market API requests by outcome",
    ["outcome"]
)

market_api_retries_total = Counter(
    "market_api_retries_total",
    "Market API retries scheduled after a failed attempt",
    ["status"]
)

# Sync results
market_sync_matches_total = Counter(
    "market_sync_matches_total",
    "Matches processed by the sync orchestrator",
    ["status", "result"]
)

market_sync_duration_seconds = Histogram(
    "market_sync_duration_seconds",
    "Wall-clock duration of one status batch",
    ["status"],
    buckets=(0.1, 0.5, 1, 2.5, 5, 10, 30, 60, 120)
)

# Scheduler
scheduler_running = Gauge(
    "scheduler_running",
    "Whether the sync scheduler is running (1=running, 0=stopped)"
)

scheduler_jobs_total = Gauge(
    "scheduler_jobs_total",
    "Number of scheduled sync jobs"
)


def record_market_api_request(outcome: str) -> None:
    """Count one upstream request; outcome is 'success' or an error class."""
    market_api_requests_total.labels(outcome=outcome).inc()


def record_market_api_retry(status: str) -> None:
    market_api_retries_total.labels(status=status).inc()


def record_sync_batch(status: str, synced: int, skipped: int, errors: int, duration_seconds: float) -> None:
    """Fold the counts of one finished status batch into the sync metrics."""
    for result, count in (("synced", synced), ("skipped", skipped), ("error", errors)):
        if count:
            market_sync_matches_total.labels(status=status, result=result).inc(count)
    market_sync_duration_seconds.labels(status=status).observe(duration_seconds)


def update_scheduler_metrics():
    """Refresh scheduler gauges from the global scheduler instance."""
    from app.core.scheduler import get_scheduler

    scheduler = get_scheduler()
    if scheduler and scheduler.running:
        scheduler_running.set(1)
        scheduler_jobs_total.set(len(scheduler.scheduler.get_jobs()))
    else:
        scheduler_running.set(0)
        scheduler_jobs_total.set(0)
