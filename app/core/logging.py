"""
Structured logging for the market sync service.

Provides:
- JSON formatting with correlation and sync-run identifiers
- A readable colored formatter for local development
- Context helpers so request handlers and sync runs can tag every log line
"""
import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Any

# Request-scoped id, set by CorrelationIdMiddleware
correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

# Sync-run-scoped id, set by the orchestrator for the duration of one run
sync_run_id_var: ContextVar[str] = ContextVar("sync_run_id", default="")

# Failed diagnostic writes (error bookkeeping on match rows) are routed here
DIAGNOSTICS_LOGGER_NAME = "app.sync.diagnostics"

_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime", "taskName"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


class JSONFormatter(logging.Formatter):
    """
    Render each record as a single JSON object.

    Keys: timestamp, level, logger, message, correlation_id, sync_run_id,
    plus ``exception`` when exc_info is set and ``extra`` for anything passed
    via ``extra=``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": correlation_id_var.get(),
            "sync_run_id": sync_run_id_var.get(),
        }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra = _extra_fields(record)
        if extra:
            payload["extra"] = extra

        return json.dumps(payload, default=str)


class ColoredFormatter(logging.Formatter):
    """Human-readable console output used when LOG_JSON is off."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        line = f"{color}[{record.levelname}]{self.RESET} {record.name}: {record.getMessage()}"

        extra = _extra_fields(record)
        if extra:
            line += " " + " ".join(f"{k}={v}" for k, v in extra.items())

        run_id = sync_run_id_var.get()
        if run_id:
            line += f" | run={run_id}"

        correlation_id = correlation_id_var.get()
        if correlation_id:
            line += f" | correlation_id={correlation_id}"

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    handler: logging.Handler | None = None,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Logging level name
        json_output: JSON lines when True, colored console output otherwise
        handler: Optional handler; defaults to a stdout StreamHandler
    """
    root = logging.getLogger()
    root.handlers.clear()

    log_level = getattr(logging, level.upper(), logging.INFO)
    root.setLevel(log_level)

    if handler is None:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)

    handler.setFormatter(JSONFormatter() if json_output else ColoredFormatter())
    root.addHandler(handler)

    # Third-party chatter
    for noisy in ("httpx", "httpcore", "uvicorn.access", "apscheduler.executors.default"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return the module logger for ``name`` (usually ``__name__``)."""
    return logging.getLogger(name)


def get_diagnostics_logger() -> logging.Logger:
    """Logger that receives failures of the error-recording side channel."""
    return logging.getLogger(DIAGNOSTICS_LOGGER_NAME)


def set_correlation_id(correlation_id: str) -> Any:
    """Set the request correlation id; returns a token for ``clear_correlation_id``."""
    return correlation_id_var.set(correlation_id)


def get_correlation_id() -> str:
    return correlation_id_var.get()


def clear_correlation_id(token: Any) -> None:
    correlation_id_var.reset(token)


def set_sync_run_id(run_id: str) -> Any:
    """Tag subsequent log lines in this context with a sync run id."""
    return sync_run_id_var.set(run_id)


def clear_sync_run_id(token: Any) -> None:
    sync_run_id_var.reset(token)
