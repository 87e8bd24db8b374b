"""
JSON logging for the scoring engine.

One JSON object per line, ready for Loki or any line-oriented log shipper.
Every record carries timestamp, level, service, environment, trace_id and
message. Records emitted while a driver is being evaluated also carry
driver_id, and organization_id when the caller supplied one. Extra fields
passed as `context=` land under "context".
"""

import json
import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterator, Optional, Protocol

from atlas_score.config import LoggingConfig, ServiceConfig

# Scoring runs fan out over worker threads; asyncio.to_thread copies these
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="unknown")
driver_id_var: ContextVar[Optional[str]] = ContextVar("driver_id", default=None)
organization_id_var: ContextVar[Optional[str]] = ContextVar("organization_id", default=None)


class ScoringLogger(Protocol):
    """Logging capability accepted by the analytics functions."""

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None: ...

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None: ...


def new_trace_id() -> str:
    return f"run_{uuid.uuid4().hex[:16]}"


def get_trace_id() -> str:
    return trace_id_var.get()


def get_driver_id() -> Optional[str]:
    return driver_id_var.get()


def get_organization_id() -> Optional[str]:
    return organization_id_var.get()


def set_request_context(
    trace_id: str,
    driver_id: Optional[str] = None,
    organization_id: Optional[str] = None,
) -> None:
    """Set all context variables for the rest of the current context."""
    trace_id_var.set(trace_id)
    driver_id_var.set(driver_id)
    organization_id_var.set(organization_id)


@contextmanager
def request_context(
    trace_id: Optional[str] = None,
    driver_id: Optional[str] = None,
    organization_id: Optional[str] = None,
) -> Iterator[str]:
    """
    Set the context variables for the duration of a block, then restore them.

    Without an explicit trace_id the enclosing run's id is kept; outside any
    run a fresh one is generated. Yields the trace id in effect.

    Usage:
        with request_context(driver_id=metrics.driver_id):
            check_deactivation(metrics)
    """
    if trace_id is None:
        trace_id = get_trace_id()
        if trace_id == "unknown":
            trace_id = new_trace_id()

    tokens = [
        (trace_id_var, trace_id_var.set(trace_id)),
        (driver_id_var, driver_id_var.set(driver_id)),
        (organization_id_var, organization_id_var.set(organization_id)),
    ]
    try:
        yield trace_id
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class JsonFormatter(logging.Formatter):
    """Formats each record as a single JSON line."""

    def __init__(self, service: str = "atlas-score", environment: str = "production"):
        super().__init__()
        self.service = service
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "service": self.service,
            "environment": self.environment,
            "trace_id": get_trace_id(),
            "message": record.getMessage(),
        }

        driver_id = get_driver_id()
        if driver_id is not None:
            log_data["driver_id"] = driver_id

        organization_id = get_organization_id()
        if organization_id is not None:
            log_data["organization_id"] = organization_id

        if record.name and record.name != "root":
            log_data["logger"] = record.name

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = _jsonable(context)

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_data["exception"] = {
                "type": exc_type.__name__ if exc_type else "Unknown",
                "message": str(exc_value) if exc_value else "",
                "traceback": self.formatException(record.exc_info),
            }

        if record.levelno >= logging.ERROR:
            log_data["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str, ensure_ascii=False)


def _jsonable(value: Any) -> Any:
    # Scoring results are pydantic models; everything unknown becomes a string
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, (str, int, float, bool, type(None))):
        return value
    if hasattr(value, "model_dump"):
        return value.model_dump(mode="json")
    return str(value)


class ContextLogger(logging.LoggerAdapter):
    """
    LoggerAdapter accepting a `context=` dict on every call.

        logger.info("Scored 3 drivers", context={"processing_time_ms": 12})
    """

    def process(self, msg: str, kwargs: dict) -> tuple[str, dict]:
        context = kwargs.pop("context", None)
        extra = kwargs.get("extra", {})
        if context:
            extra["context"] = context
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(
    service: Optional[str] = None,
    environment: Optional[str] = None,
    log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    max_bytes: Optional[int] = None,
    backup_count: Optional[int] = None,
) -> None:
    """
    Route the root logger to stdout, and to a rotating file when one is set.

    Replaces any handlers already on the root logger. Arguments left as None
    come from ServiceConfig and LoggingConfig; an empty log_file means stdout
    only.
    """
    service = service or ServiceConfig.SERVICE_NAME
    env = environment or LoggingConfig.ENVIRONMENT
    level_name = log_level or LoggingConfig.LOG_LEVEL
    level = getattr(logging, level_name.upper(), logging.INFO)
    log_file = log_file if log_file is not None else LoggingConfig.LOG_FILE

    formatter = JsonFormatter(service=service, environment=env)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_file,
                maxBytes=max_bytes or LoggingConfig.LOG_MAX_BYTES,
                backupCount=backup_count if backup_count is not None else LoggingConfig.LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        root_logger.addHandler(handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> ContextLogger:
    """ContextLogger over logging.getLogger(name); pass __name__."""
    return ContextLogger(logging.getLogger(name), {})
