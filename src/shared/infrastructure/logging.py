"""
Structured Logging
==================

One JSON object per log line, built on python-json-logger.

Context goes in `extra`:

    from shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("SLA tracking started", extra={"tracking_id": str(tracking.id)})
"""

import logging
import sys
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger

REDACTED = "***REDACTED***"
_SECRET_MARKERS = ("password", "secret", "token", "api_key", "webhook")

# Libraries that are chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "apscheduler", "httpx")


class EnvironmentFilter(logging.Filter):
    """Stamps every record with the deployment environment."""

    def __init__(self, environment: str):
        super().__init__()
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "environment"):
            record.environment = self.environment
        return True


def redact(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Mask string values whose key looks like a credential."""
    return {
        key: REDACTED
        if isinstance(value, str) and any(m in key.lower() for m in _SECRET_MARKERS)
        else value
        for key, value in fields.items()
    }


class SlaJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter adding a UTC timestamp and masking secrets."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault("timestamp", datetime.now(timezone.utc).isoformat())
        log_record["environment"] = getattr(record, "environment", "unknown")
        log_record.update(redact(log_record))


def setup_logging(level: str = "INFO", environment: str = "development") -> None:
    """Replace the root handlers with a single JSON handler on stdout."""
    numeric_level = getattr(logging, level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.addFilter(EnvironmentFilter(environment))
    handler.setFormatter(SlaJsonFormatter("%(asctime)s %(name)s %(levelname)s %(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


@contextmanager
def log_latency(logger: logging.Logger, operation: str, **context: Any):
    """
    Log `<operation> completed` with its duration when the block exits.

        with log_latency(logger, "sla_sweep", domain="support"):
            ...
    """
    started = time.perf_counter()
    try:
        yield
    finally:
        logger.info(
            f"{operation} completed",
            extra={
                "operation": operation,
                "latency_ms": round((time.perf_counter() - started) * 1000, 2),
                **context,
            },
        )
