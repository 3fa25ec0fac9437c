"""
Structured JSON logging for controller observability.

Provides structured logging with controller and backup-key context so a
single reconciliation can be followed across cache lookup, expiration check
and delete request submission.
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime

# Context variables for log correlation
controller_var: ContextVar[str | None] = ContextVar("controller", default=None)
backup_key_var: ContextVar[str | None] = ContextVar("backup_key", default=None)

# Extra fields copied from log records into the JSON payload
EXTRA_FIELDS = (
    "event",
    "backup",
    "backup_uid",
    "expiration",
    "key",
    "namespace",
    "sync_period",
    "requested_sync_period",
    "requeues",
    "enqueued",
    "duration_ms",
    "workers",
    "delete_request",
)


# -----------------------------------------------------------------------------
# JSON Formatter
# -----------------------------------------------------------------------------


class JSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON.

    Output format:
    {"timestamp": "...", "level": "INFO", "message": "...", "controller": "gc-controller", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        controller = controller_var.get()
        if controller:
            log_data["controller"] = controller

        backup_key = backup_key_var.get()
        if backup_key:
            log_data["backup_key"] = backup_key

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, default=str)


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """
    Configure root logging for the controller process.

    Args:
        json_format: If True, use JSON format. If False, use human-readable format.
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# -----------------------------------------------------------------------------
# Context Managers
# -----------------------------------------------------------------------------


@contextmanager
def controller_context(controller: str):
    """
    Tag every record logged by the current thread with the controller name.

    Usage:
        with controller_context("gc-controller"):
            worker_loop()
    """
    token = controller_var.set(controller)
    try:
        yield
    finally:
        controller_var.reset(token)


@contextmanager
def backup_key_context(key: str):
    """Tag records logged while a single backup key is being reconciled."""
    token = backup_key_var.set(key)
    try:
        yield
    finally:
        backup_key_var.reset(token)
