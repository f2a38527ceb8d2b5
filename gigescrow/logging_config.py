"""
Logging setup for the escrow deliverable service.

Two context vars correlate log lines:

- request_id: set by RequestIdMiddleware, or by the orchestrator when a
  submission is started outside an HTTP request
- submission_key: "<job_id>:<milestone_id>", bound for the lifetime of a
  submission pipeline so every transaction attempt it logs can be traced
  back to the milestone even after the request has gone away

Production output is one JSON object per line; other environments get a
single human-readable line per record.

Usage:
    from gigescrow.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Blob registered", extra={"job_id": job.id, "digest": digest})
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
submission_key_var: ContextVar[Optional[str]] = ContextVar("submission_key", default=None)

# LogRecord attributes that are not structured fields
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}
_CONTEXT_ATTRS = ("request_id", "submission_key")

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore")


@contextmanager
def bind_submission(job_id: str, milestone_id: int) -> Iterator[str]:
    """Tag every record logged inside the block with the job/milestone key."""
    key = f"{job_id}:{milestone_id}"
    token = submission_key_var.set(key)
    try:
        yield key
    finally:
        submission_key_var.reset(token)


class LogContextFilter(logging.Filter):
    """Copy the correlation context vars onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"  # type: ignore[attr-defined]
        record.submission_key = submission_key_var.get() or "-"  # type: ignore[attr-defined]
        return True


def _json_safe(value: Any) -> Any:
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """One JSON object per record. Fields passed via extra= are kept at top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for attr in _CONTEXT_ATTRS:
            value = getattr(record, attr, "-")
            if value != "-":
                entry[attr] = value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)

        entry.update(
            (key, _json_safe(value))
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS and key not in _CONTEXT_ATTRS and value is not None
        )
        return json.dumps(entry)


class ConsoleFormatter(logging.Formatter):
    """Single-line development format; shows the submission key only when bound."""

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s %(levelname)-7s %(name)s [%(request_id)s]%(submission)s %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        key = getattr(record, "submission_key", "-")
        record.submission = f" ({key})" if key != "-" else ""  # type: ignore[attr-defined]
        record.request_id = getattr(record, "request_id", "-")  # type: ignore[attr-defined]
        return super().format(record)


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Install a single stderr handler on the root logger.

    Safe to call more than once (uvicorn reload, tests): existing root
    handlers are replaced.
    """
    level = logging.DEBUG if debug else logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(LogContextFilter())
    handler.setFormatter(JsonFormatter() if environment == "production" else ConsoleFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
