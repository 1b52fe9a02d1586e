"""
Structured JSON logging utilities.

Polling, heartbeat and mutation paths log through loggers under the
``live_session`` namespace. Components that act for one session wrap their
logger in ``SessionLoggerAdapter`` so every record carries the session code
(and module id where there is one); ``StructuredJsonFormatter`` lifts that
context into top-level JSON keys for log aggregators.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import IO, Any

PACKAGE_LOGGER = "live_session"

# Record attributes promoted to top-level JSON keys when present
CONTEXT_FIELDS = ("session_code", "session_id", "module_id", "entry_mode", "participant_id")


class StructuredJsonFormatter(logging.Formatter):
    """
    One JSON object per record.

    Always present: timestamp (record creation time, UTC), level, logger,
    message. Session context from ``CONTEXT_FIELDS`` is added when the record
    carries it, and a formatted traceback under ``exception``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                payload[name] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_structured_logging(
    level: int = logging.INFO,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """
    Send the package's logs to ``stream`` (stdout by default) as JSON lines.

    Replaces any handlers previously installed on the package logger, so
    calling it twice does not duplicate output.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(StructuredJsonFormatter())
    logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def get_session_logger(name: str) -> logging.Logger:
    """Logger for a live session component, e.g. 'join' -> 'live_session.join'."""
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


class SessionLoggerAdapter(logging.LoggerAdapter):
    """Adds session context (session_code, module_id, ...) to every record."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs
