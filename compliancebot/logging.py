"""
Structured logging for review and feedback events.

Every component logs through a child of the "compliancebot" logger and
attaches review context (decision, example id, rule id, ledger hash...)
as `extra` fields. Only whitelisted context fields are rendered, so page
text and API keys never reach the log stream by accident.

COMPLIANCEBOT_LOG_FORMAT selects "json" (one object per line, for
production) or "text" (key=value suffix, for local runs).

Usage:
    from compliancebot.logging import get_logger
    logger = get_logger("checker")
    logger.info("Review complete", extra={"decision": "violation", "violations_count": 2})
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Iterable, Optional


LOG_LEVEL = os.getenv("COMPLIANCEBOT_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("COMPLIANCEBOT_LOG_FORMAT", "json")
LOGGER_NAMESPACE = "compliancebot"

# Review context
REVIEW_FIELDS = (
    "source_ref", "decision", "confidence", "violations_count",
    "example_id", "rule_id", "feedback", "ledger_hash",
)
# Request and failure context
REQUEST_FIELDS = (
    "key_id", "method", "path", "status_code", "duration_ms",
    "error", "error_type",
)
EXTRA_FIELDS = REVIEW_FIELDS + REQUEST_FIELDS

_QUIET_LOGGERS = ("uvicorn.access", "httpcore", "httpx", "google_genai")


def _context(record: logging.LogRecord, fields: Iterable[str]) -> dict:
    return {
        key: getattr(record, key)
        for key in fields
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record: envelope plus whitelisted context."""

    def __init__(self, fields: Iterable[str] = EXTRA_FIELDS):
        super().__init__()
        self.fields = tuple(fields)

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_context(record, self.fields))

        if record.exc_info and record.exc_info[0]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Readable lines for local runs, with context appended as key=value."""

    def __init__(self, fields: Iterable[str] = EXTRA_FIELDS):
        super().__init__(
            fmt="%(asctime)s [%(levelname)-8s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self.fields = tuple(fields)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record, self.fields)
        if context:
            line += " | " + " ".join(f"{k}={v}" for k, v in context.items())
        return line


def setup_logging(level: Optional[str] = None, fmt: Optional[str] = None) -> logging.Logger:
    """
    Attach a single stdout handler to the compliancebot logger.

    Safe to call more than once: the previous handler is replaced.
    """
    root = logging.getLogger(LOGGER_NAMESPACE)
    root.setLevel(getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if (fmt or LOG_FORMAT) == "json" else TextFormatter())
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")
