"""Structured Logging - JSON formatter and setup for command-bus observability.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Bus extra fields (command_type, command_id, correlation_id, error_code, ...) surfaced
      when present; nothing else from `extra` leaks into the output
    - JSON format in production, human-readable in development
    - setup_logging is idempotent: a second call replaces the handler it installed

Design Decisions:
    - JSONFormatter on stdlib logging: no logging dependency beyond the standard library
    - setup_logging called once on startup via lifespan
"""

import json
import logging
from datetime import datetime, timezone

LOG_EXTRA_FIELDS = (
    "command_type", "command_id", "correlation_id", "actor_id", "operation",
    "error_code", "error_id", "duration_ms", "attempt", "dependency", "event_type",
)

_HANDLER_NAME = "command_core"


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging in production."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in LOG_EXTRA_FIELDS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json"):
    """Configure logging for the application."""
    for existing in list(logging.root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            logging.root.removeHandler(existing)
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s - %(message)s",
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
