"""Tests for the JSON log formatter."""

import json
import logging

from command_core.infrastructure.observability import JSONFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("command_core.test", logging.INFO, __file__, 1, "hello", None, None)
    record.__dict__.update(extra)
    return record


def test_known_extras_are_surfaced_unknown_dropped():
    out = json.loads(JSONFormatter().format(_record(
        command_type="register_user", error_code="TIMEOUT", duration_ms=1.2, secret="x",
    )))
    assert out["message"] == "hello"
    assert out["command_type"] == "register_user"
    assert out["error_code"] == "TIMEOUT"
    assert out["duration_ms"] == 1.2
    assert "secret" not in out


def test_setup_logging_is_idempotent():
    setup_logging("DEBUG", "text")
    setup_logging("INFO", "json")
    ours = [h for h in logging.root.handlers if h.get_name() == "command_core"]
    assert len(ours) == 1
    assert isinstance(ours[0].formatter, JSONFormatter)
    assert logging.root.level == logging.INFO
