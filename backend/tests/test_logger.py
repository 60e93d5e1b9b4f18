"""Structured log output."""

import json
import logging
import sys

import pytest

from fakes import START, make_config
from utils.logger import JSONFormatter, setup_logging


def _record(**extra):
    record = logging.LogRecord("live_sync.orchestrator", logging.INFO, __file__, 1, "Cycle complete", (), None)
    record.__dict__.update(extra)
    return record


def test_json_line_carries_extra_fields():
    line = JSONFormatter("prod").format(_record(match_id=100, polled=3, at=START))
    entry = json.loads(line)
    assert entry["message"] == "Cycle complete"
    assert entry["level"] == "INFO"
    assert entry["service"] == "live-score-sync"
    assert entry["environment"] == "prod"
    assert entry["match_id"] == 100
    assert entry["at"] == str(START)
    assert "msg" not in entry and "lineno" not in entry


def test_exception_is_rendered_as_text():
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())
    entry = json.loads(JSONFormatter().format(record))
    assert "RuntimeError: boom" in entry["exception"]
    assert "environment" not in entry


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_from_config(restore_root, tmp_path):
    log_file = tmp_path / "logs" / "sync.log"
    setup_logging(make_config(log_format="json", log_level="WARNING", log_file=str(log_file)))

    assert restore_root.level == logging.WARNING
    assert len(restore_root.handlers) == 2
    assert all(isinstance(h.formatter, JSONFormatter) for h in restore_root.handlers)
    assert logging.getLogger("httpx").level == logging.WARNING

    logging.getLogger("live_sync.test").warning("Lock contention", extra={"gameweek": 7})
    for handler in restore_root.handlers:
        handler.flush()
    entry = json.loads(log_file.read_text().strip().splitlines()[-1])
    assert entry["gameweek"] == 7
    assert entry["environment"] == "test"
