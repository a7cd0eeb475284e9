from __future__ import annotations

import io
import logging

from edusync.core.logging import (
    DOMAIN_SYNC,
    LOG_FORMAT,
    AgentFormatter,
    SuppressPollingFilter,
    configure_logging,
    get_domain_logger,
)


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("edusync.test", logging.INFO, __file__, 1, msg, (), None)
    record.__dict__.update(extra)
    return record


def test_formatter_defaults_domain_and_redacts_credentials():
    line = AgentFormatter(LOG_FORMAT).format(_record("sent Authorization: Bearer abc.def x-api-key=s3cret"))
    assert "[agent]" in line
    assert "abc.def" not in line
    assert "s3cret" not in line
    assert line.count("[REDACTED]") == 2


def test_domain_logger_keeps_call_site_extra():
    logger = get_domain_logger("edusync.test.adapter", DOMAIN_SYNC)
    _msg, kwargs = logger.process("queued", {"extra": {"action_id": 7}})
    assert kwargs["extra"] == {"domain": DOMAIN_SYNC, "action_id": 7}


def test_polling_access_lines_are_dropped():
    flt = SuppressPollingFilter()
    assert flt.filter(_record('127.0.0.1:5000 - "GET /sync/status HTTP/1.1" 200')) is False
    assert flt.filter(_record('127.0.0.1:5000 - "GET /sync/status HTTP/1.1" 500')) is True
    assert flt.filter(_record('127.0.0.1:5000 - "GET /lessons HTTP/1.1" 200')) is True


def test_configure_logging_replaces_its_own_handler():
    root = logging.getLogger()
    level = root.level
    first = configure_logging("INFO", stream=io.StringIO())
    stream = io.StringIO()
    second = configure_logging("DEBUG", stream=stream)
    try:
        assert first not in root.handlers
        assert second in root.handlers
        get_domain_logger("edusync.test.configure", DOMAIN_SYNC).info("token=hunter2")
        assert "[sync]" in stream.getvalue()
        assert "hunter2" not in stream.getvalue()
    finally:
        root.removeHandler(second)
        root.setLevel(level)
