"""
Tests for backend/core/logging.py

Verifies redaction of credentials, context propagation and the JSON shape
that log aggregation relies on.
"""

from __future__ import annotations

import json
import logging

from backend.core.logging import (
    LogContext,
    StructuredJsonFormatter,
    Timer,
    clear_context,
    configure_structured_logging,
    get_current_context,
    redact_sensitive,
    set_context,
)


def _record(message: str = "hello", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="backend.test", level=logging.INFO, pathname=__file__, lineno=1,
        msg=message, args=(), exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestRedaction:
    def test_redacts_token_like_keys(self) -> None:
        data = {
            "token": "ik_abc",
            "Authorization": "Bearer ik_abc",
            "token_hash": "$2b$...",
            "run_id": "tr_1",
        }
        redacted = redact_sensitive(data)
        assert redacted["token"] == "[REDACTED]"
        assert redacted["Authorization"] == "[REDACTED]"
        assert redacted["token_hash"] == "[REDACTED]"
        assert redacted["run_id"] == "tr_1"

    def test_nested(self) -> None:
        redacted = redact_sensitive({"headers": [{"api_key": "k"}]})
        assert redacted == {"headers": [{"api_key": "[REDACTED]"}]}


class TestContext:
    def test_log_context_scoped(self) -> None:
        clear_context()
        with LogContext(project_id="p1"):
            with LogContext(run_id="tr_1"):
                assert get_current_context() == {"project_id": "p1", "run_id": "tr_1"}
            assert get_current_context() == {"project_id": "p1"}
        assert get_current_context() == {}

    def test_set_context_merges(self) -> None:
        clear_context()
        set_context(request_id="abc")
        set_context(service="run-ingest")
        assert get_current_context() == {"request_id": "abc", "service": "run-ingest"}
        clear_context()


class TestJsonFormatter:
    def test_includes_context_and_extras(self) -> None:
        clear_context()
        formatter = StructuredJsonFormatter()
        with LogContext(request_id="req-1"):
            line = formatter.format(_record(run_id="tr_1", duration_ms=3.5))
        doc = json.loads(line)
        assert doc["message"] == "hello"
        assert doc["level"] == "INFO"
        assert doc["request_id"] == "req-1"
        assert doc["run_id"] == "tr_1"
        assert doc["duration_ms"] == 3.5
        assert "timestamp" in doc

    def test_context_secrets_redacted(self) -> None:
        clear_context()
        formatter = StructuredJsonFormatter()
        with LogContext(authorization="Bearer ik_secret"):
            doc = json.loads(formatter.format(_record()))
        assert doc["authorization"] == "[REDACTED]"


def test_timer_measures_elapsed() -> None:
    with Timer() as timer:
        sum(range(1000))
    assert timer.elapsed_ms >= 0


def test_configure_resets_stale_context() -> None:
    set_context(request_id="left-over", project_id="p9")

    configure_structured_logging(level="INFO", json_output=False, service_name="run-ingest")

    assert get_current_context() == {"service": "run-ingest"}
    clear_context()
