"""Tests for log redaction and session binding."""

import structlog

from stepwise.utils.logging import _redact_secrets, bind_session


class TestRedaction:
    def test_secret_keys(self):
        event = _redact_secrets(None, "info", {"event": "x", "api_key": "sk-123", "input_tokens": 5})
        assert event["api_key"] == "***REDACTED***"
        assert event["input_tokens"] == 5

    def test_inline_secrets(self):
        event = _redact_secrets(None, "info", {"event": "x", "error": "bad request: api_key=sk-abc"})
        assert "sk-abc" not in event["error"]
        assert "REDACTED" in event["error"]


class TestBindSession:
    def test_binds_and_clears(self):
        with bind_session("session-1", plan_id="plan-1"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["session_id"] == "session-1"
            assert bound["plan_id"] == "plan-1"
        assert "session_id" not in structlog.contextvars.get_contextvars()
