"""Tests for log redaction and JSON formatting."""

from __future__ import annotations

import json
import logging
from io import StringIO
from unittest.mock import Mock

import pytest

from throttler.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    set_request_id,
)
from throttler.core.rate_limit import ClientRequest, RequestThrottler


def _capture(name: str) -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def test_sensitive_filter_redacts_caller_identity():
    logger, stream = _capture("test_identity_redaction")

    logger.info(
        "login_attempt",
        extra={
            "client_host": "203.0.113.7",
            "email": "alice@example.com",
            "wallet_address": "0xdeadbeef",
            "limiter": "auth",
        },
    )

    output = stream.getvalue()
    assert "203.0.113.7" not in output
    assert "alice@example.com" not in output
    assert "0xdeadbeef" not in output
    assert "[REDACTED]" in output
    assert '"limiter": "auth"' in output


def test_sensitive_filter_redacts_nested_dicts():
    logger, stream = _capture("test_nested_redaction")

    logger.info(
        "nested_event",
        extra={
            "headers": {"authorization": "Bearer secret-token", "user-agent": "pytest"},
            "counts": {"remaining": 3},
        },
    )

    output = stream.getvalue()
    assert "secret-token" not in output
    assert "pytest" in output
    assert '"remaining": 3' in output


def test_json_formatter_includes_request_id_from_context():
    logger, stream = _capture("test_request_id_ctx")

    set_request_id("req-42")
    try:
        logger.info("with_context")
    finally:
        clear_request_id()

    record = json.loads(stream.getvalue())
    assert record["request_id"] == "req-42"
    assert record["message"] == "with_context"
    assert record["level"] == "info"


def test_throttler_logs_hashed_key_only(monkeypatch: pytest.MonkeyPatch):
    logger, stream = _capture("test_throttler_events")
    monkeypatch.setattr("throttler.core.rate_limit.logger", logger)
    throttler = RequestThrottler(window_ms=60_000, max_requests=1, clock=Mock(return_value=1000.0))

    throttler.evaluate(ClientRequest(client_host="198.51.100.9"))
    throttler.evaluate(ClientRequest(client_host="198.51.100.9"))

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert [line["message"] for line in lines] == ["rate_limit.allowed", "rate_limit.exceeded"]
    assert lines[1]["retry_after_s"] == 60
    assert len(lines[1]["key_hash"]) == 16
    assert "198.51.100.9" not in stream.getvalue()
