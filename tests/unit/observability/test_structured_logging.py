"""Tests for structured logging."""

import json
import logging
import sys

import pytest

from fleetdesk.observability.logging import (
    ConsoleFormatter,
    JsonFormatter,
    LogContext,
    request_id_var,
)


def make_record(message: str = "Cache cleared", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        "fleetdesk.api.routers.admin_cache", logging.INFO, __file__, 10, message, None, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Test JSON output."""

    def test_basic_fields(self) -> None:
        data = json.loads(JsonFormatter().format(make_record()))
        assert data["level"] == "INFO"
        assert data["logger"] == "fleetdesk.api.routers.admin_cache"
        assert data["message"] == "Cache cleared"
        assert "request_id" not in data

    def test_extras_included(self) -> None:
        data = json.loads(JsonFormatter().format(make_record(pattern="vehicle:*", removed=3)))
        assert data["pattern"] == "vehicle:*"
        assert data["removed"] == 3

    def test_unserializable_extra_stringified(self) -> None:
        data = json.loads(JsonFormatter().format(make_record(ids={1, 2})))
        assert isinstance(data["ids"], str)

    def test_context_attached(self) -> None:
        with LogContext(request_id="req-1", user_id="u1"):
            data = json.loads(JsonFormatter().format(make_record()))
        assert data["request_id"] == "req-1"
        assert data["user_id"] == "u1"
        assert request_id_var.get() == ""

    def test_exception_info(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                "x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
            )
        data = json.loads(JsonFormatter().format(record))
        assert data["exception"]["type"] == "RuntimeError"
        assert data["exception"]["message"] == "boom"


class TestConsoleFormatter:
    """Test development output."""

    def test_line_format(self) -> None:
        with LogContext(request_id="abcdef123456"):
            line = ConsoleFormatter(use_colors=False).format(make_record())
        assert "| INFO     |" in line
        assert line.endswith("| req=abcdef12")


class TestLogContext:
    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValueError):
            LogContext(tenant="t1")
