"""Tests for the structured logging system (scms_kernel/logging_config.py)."""

import json
import logging
from datetime import UTC, date, datetime
from io import StringIO
from uuid import uuid4

import pytest

from scms_kernel.exceptions import OCCConflictError
from scms_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "scms_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("occ_write_conflict", extra={"attempt": 2, "max_retries": 5})

        record = _parse_log(stream)
        assert record["attempt"] == 2
        assert record["max_retries"] == 5

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", site="journal-of-tests")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["site"] == "journal-of-tests"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Kernel exceptions carry a .code and structured attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise OCCConflictError("VersionedRecord", "rec-1", 5)
        except OCCConflictError:
            get_logger("test").error("update_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "OCC_CONFLICT"
        assert record["exc_type"] == "OCCConflictError"
        assert record["exc_record_id"] == "rec-1"
        assert record["exc_attempts"] == 5

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "actor_id" not in record

    def test_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        when = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
        get_logger("test").info(
            "with_values",
            extra={"record_uuid": uid, "at": when, "on": date(2024, 1, 2), "tags": {"b", "a"}},
        )

        record = _parse_log(stream)
        assert record["record_uuid"] == str(uid)
        assert record["at"] == "2024-01-01T12:00:00+00:00"
        assert record["on"] == "2024-01-02"
        assert record["tags"] == ["a", "b"]

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= record.keys()


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", record_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "record_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner"):
            assert LogContext.get_all()["correlation_id"] == "inner"
        assert LogContext.get_all()["correlation_id"] == "outer"

    def test_bind_restores_none(self):
        assert "token_id" not in LogContext.get_all()
        with LogContext.bind(token_id="temp"):
            assert LogContext.get_all()["token_id"] == "temp"
        assert "token_id" not in LogContext.get_all()

    def test_bind_skips_none_and_stringifies(self):
        uid = uuid4()
        with LogContext.bind(record_id=uid, actor_id=None):
            ctx = LogContext.get_all()
        assert ctx == {"record_id": str(uid)}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            site="s",
            record_id="r",
            token_id="k",
            trace_id="t",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 6
        assert ctx["site"] == "s"
        assert ctx["trace_id"] == "t"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op

        # pytest may attach its own capture handlers to the same logger
        handlers = logging.getLogger("scms_kernel").handlers
        installed = [h for h in handlers if isinstance(h.formatter, StructuredFormatter)]
        assert installed == [h1]
        assert h2 not in handlers

    def test_level_by_name(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level="DEBUG")
        get_logger("test").debug("visible")
        assert _parse_log(stream)["message"] == "visible"

    def test_logger_hierarchy(self):
        """Child loggers inherit the scms_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("services.access_gate").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "scms_kernel.services.access_gate"
