"""Tests for the structured logging system (eventops_kernel/logging_config.py)."""

import json
import logging
from datetime import datetime, timedelta, timezone
from io import StringIO
from uuid import uuid4

import pytest

from eventops_kernel.exceptions import InvalidStateError
from eventops_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


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
        assert record["logger"] == "eventops.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("job_batch_recorded", extra={"batch_number": 2, "percent": 40.0})

        record = _parse_log(stream)
        assert record["batch_number"] == 2
        assert record["percent"] == 40.0

    def test_rich_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        job_id = uuid4()
        get_logger("test").info(
            "values",
            extra={
                "job": job_id,
                "at": datetime(2024, 3, 1, tzinfo=timezone.utc),
                "eta": timedelta(seconds=90),
                "kinds": ("a", "b"),
            },
        )

        record = _parse_log(stream)
        assert record["job"] == str(job_id)
        assert record["at"] == "2024-03-01T00:00:00+00:00"
        assert record["eta"] == 90.0
        assert record["kinds"] == ["a", "b"]

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", job_id="job-456")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["job_id"] == "job-456"

    def test_context_wins_over_extra(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(job_id="from-context")
        get_logger("test").info("clash", extra={"job_id": "from-extra"})

        assert _parse_log(stream)["job_id"] == "from-context"

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

    def test_eventops_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InvalidStateError("j-1", "retry", "processing", expected=("completed",))
        except InvalidStateError:
            get_logger("test").exception("retry_rejected")

        record = _parse_log(stream)
        assert record["exc_code"] == "INVALID_JOB_STATE"
        assert record["exc_type"] == "InvalidStateError"
        assert record["exc_current_status"] == "processing"
        assert record["exc_expected"] == ["completed"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_bind_restores_previous_values(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner", job_id="j-1"):
            assert LogContext.get_all() == {"correlation_id": "inner", "job_id": "j-1"}
        assert LogContext.get_all() == {"correlation_id": "outer"}

    def test_bind_skips_none(self):
        with LogContext.bind(correlation_id=None, job_id="j-2"):
            assert LogContext.get_all() == {"job_id": "j-2"}

    def test_clear(self):
        LogContext.set(correlation_id="c", job_id="j")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(actor_id="a")
        with pytest.raises(TypeError):
            LogContext.bind(job_id="j-3", trace_id="t")
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        handler, stream = _make_handler()
        second = _make_handler()[0]
        configure_logging(handler=handler)
        configure_logging(handler=second)

        get_logger("test").info("once")
        handlers = logging.getLogger("eventops").handlers
        assert handler in handlers
        assert second not in handlers
        assert sum(isinstance(h.formatter, StructuredFormatter) for h in handlers) == 1
        assert len(_parse_all_logs(stream)) == 1

    def test_level_accepts_names(self):
        handler, stream = _make_handler()
        configure_logging(level="WARNING", handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]

    def test_does_not_propagate(self):
        configure_logging(handler=_make_handler()[0])
        assert logging.getLogger("eventops").propagate is False
