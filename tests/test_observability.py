"""Tests for observability module."""

import json
import logging
import time

import pytest

from repocdn.exceptions import ConfigError
from repocdn.observability import (
    Metrics,
    RequestContext,
    StructuredFormatter,
    StructuredLogger,
    Timer,
    configure_logging,
    current_request,
    get_logger,
    metrics,
)


def make_record(msg: str = "Test message", level: int = logging.INFO, **attrs) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test",
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=attrs.pop("exc_info", None),
    )
    for key, value in attrs.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_formats_basic_record(self) -> None:
        """Records outside a request have no context."""
        parsed = json.loads(StructuredFormatter().format(make_record()))

        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Test message"
        assert parsed["logger"] == "test"
        assert "timestamp" in parsed
        assert "context" not in parsed

    def test_includes_request_fields(self) -> None:
        """Request fields are merged with the caller's context."""
        record = make_record(context={"file": "media/x.png"}, duration_ms=1.23456)

        with RequestContext("req-1", "GET", "/media/x.png"):
            parsed = json.loads(StructuredFormatter().format(record))

        assert parsed["context"] == {
            "request_id": "req-1",
            "method": "GET",
            "path": "/media/x.png",
            "file": "media/x.png",
        }
        assert parsed["duration_ms"] == 1.235

    def test_formats_exception(self) -> None:
        """Exception info becomes an error object."""
        try:
            raise ValueError("bad value")
        except ValueError as e:
            record = make_record("Failed", logging.ERROR, exc_info=(type(e), e, e.__traceback__))

        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["error"] == {"type": "ValueError", "message": "bad value"}


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_info_carries_context_and_duration(self, caplog: pytest.LogCaptureFixture) -> None:
        """Structured keyword arguments land on the record."""
        logger = StructuredLogger("repocdn.test")

        with caplog.at_level(logging.INFO, logger="repocdn.test"):
            logger.info("Loaded files", context={"files": 3}, duration_ms=1.5)

        assert len(caplog.records) == 1
        record = caplog.records[0]
        assert record.levelname == "INFO"
        assert record.context == {"files": 3}
        assert record.duration_ms == 1.5

    def test_error_attaches_exception(self, caplog: pytest.LogCaptureFixture) -> None:
        """The error argument becomes exc_info."""
        logger = StructuredLogger("repocdn.test.error")

        with caplog.at_level(logging.ERROR, logger="repocdn.test.error"):
            logger.error("Upload error", error=RuntimeError("boom"))

        assert len(caplog.records) == 1
        assert caplog.records[0].exc_info[0] is RuntimeError

    def test_debug_suppressed_below_level(self, caplog: pytest.LogCaptureFixture) -> None:
        """Disabled levels are not emitted."""
        logger = StructuredLogger("repocdn.test.debug")

        with caplog.at_level(logging.INFO, logger="repocdn.test.debug"):
            logger.debug("noise", context={"x": 1})

        assert caplog.records == []

    def test_get_logger_returns_structured_logger(self) -> None:
        """get_logger returns StructuredLogger."""
        assert isinstance(get_logger("repocdn.module"), StructuredLogger)


class TestRequestContext:
    """Tests for RequestContext."""

    def test_binds_and_resets(self) -> None:
        """The request is bound inside the block only."""
        with RequestContext("req-123", "DELETE", "/admin/files/a.png"):
            request = current_request()
            assert request.request_id == "req-123"
            assert request.method == "DELETE"
            assert request.path == "/admin/files/a.png"

        assert current_request() is None

    def test_generates_request_id(self) -> None:
        """A request ID is generated when none is given."""
        with RequestContext(None, "GET", "/") as ctx:
            assert ctx.request_id
            assert current_request().request_id == ctx.request_id

    def test_nested_contexts_restore_outer(self) -> None:
        """Leaving an inner context restores the outer request."""
        with RequestContext("outer", "GET", "/a"):
            with RequestContext("inner", "GET", "/b"):
                assert current_request().request_id == "inner"
            assert current_request().request_id == "outer"


class TestMetrics:
    """Tests for Metrics and Timer."""

    def test_counters_and_timers(self) -> None:
        """Counters increment and timers summarize durations."""
        collected = Metrics()
        collected.increment("serve.hit")
        collected.increment("serve.hit")
        collected.observe("upload", 10.0)
        collected.observe("upload", 30.0)

        assert collected.counter("serve.hit") == 2
        assert collected.counter("serve.miss") == 0
        assert collected.snapshot() == {
            "counters": {"serve.hit": 2},
            "timers": {"upload": {"count": 2, "avg_ms": 20.0, "max_ms": 30.0}},
        }

        collected.reset()
        assert collected.snapshot() == {"counters": {}, "timers": {}}

    def test_timer_measures_duration(self) -> None:
        """Timer measures elapsed time."""
        with Timer() as timer:
            time.sleep(0.05)

        assert timer.duration_ms >= 40
        assert timer.duration_ms < 1000

    def test_named_timer_records_metric(self) -> None:
        """A named timer records into the shared metrics, even on error."""
        before = metrics.timer("test.timer").count

        with Timer("test.timer"):
            pass
        with pytest.raises(RuntimeError):
            with Timer("test.timer"):
                raise RuntimeError("boom")

        assert metrics.timer("test.timer").count == before + 2


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_configures_package_logger(self) -> None:
        """Configures the repocdn logger."""
        configure_logging(level="debug", format="text")

        package_logger = logging.getLogger("repocdn")
        assert package_logger.level == logging.DEBUG
        assert len(package_logger.handlers) == 1

        configure_logging(level="INFO", format="json")
        assert package_logger.level == logging.INFO
        assert isinstance(package_logger.handlers[0].formatter, StructuredFormatter)

    def test_unknown_level(self) -> None:
        """Unknown level names are configuration errors."""
        with pytest.raises(ConfigError):
            configure_logging(level="verbose")
