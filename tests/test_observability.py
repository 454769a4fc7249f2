"""Tests for observability module."""

import asyncio
import json
import logging
import time

import pytest

from boltbox.exceptions import BackendUnreachableError
from boltbox.observability import (
    LogContext,
    LogEntry,
    LogLevel,
    RequestContext,
    StructuredFormatter,
    StructuredLogger,
    Timer,
    configure_logging,
    emit_counter,
    emit_metric,
    emit_timer,
    get_logger,
    project_id_var,
    register_metric_callback,
    request_id_var,
    session_id_var,
    unregister_metric_callback,
    user_id_var,
)


@pytest.fixture
def metrics():
    """Collect emitted metrics for the duration of a test."""
    received: list[tuple] = []

    def callback(name: str, value: float, labels: dict) -> None:
        received.append((name, value, labels))

    register_metric_callback(callback)
    yield received
    unregister_metric_callback(callback)


def make_record(msg: str = "Test message", exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="test",
        level=logging.ERROR if exc_info else logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestLogContext:
    """Tests for LogContext."""

    def test_current_returns_empty_when_no_context(self) -> None:
        """Current returns empty context when no vars set."""
        context = LogContext.current()
        assert context.request_id is None
        assert context.user_id is None
        assert context.project_id is None
        assert context.session_id is None

    def test_to_dict_excludes_none_values(self) -> None:
        """to_dict excludes None values."""
        context = LogContext(
            request_id="req-123",
            project_id=None,
            user_id="user-456",
        )
        result = context.to_dict()

        assert result == {"request_id": "req-123", "user_id": "user-456"}
        assert "project_id" not in result

    def test_to_dict_includes_extra(self) -> None:
        """to_dict includes extra fields."""
        context = LogContext(
            request_id="req-123",
            extra={"custom": "value"},
        )
        result = context.to_dict()

        assert result["request_id"] == "req-123"
        assert result["custom"] == "value"


class TestLogEntry:
    """Tests for LogEntry."""

    def test_to_json_basic(self) -> None:
        """to_json produces valid JSON."""
        entry = LogEntry(
            level=LogLevel.INFO,
            message="Test message",
            timestamp="2024-01-01T00:00:00Z",
            logger="test",
        )
        result = json.loads(entry.to_json())

        assert result["level"] == "INFO"
        assert result["message"] == "Test message"
        assert result["timestamp"] == "2024-01-01T00:00:00Z"
        assert result["logger"] == "test"
        assert "context" not in result

    def test_to_json_with_context_and_error(self) -> None:
        """to_json includes context and error info."""
        entry = LogEntry(
            level=LogLevel.ERROR,
            message="Failed",
            timestamp="2024-01-01T00:00:00Z",
            logger="test",
            context={"session_id": "sess-1"},
            error={"type": "ValueError", "message": "bad value"},
        )
        result = json.loads(entry.to_json())

        assert result["context"]["session_id"] == "sess-1"
        assert result["error"]["type"] == "ValueError"

    def test_to_json_with_duration(self) -> None:
        """to_json rounds duration."""
        entry = LogEntry(
            level=LogLevel.INFO,
            message="Complete",
            timestamp="2024-01-01T00:00:00Z",
            logger="test",
            duration_ms=123.45678,
        )
        result = json.loads(entry.to_json())

        assert result["duration_ms"] == 123.457


class TestStructuredFormatter:
    """Tests for StructuredFormatter."""

    def test_formats_as_json(self) -> None:
        """Formats log record as JSON."""
        formatter = StructuredFormatter()

        parsed = json.loads(formatter.format(make_record()))

        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Test message"
        assert parsed["logger"] == "test"
        assert "timestamp" in parsed

    def test_includes_request_context(self) -> None:
        """Context variables appear on every line."""
        formatter = StructuredFormatter()

        with RequestContext(request_id="req-1", user_id="u-1", project_id="p-1"):
            parsed = json.loads(formatter.format(make_record()))

        assert parsed["context"] == {"request_id": "req-1", "user_id": "u-1", "project_id": "p-1"}

    def test_error_carries_boltbox_context(self) -> None:
        """Boltbox errors contribute operation and session id."""
        formatter = StructuredFormatter()
        error = BackendUnreachableError("timed out", operation="create", session_id="sess-9")

        parsed = json.loads(formatter.format(make_record("Create failed", (type(error), error, None))))

        assert parsed["error"]["type"] == "BackendUnreachableError"
        assert parsed["error"]["code"] == "backend_unreachable"
        assert parsed["error"]["operation"] == "create"
        assert parsed["error"]["session_id"] == "sess-9"


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_info_logs_at_info_level(self, caplog: pytest.LogCaptureFixture) -> None:
        """Info method logs at INFO level."""
        logger = StructuredLogger("test.logger", LogLevel.DEBUG)

        with caplog.at_level(logging.INFO, logger="test.logger"):
            logger.info("Test message", context={"session_id": "sess-1"})

        assert len(caplog.records) == 1
        assert caplog.records[0].levelname == "INFO"
        assert caplog.records[0].context == {"session_id": "sess-1"}

    def test_error_logs_at_error_level(self, caplog: pytest.LogCaptureFixture) -> None:
        """Error method logs at ERROR level with exception info."""
        logger = StructuredLogger("test.error", LogLevel.DEBUG)

        with caplog.at_level(logging.ERROR, logger="test.error"):
            logger.error("Error message", error=ValueError("boom"))

        assert len(caplog.records) == 1
        assert caplog.records[0].levelname == "ERROR"
        assert caplog.records[0].exc_info[1].args == ("boom",)

    def test_duration_attached(self, caplog: pytest.LogCaptureFixture) -> None:
        """duration_ms travels on the record."""
        logger = StructuredLogger("test.duration", LogLevel.DEBUG)

        with caplog.at_level(logging.DEBUG, logger="test.duration"):
            logger.debug("Done", duration_ms=12.5)

        assert caplog.records[0].duration_ms == 12.5


class TestRequestContext:
    """Tests for RequestContext."""

    def test_sets_context_vars(self) -> None:
        """Sets context variables within context."""
        with RequestContext(
            request_id="req-123",
            user_id="user-789",
            project_id="proj-456",
            session_id="sess-abc",
        ):
            assert request_id_var.get() == "req-123"
            assert user_id_var.get() == "user-789"
            assert project_id_var.get() == "proj-456"
            assert session_id_var.get() == "sess-abc"

        assert request_id_var.get() is None
        assert session_id_var.get() is None

    def test_generates_request_id_if_not_provided(self) -> None:
        """Generates request ID if not provided."""
        with RequestContext() as ctx:
            assert ctx.request_id is not None
            assert len(ctx.request_id) > 0

    def test_bind_session_mid_request(self) -> None:
        """A session resolved later is bound until exit."""
        with RequestContext(user_id="u-1") as ctx:
            assert session_id_var.get() is None
            ctx.bind_session("sess-late")
            assert session_id_var.get() == "sess-late"
            assert ctx.session_id == "sess-late"

        assert session_id_var.get() is None

    @pytest.mark.asyncio
    async def test_works_as_async_context_manager(self) -> None:
        """Works as async context manager."""
        async with RequestContext(request_id="async-req") as ctx:
            assert ctx.request_id == "async-req"
            assert request_id_var.get() == "async-req"


class TestTimer:
    """Tests for Timer."""

    def test_measures_duration(self) -> None:
        """Measures elapsed time."""
        with Timer() as timer:
            time.sleep(0.05)

        assert timer.duration_ms >= 40  # Allow some variance
        assert timer.duration_ms < 200

    @pytest.mark.asyncio
    async def test_works_as_async_context_manager(self) -> None:
        """Works around awaited code."""
        with Timer() as timer:
            await asyncio.sleep(0.05)

        assert timer.duration_ms >= 40


class TestMetrics:
    """Tests for metric functions."""

    def test_register_and_emit_metric(self, metrics) -> None:
        """Register callback and emit metric."""
        emit_metric("test.metric", 42.5, {"key": "value"})

        name, value, labels = metrics[-1]
        assert name == "test.metric"
        assert value == 42.5
        assert labels["key"] == "value"

    def test_emit_counter(self, metrics) -> None:
        """Emit counter increments by 1."""
        emit_counter("test.counter")

        name, value, _ = metrics[-1]
        assert name == "test.counter"
        assert value == 1.0

    def test_emit_timer(self, metrics) -> None:
        """Emit timer with duration."""
        emit_timer("test.timer", 123.45)

        name, value, _ = metrics[-1]
        assert name == "test.timer"
        assert value == 123.45

    def test_project_label_from_context(self, metrics) -> None:
        """The current project is added as a label."""
        with RequestContext(project_id="proj-1"):
            emit_counter("test.labelled")

        assert metrics[-1][2] == {"project_id": "proj-1"}

    def test_failing_callback_does_not_raise(self, metrics) -> None:
        """A broken callback does not affect other callbacks."""
        def broken(name: str, value: float, labels: dict) -> None:
            raise RuntimeError("sink down")

        register_metric_callback(broken)
        try:
            emit_counter("test.resilient")
        finally:
            unregister_metric_callback(broken)

        assert metrics[-1][0] == "test.resilient"


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_configures_package_logger(self) -> None:
        """Configures the package logger."""
        configure_logging(level=LogLevel.DEBUG, format="json")

        root = logging.getLogger("boltbox")
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_accepts_string_level(self) -> None:
        """Level names from config files are accepted."""
        configure_logging(level="warning", format="text")

        root = logging.getLogger("boltbox")
        assert root.level == logging.WARNING
        assert not isinstance(root.handlers[0].formatter, StructuredFormatter)

    def test_get_logger_returns_structured_logger(self) -> None:
        """get_logger returns StructuredLogger."""
        logger = get_logger("test.module")
        assert isinstance(logger, StructuredLogger)
