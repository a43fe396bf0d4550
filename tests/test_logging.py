"""
Tests for the structured logging module.
"""

import json
import logging
import uuid

import pytest

from job_hierarchy.errors import ErrorContext, StoreTimeoutError
from job_hierarchy.logging import (
    JSONFormatter,
    LogContext,
    StructuredLogger,
    TextFormatter,
    Timer,
    configure_logging,
    get_logger,
)


@pytest.fixture
def logger_name() -> str:
    return f"job_hierarchy.test.{uuid.uuid4().hex[:8]}"


def payloads(caplog):
    return [json.loads(record.getMessage()) for record in caplog.records]


class TestLogContext:
    """Test LogContext dataclass."""

    def test_to_dict_drops_empty_values(self):
        """Test converting to dict."""
        ctx = LogContext(job_id="j1", extra={"custom": "value"})

        assert ctx.to_dict() == {"job_id": "j1", "custom": "value"}

    def test_with_update(self):
        """Test creating updated context."""
        ctx = LogContext(job_id="j1", workflow_id="w1")
        updated = ctx.with_update(operation="reconcile", extra={"new": "value"})

        assert updated.job_id == "j1"
        assert updated.workflow_id == "w1"
        assert updated.operation == "reconcile"
        assert updated.extra == {"new": "value"}
        assert ctx.operation is None


class TestStructuredLogger:
    """Test StructuredLogger output."""

    def test_json_message_carries_fields(self, logger_name, caplog):
        """Test structured fields end up in the record."""
        logger = StructuredLogger(logger_name, level="DEBUG")

        with caplog.at_level(logging.DEBUG):
            logger.info("Child attached", job_id="a", child_id="b")

        assert payloads(caplog) == [{"message": "Child attached", "job_id": "a", "child_id": "b"}]

    def test_level_filtering(self, logger_name, caplog):
        """Test records below the level are skipped."""
        logger = StructuredLogger(logger_name, level="WARNING")

        with caplog.at_level(logging.DEBUG):
            logger.debug("hidden")
            logger.info("hidden")
            logger.warning("shown")

        assert [p["message"] for p in payloads(caplog)] == ["shown"]

    def test_job_context_is_scoped(self, logger_name, caplog):
        """Test context is attached inside the block only."""
        logger = StructuredLogger(logger_name)

        with caplog.at_level(logging.INFO):
            with logger.job_context(job_id="j1", operation="reconcile"):
                logger.info("inside")
            logger.info("outside")

        inside, outside = payloads(caplog)
        assert inside["job_id"] == "j1"
        assert inside["operation"] == "reconcile"
        assert "job_id" not in outside

    def test_set_context(self, logger_name):
        """Test persistent context updates."""
        logger = StructuredLogger(logger_name)
        logger.set_context(workflow_id="root")

        assert logger.context.workflow_id == "root"

    def test_legal_transition_logged_at_debug(self, logger_name, caplog):
        """Test transition records."""
        logger = StructuredLogger(logger_name, level="DEBUG")

        with caplog.at_level(logging.DEBUG):
            logger.log_transition("j1", "enqueued", "running")

        (record,) = caplog.records
        assert record.levelno == logging.DEBUG
        data = json.loads(record.getMessage())
        assert data["event_type"] == "transition"
        assert data["old_status"] == "enqueued"
        assert data["new_status"] == "running"

    def test_illegal_transition_logged_at_warning(self, logger_name, caplog):
        """Test lenient-mode transitions stand out."""
        logger = StructuredLogger(logger_name)

        with caplog.at_level(logging.DEBUG):
            logger.log_transition("j1", "complete", "running", legal=False)

        (record,) = caplog.records
        assert record.levelno == logging.WARNING
        assert "applied anyway" in record.getMessage()

    def test_log_error_includes_error_fields(self, logger_name, caplog):
        """Test error records carry the taxonomy fields."""
        logger = StructuredLogger(logger_name)
        error = StoreTimeoutError("slow", context=ErrorContext(operation="get", key="k"))

        with caplog.at_level(logging.INFO):
            logger.log_error(error, "Store call failed")

        (data,) = payloads(caplog)
        assert data["error_type"] == "StoreTimeoutError"
        assert data["error_code"] == "ERR_3002"
        assert data["retryable"] is True
        assert data["error_context"]["operation"] == "get"

    def test_text_output(self, logger_name, caplog):
        """Test key=value rendering when JSON is off."""
        logger = StructuredLogger(logger_name, json_output=False)

        with caplog.at_level(logging.INFO):
            logger.info("Reconcile finished", checked=3)

        assert caplog.records[0].getMessage() == "Reconcile finished checked=3"


class TestFormatters:
    """Test log formatters."""

    def _record(self, message: str) -> logging.LogRecord:
        return logging.LogRecord("job_hierarchy", logging.INFO, __file__, 1, message, None, None)

    def test_json_formatter_merges_payload(self):
        """Test JSON messages are merged into the output object."""
        output = json.loads(JSONFormatter().format(self._record('{"message": "hi", "job_id": "j"}')))

        assert output["level"] == "INFO"
        assert output["message"] == "hi"
        assert output["job_id"] == "j"

    def test_json_formatter_plain_message(self):
        """Test non-JSON messages are wrapped."""
        output = json.loads(JSONFormatter().format(self._record("plain text")))

        assert output["message"] == "plain text"

    def test_text_formatter(self):
        """Test human-readable output."""
        line = TextFormatter().format(self._record("hello"))

        assert "INFO" in line
        assert line.endswith("hello")


class TestHelpers:
    """Test module-level helpers."""

    def test_timer(self):
        """Test timer measures non-negative durations."""
        timer = Timer()
        elapsed = timer.stop()

        assert elapsed >= 0
        assert timer.elapsed_ms == elapsed

    def test_get_logger_is_cached(self):
        """Test the default logger is reused."""
        assert get_logger() is get_logger()

    def test_configure_logging_replaces_default(self):
        """Test reconfiguring the default logger."""
        logger = configure_logging(level="DEBUG", json_output=False)

        assert get_logger() is logger
        assert logger.json_output is False
        configure_logging()
