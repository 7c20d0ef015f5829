"""
Tests for the structured logging module.
"""

import asyncio
import io
import json
import logging
import uuid

import pytest

from flipflow_queue.config import LoggingConfig
from flipflow_queue.logging import (
    JobLog,
    JSONFormatter,
    LogContext,
    StructuredLogger,
    TextFormatter,
    Timer,
    configure_logging,
    generate_trace_id,
    timed,
    truncate_for_log,
)


def make_logger(json_output=True, level="DEBUG"):
    stream = io.StringIO()
    logger = StructuredLogger(
        f"flipflow_queue.test_logging.{uuid.uuid4().hex[:8]}",
        level=level,
        json_output=json_output,
        stream=stream,
    )
    return logger, stream


def records(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


class TestLogContext:
    """Test LogContext dataclass."""

    def test_to_dict_skips_none(self):
        """Test converting to dict."""
        ctx = LogContext(job_id="job_1", extra={"custom": "value"})

        d = ctx.to_dict()

        assert d == {"job_id": "job_1", "custom": "value"}

    def test_with_update(self):
        """Test creating updated context."""
        ctx = LogContext(trace_id="t1", job_type="scrape")
        updated = ctx.with_update(attempt=2, extra={"new": "value"})

        assert updated.trace_id == "t1"
        assert updated.job_type == "scrape"
        assert updated.attempt == 2
        assert "new" in updated.extra
        assert ctx.attempt is None


class TestJobLog:
    """Test the job log record."""

    def test_to_dict(self):
        """Test JobLog serialization."""
        log = JobLog(job_id="job_1", job_type="scrape", event="retrying", status="pending", retry_in=5.0)

        d = log.to_dict()

        assert d["event"] == "retrying"
        assert d["retry_in"] == 5.0
        assert "timestamp" in d
        assert "duration_ms" not in d


class TestStructuredLogger:
    """Test StructuredLogger."""

    def test_json_output(self):
        """Test JSON records with extra fields."""
        logger, stream = make_logger()

        logger.info("hello", job_count=3)

        (record,) = records(stream)
        assert record["message"] == "hello"
        assert record["job_count"] == 3
        assert record["level"] == "INFO"

    def test_level_filtering(self):
        """Test that records below the level are dropped."""
        logger, stream = make_logger(level="WARNING")

        logger.info("hidden")
        logger.warning("shown")

        assert [r["message"] for r in records(stream)] == ["shown"]

    def test_job_context(self):
        """Test that job_context() scopes fields to the block."""
        logger, stream = make_logger()

        with logger.job_context("job_1", "scrape", attempt=2) as trace_id:
            logger.info("inside")
        logger.info("outside")

        inside, outside = records(stream)
        assert inside["job_id"] == "job_1"
        assert inside["attempt"] == 2
        assert inside["operation"] == "dispatch"
        assert inside["trace_id"] == trace_id
        assert "job_id" not in outside

    @pytest.mark.asyncio
    async def test_context_is_per_task(self):
        """Test that concurrent tasks keep separate contexts."""
        logger, stream = make_logger()

        async def work(job_id):
            with logger.job_context(job_id, "scrape"):
                await asyncio.sleep(0.01)
                logger.info("done")

        await asyncio.gather(work("job_a"), work("job_b"))

        assert sorted(r["job_id"] for r in records(stream)) == ["job_a", "job_b"]

    def test_log_job_levels(self):
        """Test the level chosen for each job event."""
        logger, stream = make_logger()

        for event in ("added", "started", "retrying", "failed"):
            logger.log_job(JobLog(job_id="job_1", job_type="scrape", event=event, status="x"))

        levels = {r["event"]: r["level"] for r in records(stream)}
        assert levels == {"added": "DEBUG", "started": "INFO", "retrying": "WARNING", "failed": "ERROR"}

    def test_log_job_message(self):
        """Test the job message and event type."""
        logger, stream = make_logger()

        logger.log_job(JobLog(job_id="job_1", job_type="scrape", event="completed", status="completed", duration_ms=12.4))

        (record,) = records(stream)
        assert record["message"] == "Job job_1 (scrape) completed (12ms)"
        assert record["event_type"] == "job.completed"

    def test_log_cleanup(self):
        """Test cleanup sweep records."""
        logger, stream = make_logger()

        logger.log_cleanup(removed=2, remaining=5, max_age=3600.0)

        (record,) = records(stream)
        assert record["removed"] == 2
        assert record["level"] == "INFO"

    def test_log_error(self):
        """Test error records carry queue error details."""
        from flipflow_queue.errors import ErrorContext, HandlerError

        logger, stream = make_logger()

        logger.log_error(HandlerError("boom", context=ErrorContext(job_id="job_1")))

        (record,) = records(stream)
        assert record["error_type"] == "HandlerError"
        assert record["retryable"] is True
        assert record["error_context"]["job_id"] == "job_1"

    def test_text_output(self):
        """Test the text formatter."""
        logger, stream = make_logger(json_output=False)
        logger.logger.handlers[0].setFormatter(TextFormatter(include_timestamp=False, colors=False))

        logger.info("plain", job_id="job_1")

        assert stream.getvalue().strip() == "INFO     plain job_id=job_1"


class TestFormatters:
    """Test log formatters."""

    def test_json_formatter_plain_message(self):
        """Test that non-JSON messages are wrapped."""
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "not json", None, None)
        data = json.loads(JSONFormatter().format(record))
        assert data["message"] == "not json"


class TestUtilities:
    """Test helpers."""

    def test_generate_trace_id(self):
        """Test trace id format."""
        assert generate_trace_id().startswith("trace_")
        assert generate_trace_id() != generate_trace_id()

    def test_truncate_for_log(self):
        """Test truncation."""
        assert truncate_for_log("short") == "short"
        assert truncate_for_log("x" * 300, max_length=10).startswith("x" * 10 + "...")

    def test_timer(self):
        """Test Timer and timed()."""
        timer = Timer()
        assert timer.stop() >= 0

        with timed() as t:
            pass
        assert t.end_time is not None


class TestConfigureLogging:
    """Test configure_logging."""

    def test_applies_config(self):
        """Test building the default logger from LoggingConfig."""
        stream = io.StringIO()
        name = f"flipflow_queue.test_configure.{uuid.uuid4().hex[:8]}"

        logger = configure_logging(LoggingConfig(level="WARNING", format="json"), name=name, stream=stream)
        logger.info("hidden")
        logger.warning("shown")

        assert logger.json_output is True
        assert [r["message"] for r in records(stream)] == ["shown"]

    def test_reconfigure_replaces_handlers(self):
        """Test that reconfiguring does not stack handlers."""
        name = f"flipflow_queue.test_configure.{uuid.uuid4().hex[:8]}"

        configure_logging(name=name, stream=io.StringIO())
        logger = configure_logging(name=name, stream=io.StringIO())

        assert len(logger.logger.handlers) == 1
