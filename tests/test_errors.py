"""
Tests for the error taxonomy.
"""
import asyncio

import pytest

from flipflow_queue.errors import (
    # Base
    ErrorCode,
    ErrorContext,
    QueueError,
    # Capacity errors
    QueueFullError,
    # Validation errors
    ValidationError,
    InvalidPayloadError,
    InvalidJobTypeError,
    # Dispatch errors
    HandlerError,
    HandlerNotFoundError,
    JobTimeoutError,
    # Config errors
    ConfigError,
    InvalidConfigError,
    # Utilities
    is_retryable,
)


class TestErrorCodes:
    """Test error code enumeration."""

    def test_error_codes_are_strings(self):
        """Test that error codes are strings."""
        assert ErrorCode.QUEUE_FULL.value.startswith("ERR_")
        assert ErrorCode.JOB_TIMEOUT.value.startswith("ERR_")

    def test_error_codes_unique(self):
        """Test that all error codes are unique."""
        values = [e.value for e in ErrorCode]
        assert len(values) == len(set(values))


class TestErrorContext:
    """Test error context."""

    def test_to_dict(self):
        """Test context serialization."""
        ctx = ErrorContext(job_id="job_1", job_type="scrape", attempt=2, extra={"source": "webhook"})

        d = ctx.to_dict()

        assert d["job_id"] == "job_1"
        assert d["attempt"] == 2
        assert d["source"] == "webhook"


class TestQueueError:
    """Test the base error."""

    def test_str_includes_code_and_job(self):
        """Test string formatting."""
        error = QueueError("broken", context=ErrorContext(job_id="job_7"))
        assert str(error) == f"[{ErrorCode.INTERNAL_ERROR.value}] broken (job_id=job_7)"

    def test_overrides(self):
        """Test per-instance code and retryable overrides."""
        error = HandlerError("nope", retryable=False)
        assert error.retryable is False
        assert HandlerError("yes").retryable is True

    def test_to_dict(self):
        """Test error serialization."""
        cause = RuntimeError("underlying")
        d = HandlerError("wrapped", cause=cause).to_dict()

        assert d["error_type"] == "HandlerError"
        assert d["code"] == ErrorCode.HANDLER_ERROR.value
        assert d["retryable"] is True
        assert d["cause"] == "underlying"


class TestSpecificErrors:
    """Test the concrete error classes."""

    def test_queue_full(self):
        """Test QueueFullError messages."""
        assert QueueFullError().message == "Queue is full"
        error = QueueFullError(max_size=2)
        assert error.message == "Queue is full (max 2 jobs)"
        assert error.max_size == 2
        assert not error.retryable

    def test_validation_hierarchy(self):
        """Test validation errors and their field."""
        error = InvalidPayloadError("bad", field="listing_id")
        assert isinstance(error, ValidationError)
        assert error.field == "listing_id"
        assert error.code == ErrorCode.INVALID_PAYLOAD
        assert InvalidJobTypeError("x").code == ErrorCode.INVALID_JOB_TYPE

    def test_handler_wrap(self):
        """Test wrapping arbitrary handler exceptions."""
        error = HandlerError.wrap(KeyError("listing"), ErrorContext(job_id="job_1"))
        assert isinstance(error.cause, KeyError)
        assert error.context.job_id == "job_1"

        assert HandlerError.wrap(RuntimeError()).message == "RuntimeError"

    def test_handler_not_found(self):
        """Test HandlerNotFoundError."""
        error = HandlerNotFoundError(job_type="alert")
        assert "alert" in error.message
        assert isinstance(error, HandlerError)
        assert not error.retryable

    def test_timeout(self):
        """Test JobTimeoutError."""
        error = JobTimeoutError(timeout=0.5)
        assert error.message == "Job timed out after 0.5s"
        assert error.retryable

    def test_config_error_is_value_error(self):
        """Test that invalid config can be caught as ValueError."""
        error = InvalidConfigError("bad value")
        assert isinstance(error, ConfigError)
        assert isinstance(error, ValueError)


class TestIsRetryable:
    """Test is_retryable."""

    @pytest.mark.parametrize(
        "error, expected",
        [
            (HandlerError("x"), True),
            (JobTimeoutError(), True),
            (HandlerNotFoundError(), False),
            (ValidationError("x"), False),
            (RuntimeError("x"), True),
            (asyncio.CancelledError(), False),
        ],
    )
    def test_classification(self, error, expected):
        """Test classification of queue and foreign errors."""
        assert is_retryable(error) is expected
