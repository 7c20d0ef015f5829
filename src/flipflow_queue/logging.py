"""
Structured Logging for the job queue.

This module provides:
- Structured JSON logging with consistent fields
- Job lifecycle logging with job/attempt correlation
- Timing helpers for dispatch durations
- Log level filtering and formatting options
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config.logging import LoggingConfig

# =============================================================================
# Log Record Types
# =============================================================================


@dataclass
class LogContext:
    """Context information attached to log records."""

    trace_id: str | None = None
    job_id: str | None = None
    job_type: str | None = None
    attempt: int | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        d.update(self.extra)
        return d

    def with_update(self, **kwargs) -> LogContext:
        """Create a new context with updated values."""
        return LogContext(
            trace_id=kwargs.get("trace_id", self.trace_id),
            job_id=kwargs.get("job_id", self.job_id),
            job_type=kwargs.get("job_type", self.job_type),
            attempt=kwargs.get("attempt", self.attempt),
            operation=kwargs.get("operation", self.operation),
            extra={**self.extra, **kwargs.get("extra", {})},
        )


@dataclass
class JobLog:
    """Log record for one job lifecycle transition."""

    job_id: str
    job_type: str
    event: str
    status: str

    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    attempt: int = 0
    max_retries: int | None = None
    priority: int | None = None
    duration_ms: float | None = None

    error: str | None = None
    error_code: str | None = None
    retry_in: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger:
    """
    Logger with structured JSON output and context tracking.

    Example:
        ```python
        logger = StructuredLogger("flipflow_queue")

        with logger.job_context(job.id, job.type, attempt=job.attempts):
            logger.log_job(JobLog(...))
        ```
    """

    def __init__(
        self,
        name: str = "flipflow_queue",
        level: str = "INFO",
        json_output: bool = True,
        include_timestamp: bool = True,
        stream: Any = None,
    ):
        self.name = name
        self.json_output = json_output
        self.include_timestamp = include_timestamp

        self._logger = logging.getLogger(name)
        self._logger.setLevel(getattr(logging, level.upper()))

        self._context_var: contextvars.ContextVar[LogContext] = contextvars.ContextVar(
            f"{name}.log_context", default=LogContext()
        )

        if not self._logger.handlers:
            handler = logging.StreamHandler(stream or sys.stdout)
            if json_output:
                handler.setFormatter(JSONFormatter())
            else:
                handler.setFormatter(TextFormatter(include_timestamp=include_timestamp))
            self._logger.addHandler(handler)

    @property
    def context(self) -> LogContext:
        return self._context_var.get()

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def set_context(self, **kwargs) -> None:
        """Update the current log context."""
        self._context_var.set(self.context.with_update(**kwargs))

    @contextmanager
    def trace_context(
        self,
        trace_id: str | None = None,
        **kwargs,
    ) -> Iterator[str]:
        """
        Context manager for trace correlation.

        Args:
            trace_id: Trace ID (auto-generated if not provided)
            **kwargs: Additional context fields

        Yields:
            The trace ID
        """
        trace_id = trace_id or generate_trace_id()
        token = self._context_var.set(self.context.with_update(trace_id=trace_id, **kwargs))

        try:
            yield trace_id
        finally:
            self._context_var.reset(token)

    @contextmanager
    def job_context(
        self,
        job_id: str,
        job_type: str,
        attempt: int | None = None,
        operation: str = "dispatch",
    ) -> Iterator[str]:
        """Context manager scoping log records to one job attempt."""
        with self.trace_context(
            job_id=job_id,
            job_type=job_type,
            attempt=attempt,
            operation=operation,
        ) as trace_id:
            yield trace_id

    def _log(
        self,
        level: int,
        message: str,
        event_type: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Internal logging method."""
        if not self._logger.isEnabledFor(level):
            return

        record_data = {
            "message": message,
            **self.context.to_dict(),
        }

        if event_type:
            record_data["event_type"] = event_type

        if data:
            record_data.update(data)

        if self.json_output:
            self._logger.log(level, json.dumps(record_data, default=str))
        else:
            extras = " ".join(f"{k}={v}" for k, v in record_data.items() if k != "message")
            self._logger.log(level, f"{message} {extras}".rstrip())

    def debug(self, message: str, **kwargs) -> None:
        self._log(logging.DEBUG, message, data=kwargs)

    def info(self, message: str, **kwargs) -> None:
        self._log(logging.INFO, message, data=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self._log(logging.WARNING, message, data=kwargs)

    def error(self, message: str, **kwargs) -> None:
        self._log(logging.ERROR, message, data=kwargs)

    # Typed logging methods

    def log_job(self, record: JobLog) -> None:
        """Log a job lifecycle transition."""
        if record.event == "failed":
            level = logging.ERROR
        elif record.event == "retrying":
            level = logging.WARNING
        elif record.event in ("added", "removed"):
            level = logging.DEBUG
        else:
            level = logging.INFO

        message = f"Job {record.job_id} ({record.job_type}) {record.event}"
        if record.duration_ms is not None:
            message += f" ({record.duration_ms:.0f}ms)"
        self._log(level, message, event_type=f"job.{record.event}", data=record.to_dict())

    def log_cleanup(self, removed: int, remaining: int, max_age: float) -> None:
        """Log a cleanup sweep."""
        level = logging.INFO if removed else logging.DEBUG
        self._log(
            level,
            f"Cleanup removed {removed} job(s)",
            event_type="cleanup",
            data={"removed": removed, "remaining": remaining, "max_age": max_age},
        )

    def log_error(
        self,
        error: BaseException,
        message: str | None = None,
        **kwargs,
    ) -> None:
        """Log an error with context."""
        error_data = {
            "error_type": type(error).__name__,
            "error_message": str(error),
            **kwargs,
        }

        if hasattr(error, "code"):
            error_data["error_code"] = str(error.code.value)
        if hasattr(error, "retryable"):
            error_data["retryable"] = error.retryable
        if hasattr(error, "context") and error.context:
            error_data["error_context"] = error.context.to_dict()

        self._log(
            logging.ERROR,
            message or f"Error: {error}",
            event_type="error",
            data=error_data,
        )


# =============================================================================
# Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
        }

        # Parse JSON message if present
        try:
            message_data = json.loads(record.getMessage())
            if isinstance(message_data, dict):
                log_data.update(message_data)
            else:
                log_data["message"] = record.getMessage()
        except (json.JSONDecodeError, TypeError):
            log_data["message"] = record.getMessage()

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, include_timestamp: bool = True, colors: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.colors = colors

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "") if self.colors else ""
        reset = self.RESET if color else ""
        line = f"{color}{record.levelname:8}{reset} {record.getMessage()}"
        if self.include_timestamp:
            timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
            line = f"{timestamp} {line}"
        return line


# =============================================================================
# Utilities
# =============================================================================


def generate_trace_id() -> str:
    """Generate a unique trace ID."""
    return f"trace_{uuid.uuid4().hex[:16]}"


def truncate_for_log(text: str, max_length: int = 200) -> str:
    """Truncate text for logging."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + f"... ({len(text)} chars total)"


# =============================================================================
# Timing Utilities
# =============================================================================


@dataclass
class Timer:
    """Simple timer for measuring durations."""

    start_time: float = field(default_factory=time.perf_counter)
    end_time: float | None = None

    def stop(self) -> float:
        """Stop the timer and return duration in milliseconds."""
        self.end_time = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> float:
        """Elapsed time in milliseconds."""
        end = self.end_time or time.perf_counter()
        return (end - self.start_time) * 1000


@contextmanager
def timed() -> Iterator[Timer]:
    """Context manager for timing operations."""
    timer = Timer()
    try:
        yield timer
    finally:
        timer.stop()


# =============================================================================
# Global Logger
# =============================================================================

_default_logger: StructuredLogger | None = None


def get_logger(name: str = "flipflow_queue") -> StructuredLogger:
    """Get or create a structured logger."""
    global _default_logger
    if _default_logger is None or _default_logger.name != name:
        _default_logger = StructuredLogger(name)
    return _default_logger


def configure_logging(config: LoggingConfig | None = None, **kwargs: Any) -> StructuredLogger:
    """Configure the default logger from a LoggingConfig or keyword overrides."""
    global _default_logger
    if config is not None:
        kwargs.setdefault("level", config.level)
        kwargs.setdefault("json_output", config.format == "json")
        kwargs.setdefault("include_timestamp", config.include_timestamp)

    # Drop handlers from a previous configuration so the new format applies
    stdlib_logger = logging.getLogger(kwargs.get("name", "flipflow_queue"))
    for handler in list(stdlib_logger.handlers):
        stdlib_logger.removeHandler(handler)

    _default_logger = StructuredLogger(**kwargs)
    return _default_logger


__all__ = [
    # Context
    "LogContext",
    # Log records
    "JobLog",
    # Logger
    "StructuredLogger",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    # Timing
    "Timer",
    "timed",
    # Utilities
    "generate_trace_id",
    "truncate_for_log",
    # Global
    "get_logger",
    "configure_logging",
]
