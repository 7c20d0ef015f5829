"""
Error taxonomy for flipflow-queue.

This module provides a hierarchical exception system with:
- Error codes for programmatic handling
- Retryable vs non-retryable classification
- Structured context for debugging
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error codes for the job queue."""

    # Capacity errors (1xxx)
    CAPACITY_ERROR = "ERR_1000"
    QUEUE_FULL = "ERR_1001"

    # Validation errors (2xxx)
    VALIDATION_ERROR = "ERR_2000"
    INVALID_PAYLOAD = "ERR_2001"
    INVALID_JOB_TYPE = "ERR_2002"

    # Dispatch errors (3xxx)
    HANDLER_ERROR = "ERR_3000"
    HANDLER_NOT_FOUND = "ERR_3001"
    JOB_TIMEOUT = "ERR_3002"

    # Configuration errors (6xxx)
    CONFIG_ERROR = "ERR_6000"
    INVALID_CONFIG = "ERR_6002"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "ERR_9000"
    UNKNOWN_ERROR = "ERR_9999"


@dataclass
class ErrorContext:
    """Structured context for error debugging."""

    job_id: str | None = None
    job_type: str | None = None
    attempt: int = 0
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "job_type": self.job_type,
            "attempt": self.attempt,
            "operation": self.operation,
            **self.extra,
        }


class QueueError(Exception):
    """
    Base exception for all job queue errors.

    Attributes:
        code: Standardized error code for programmatic handling
        message: Human-readable error message
        retryable: Whether the failed job may be dispatched again
        context: Structured debugging context
        cause: Original exception that caused this error
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.context = context or ErrorContext()
        self.cause = cause

    def __str__(self) -> str:
        parts = [f"[{self.code.value}] {self.message}"]
        if self.context.job_id:
            parts.append(f"(job_id={self.context.job_id})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# Capacity Errors
# =============================================================================


class QueueFullError(QueueError):
    """The queue already holds max_queue_size jobs."""

    code = ErrorCode.QUEUE_FULL
    retryable = False

    def __init__(
        self,
        message: str = "Queue is full",
        *,
        max_size: int | None = None,
        **kwargs,
    ):
        if max_size is not None:
            message = f"Queue is full (max {max_size} jobs)"
        super().__init__(message, **kwargs)
        self.max_size = max_size


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(QueueError):
    """Input to add() or a payload decoder failed validation."""

    code = ErrorCode.VALIDATION_ERROR
    retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.field = field


class InvalidPayloadError(ValidationError):
    """A job payload could not be decoded for its type."""

    code = ErrorCode.INVALID_PAYLOAD


class InvalidJobTypeError(ValidationError):
    """The job type is not one of the known types."""

    code = ErrorCode.INVALID_JOB_TYPE


# =============================================================================
# Dispatch Errors
# =============================================================================


class HandlerError(QueueError):
    """A job handler raised. The job may be retried."""

    code = ErrorCode.HANDLER_ERROR
    retryable = True

    @classmethod
    def wrap(cls, exc: BaseException, context: ErrorContext | None = None) -> HandlerError:
        """Wrap an arbitrary handler exception."""
        message = str(exc) or type(exc).__name__
        return cls(message, context=context, cause=exc)


class HandlerNotFoundError(HandlerError):
    """No handler is registered for the job type."""

    code = ErrorCode.HANDLER_NOT_FOUND
    retryable = False

    def __init__(
        self,
        message: str = "No handler registered",
        *,
        job_type: str | None = None,
        **kwargs,
    ):
        if job_type:
            message = f"No handler registered for job type: {job_type}"
        super().__init__(message, **kwargs)
        self.job_type = job_type


class JobTimeoutError(HandlerError):
    """A handler ran longer than the job timeout."""

    code = ErrorCode.JOB_TIMEOUT
    retryable = True

    def __init__(
        self,
        message: str = "Job timed out",
        *,
        timeout: float | None = None,
        **kwargs,
    ):
        if timeout is not None:
            message = f"Job timed out after {timeout:g}s"
        super().__init__(message, **kwargs)
        self.timeout = timeout


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigError(QueueError):
    """Base class for configuration errors."""

    code = ErrorCode.CONFIG_ERROR
    retryable = False


class InvalidConfigError(ConfigError, ValueError):
    """Configuration is invalid."""

    code = ErrorCode.INVALID_CONFIG


def is_retryable(error: BaseException) -> bool:
    """
    Check if a dispatch failure may be retried.

    Queue errors carry their own flag. Anything else a handler raises
    counts as an ordinary handler failure and is retried.
    """
    if isinstance(error, QueueError):
        return error.retryable
    if isinstance(error, asyncio.CancelledError):
        return False
    return True


__all__ = [
    # Base
    "ErrorCode",
    "ErrorContext",
    "QueueError",
    # Capacity errors
    "QueueFullError",
    # Validation errors
    "ValidationError",
    "InvalidPayloadError",
    "InvalidJobTypeError",
    # Dispatch errors
    "HandlerError",
    "HandlerNotFoundError",
    "JobTimeoutError",
    # Config errors
    "ConfigError",
    "InvalidConfigError",
    # Utilities
    "is_retryable",
]
