"""
flipflow-queue: in-process asyncio job queue for the FlipFlow listing
analyzer.

Scrape, analyze and alert work is submitted with ``JobQueue.add`` and
dispatched in priority order to registered async handlers, with bounded
concurrency, retries, per-job timeouts and periodic cleanup of finished
jobs.
"""

from .config import LoggingConfig, QueueConfig, Settings, get_settings, load_env
from .errors import (
    ErrorCode,
    HandlerError,
    HandlerNotFoundError,
    JobTimeoutError,
    QueueError,
    QueueFullError,
    ValidationError,
)
from .events import EventBus, InMemoryEventBus, JobEvent, JobEventType
from .factory import build_queue
from .jobs import (
    HandlerRegistry,
    JobFilter,
    JobOptions,
    JobQueue,
    JobRecord,
    JobStats,
    JobStatus,
    JobType,
    decode_payload,
)
from .logging import configure_logging, get_logger

__version__ = "0.1.0"

__all__ = [
    # Queue
    "JobQueue",
    "build_queue",
    "HandlerRegistry",
    # Jobs
    "JobRecord",
    "JobStatus",
    "JobOptions",
    "JobStats",
    "JobFilter",
    "JobType",
    "decode_payload",
    # Events
    "EventBus",
    "InMemoryEventBus",
    "JobEvent",
    "JobEventType",
    # Errors
    "ErrorCode",
    "QueueError",
    "QueueFullError",
    "ValidationError",
    "HandlerError",
    "HandlerNotFoundError",
    "JobTimeoutError",
    # Config
    "Settings",
    "QueueConfig",
    "LoggingConfig",
    "get_settings",
    "load_env",
    # Logging
    "get_logger",
    "configure_logging",
]
