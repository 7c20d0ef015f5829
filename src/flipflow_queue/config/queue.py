"""
Job queue configuration.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class QueueConfig:
    """Configuration for the job queue.

    Durations are in seconds.
    """

    # Dispatch
    max_concurrent: int = 3  # 0 disables automatic dispatch
    job_timeout: float = 300.0

    # Retry
    max_retries: int = 3
    retry_delay: float = 5.0  # fixed, no backoff

    # Capacity and garbage collection
    max_queue_size: int = 1000
    cleanup_interval: float = 600.0
    job_retention: float = 3600.0

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.max_concurrent < 0:
            raise ValueError("max_concurrent cannot be negative")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        if self.retry_delay < 0:
            raise ValueError("retry_delay cannot be negative")
        if self.job_timeout <= 0:
            raise ValueError("job_timeout must be positive")
        if self.cleanup_interval <= 0:
            raise ValueError("cleanup_interval must be positive")
        if self.max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")
        if self.job_retention < 0:
            raise ValueError("job_retention cannot be negative")


__all__ = ["QueueConfig"]
