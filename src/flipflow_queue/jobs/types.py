"""
Job types for the queue.

This module defines the JobStatus enum, the JobRecord dataclass and the
small value types (JobOptions, JobStats) that form the core of the job
lifecycle system.
"""

from __future__ import annotations

import dataclasses
import secrets
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

_BASE36 = string.digits + string.ascii_lowercase


class JobStatus(str, Enum):
    """Job lifecycle states.

    State transitions:
    - PENDING -> PROCESSING (dispatched)
    - PENDING -> CANCELLED (cancelled before dispatch)
    - PROCESSING -> COMPLETED (handler returned)
    - PROCESSING -> PENDING (handler failed or timed out, retries left)
    - PROCESSING -> FAILED (handler failed or timed out, no retries left)
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        """Check if this is a terminal state."""
        return self in {
            JobStatus.COMPLETED,
            JobStatus.FAILED,
            JobStatus.CANCELLED,
        }

    @property
    def is_active(self) -> bool:
        """Check if the job is still active."""
        return self in {JobStatus.PENDING, JobStatus.PROCESSING}


# Valid state transitions
VALID_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.PROCESSING, JobStatus.CANCELLED},
    # PENDING here is the retry re-entry edge
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.PENDING},
    # Terminal states have no valid transitions
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
    JobStatus.CANCELLED: set(),
}


def generate_job_id(now: float | None = None) -> str:
    """Generate a job ID of the form ``job_<epoch-ms>_<random>``."""
    millis = int((now if now is not None else time.time()) * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"job_{millis}_{suffix}"


@dataclass
class JobOptions:
    """Per-job options accepted by ``JobQueue.add``."""
    priority: int = 0
    max_retries: int | None = None  # None = inherit from queue config
    metadata: dict[str, Any] | None = None


@dataclass
class JobRecord:
    """State of one unit of work.

    The queue never inspects ``data`` or ``metadata``.
    """
    # Identity
    id: str = field(default_factory=generate_job_id)
    type: str = ""

    # Payload
    data: Any = None

    # Scheduling
    status: JobStatus = JobStatus.PENDING
    priority: int = 0
    sequence: int = 0  # insertion order, FIFO tie-break within a priority band

    # Retry accounting
    attempts: int = 0
    max_retries: int = 3
    retry_at: float | None = None  # not eligible for dispatch before this

    # Timestamps
    created_at: float = field(default_factory=time.time)
    started_at: float | None = None  # reset on every attempt
    completed_at: float | None = None

    # Results
    result: Any = None
    error: str | None = None
    error_code: str | None = None
    error_history: list[str] = field(default_factory=list)

    # Metadata
    metadata: dict[str, Any] = field(default_factory=dict)

    def can_transition_to(self, new_status: JobStatus) -> bool:
        """Check if transition to new_status is valid."""
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    def transition_to(self, new_status: JobStatus, **changes: Any) -> JobRecord:
        """Create a new JobRecord with updated status.

        Entering PROCESSING counts an attempt, resets ``started_at`` and
        clears ``retry_at``. Entering a terminal state sets ``completed_at``.

        Raises:
            ValueError: If the transition is invalid
        """
        if not self.can_transition_to(new_status):
            raise ValueError(
                f"Invalid transition: {self.status.value} -> {new_status.value}"
            )

        now = time.time()
        updates: dict[str, Any] = {"status": new_status}
        if new_status == JobStatus.PROCESSING:
            updates["started_at"] = now
            updates["attempts"] = self.attempts + 1
            updates["retry_at"] = None
        if new_status.is_terminal:
            updates["completed_at"] = now
        updates.update(changes)
        updates["error_history"] = list(updates.get("error_history", self.error_history))
        updates["metadata"] = dict(updates.get("metadata", self.metadata))

        return dataclasses.replace(self, **updates)

    def is_eligible(self, now: float | None = None) -> bool:
        """Check if the job may be dispatched now."""
        if self.status != JobStatus.PENDING:
            return False
        if self.retry_at is None:
            return True
        return self.retry_at <= (now if now is not None else time.time())

    def age(self, now: float | None = None) -> float:
        """Seconds since the job finished (or was created, if it never finished)."""
        reference = self.completed_at if self.completed_at is not None else self.created_at
        return (now if now is not None else time.time()) - reference

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        data = self.data
        if hasattr(data, "to_dict"):
            data = data.to_dict()
        return {
            "id": self.id,
            "type": self.type,
            "data": data,
            "status": self.status.value,
            "priority": self.priority,
            "sequence": self.sequence,
            "attempts": self.attempts,
            "max_retries": self.max_retries,
            "retry_at": self.retry_at,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "result": self.result,
            "error": self.error,
            "error_code": self.error_code,
            "error_history": list(self.error_history),
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobRecord:
        """Deserialize from dictionary. ``data`` stays in its raw form."""
        return cls(
            id=data.get("id") or generate_job_id(),
            type=data.get("type", ""),
            data=data.get("data"),
            status=JobStatus(data.get("status", "pending")),
            priority=data.get("priority", 0),
            sequence=data.get("sequence", 0),
            attempts=data.get("attempts", 0),
            max_retries=data.get("max_retries", 3),
            retry_at=data.get("retry_at"),
            created_at=data.get("created_at", time.time()),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            result=data.get("result"),
            error=data.get("error"),
            error_code=data.get("error_code"),
            error_history=list(data.get("error_history", [])),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass
class JobStats:
    """Counts over the store at one instant."""
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    by_type: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_jobs(cls, jobs: list[JobRecord]) -> JobStats:
        stats = cls(total=len(jobs))
        for job in jobs:
            setattr(stats, job.status.value, getattr(stats, job.status.value) + 1)
            stats.by_type[job.type] = stats.by_type.get(job.type, 0) + 1
        return stats

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


__all__ = [
    "JobStatus",
    "JobRecord",
    "JobOptions",
    "JobStats",
    "VALID_TRANSITIONS",
    "generate_job_id",
]
