"""
Job lifecycle event types.

Events are published by the queue on every status change so that
collaborators (notification senders, SSE endpoints) can react without
polling ``JobQueue.get``.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class JobEventType(str, Enum):
    """Job lifecycle event types."""

    JOB_ADDED = "job.added"
    JOB_STARTED = "job.started"
    JOB_COMPLETED = "job.completed"
    JOB_RETRYING = "job.retrying"
    JOB_FAILED = "job.failed"
    JOB_CANCELLED = "job.cancelled"
    JOB_REMOVED = "job.removed"

    @property
    def is_terminal(self) -> bool:
        return self in {
            JobEventType.JOB_COMPLETED,
            JobEventType.JOB_FAILED,
            JobEventType.JOB_CANCELLED,
        }


@dataclass
class JobEvent:
    """One job lifecycle event."""
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    type: JobEventType = JobEventType.JOB_ADDED
    timestamp: float = field(default_factory=time.time)

    job_id: str | None = None
    job_type: str | None = None

    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "event_id": self.event_id,
            "type": self.type.value,
            "timestamp": self.timestamp,
            "job_id": self.job_id,
            "job_type": self.job_type,
            "data": self.data,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobEvent:
        """Deserialize from dictionary."""
        return cls(
            event_id=data.get("event_id", str(uuid.uuid4())),
            type=JobEventType(data.get("type", JobEventType.JOB_ADDED.value)),
            timestamp=data.get("timestamp", time.time()),
            job_id=data.get("job_id"),
            job_type=data.get("job_type"),
            data=dict(data.get("data", {})),
        )


__all__ = ["JobEventType", "JobEvent"]
