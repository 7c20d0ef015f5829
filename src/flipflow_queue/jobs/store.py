"""
Job store implementations.

This module provides the JobStore interface and the in-memory
implementation holding the authoritative set of job records.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

from .types import JobRecord, JobStatus

ACTIVE_STATUSES = {JobStatus.PENDING, JobStatus.PROCESSING}


@dataclass
class JobFilter:
    """Filter criteria for listing jobs."""
    type: str | None = None
    status: JobStatus | set[JobStatus] | None = None

    def matches(self, job: JobRecord) -> bool:
        """Check if a job matches this filter."""
        if self.type and job.type != self.type:
            return False
        if self.status:
            if isinstance(self.status, set):
                if job.status not in self.status:
                    return False
            elif job.status != self.status:
                return False
        return True


class JobStore(ABC):
    """Abstract interface for job storage.

    Implementations must serialize mutations: the scheduler, the cleanup
    sweep and callers on other threads all write through the same store.
    """

    @abstractmethod
    def create(self, job: JobRecord) -> JobRecord:
        """Create a new job record.

        Raises:
            ValueError: If job id already exists
        """
        ...

    @abstractmethod
    def get(self, job_id: str) -> JobRecord | None:
        """Get a job by ID."""
        ...

    @abstractmethod
    def update(self, job: JobRecord) -> JobRecord:
        """Replace an existing job record.

        Raises:
            ValueError: If job doesn't exist
        """
        ...

    @abstractmethod
    def transition(
        self,
        job_id: str,
        new_status: JobStatus,
        *,
        expected: JobStatus | set[JobStatus] | None = None,
        **changes: Any,
    ) -> JobRecord | None:
        """Atomically move a job to ``new_status``.

        Returns the updated record, or None if the job is missing, its
        current status is not ``expected``, or the transition is invalid.
        """
        ...

    @abstractmethod
    def delete(self, job_id: str, *, unless: set[JobStatus] | None = None) -> bool:
        """Delete a job by ID. Returns True if deleted.

        Jobs whose status is in ``unless`` are kept.
        """
        ...

    @abstractmethod
    def list(self, filter: JobFilter | None = None) -> list[JobRecord]:
        """List jobs matching the filter."""
        ...

    @abstractmethod
    def count(self, filter: JobFilter | None = None) -> int:
        """Count jobs matching the filter."""
        ...

    @abstractmethod
    def clear(self) -> int:
        """Remove every job. Returns how many were removed."""
        ...

    def create_bounded(self, job: JobRecord, max_size: int) -> JobRecord | None:
        """Create a job unless ``max_size`` active jobs are already held.

        Active means pending or processing; finished jobs awaiting cleanup
        do not count. Returns None when the store is full.
        """
        if self.count(JobFilter(status=ACTIVE_STATUSES)) >= max_size:
            return None
        return self.create(job)

    def delete_where(self, predicate: Callable[[JobRecord], bool]) -> list[JobRecord]:
        """Delete every job for which ``predicate(job)`` is true. Returns them."""
        removed = []
        for job in self.list():
            if predicate(job) and self.delete(job.id):
                removed.append(job)
        return removed


class InMemoryJobStore(JobStore):
    """In-memory job store implementation.

    Single-process only; nothing survives a restart.
    Thread-safe via threading.RLock, so HTTP worker threads and the event
    loop can share one instance.
    """

    def __init__(self):
        self._jobs: dict[str, JobRecord] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def create(self, job: JobRecord) -> JobRecord:
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job {job.id} already exists")

            self._jobs[job.id] = job
            return job

    def create_bounded(self, job: JobRecord, max_size: int) -> JobRecord | None:
        with self._lock:
            active = sum(1 for j in self._jobs.values() if j.status.is_active)
            if active >= max_size:
                return None
            return self.create(job)

    def get(self, job_id: str) -> JobRecord | None:
        with self._lock:
            return self._jobs.get(job_id)

    def update(self, job: JobRecord) -> JobRecord:
        with self._lock:
            if job.id not in self._jobs:
                raise ValueError(f"Job {job.id} not found")

            self._jobs[job.id] = job
            return job

    def transition(
        self,
        job_id: str,
        new_status: JobStatus,
        *,
        expected: JobStatus | set[JobStatus] | None = None,
        **changes: Any,
    ) -> JobRecord | None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None

            if expected is not None:
                allowed = expected if isinstance(expected, set) else {expected}
                if job.status not in allowed:
                    return None

            if not job.can_transition_to(new_status):
                return None

            updated = job.transition_to(new_status, **changes)
            self._jobs[job_id] = updated
            return updated

    def delete(self, job_id: str, *, unless: set[JobStatus] | None = None) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            if unless and job.status in unless:
                return False
            del self._jobs[job_id]
            return True

    def list(self, filter: JobFilter | None = None) -> list[JobRecord]:
        with self._lock:
            jobs = list(self._jobs.values())

        if filter:
            jobs = [j for j in jobs if filter.matches(j)]
        return jobs

    def count(self, filter: JobFilter | None = None) -> int:
        with self._lock:
            if filter:
                return sum(1 for j in self._jobs.values() if filter.matches(j))
            return len(self._jobs)

    def clear(self) -> int:
        with self._lock:
            removed = len(self._jobs)
            self._jobs.clear()
            return removed

    def delete_where(self, predicate: Callable[[JobRecord], bool]) -> list[JobRecord]:
        """Delete every job for which ``predicate(job)`` is true. Returns them."""
        with self._lock:
            doomed = [job for job in self._jobs.values() if predicate(job)]
            for job in doomed:
                del self._jobs[job.id]
            return doomed


__all__ = [
    "JobStore",
    "InMemoryJobStore",
    "JobFilter",
]
