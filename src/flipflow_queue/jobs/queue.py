"""
In-process job queue.

This module provides JobQueue, which owns:
- the scheduler task dispatching eligible jobs by priority, bounded by
  ``max_concurrent``
- the retry and timeout policy applied when a dispatch fails
- the cleanup task evicting old terminal jobs
- stats over the store

All state lives in a JobStore; every status change is a compare-and-set
through ``JobStore.transition`` so the scheduler, the cleanup sweep and
callers on other threads never race on one job.
"""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import itertools
import time
from enum import Enum
from typing import Any

from ..config.queue import QueueConfig
from ..errors import (
    ErrorContext,
    HandlerError,
    JobTimeoutError,
    QueueError,
    QueueFullError,
    ValidationError,
)
from ..events import EventBus, JobEvent, JobEventType
from ..logging import JobLog, StructuredLogger, Timer, get_logger
from .handlers import HandlerRegistry, JobHandler
from .store import InMemoryJobStore, JobFilter, JobStore
from .types import JobOptions, JobRecord, JobStats, JobStatus, generate_job_id

_OPTION_ALIASES = {"maxRetries": "max_retries"}
_SCHEDULER_ERROR_DELAY = 1.0  # seconds before retrying a failed scheduler pass


def _dispatch_order(job: JobRecord) -> tuple[int, float, int]:
    # Highest priority first, then FIFO
    return (-job.priority, job.created_at, job.sequence)


def _on_loop(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class JobQueue:
    """Priority job queue with bounded concurrency, retries and timeouts.

    Handlers are async callables registered per job type; they receive the
    job's ``data`` and nothing else. Failures never propagate to callers:
    they are recorded on the job and drive the retry policy. Callers poll
    ``get``/``get_all``/``get_stats`` or subscribe to the event bus.

    Example:
        ```python
        queue = JobQueue(QueueConfig(max_concurrent=2))

        @queue.handlers.handler("scrape")
        async def scrape(data):
            ...

        job = queue.add("scrape", {"source": "manual"}, priority=5)
        await queue.join()
        print(queue.get(job.id).status)
        await queue.close()
        ```

    Constructed inside a running event loop the queue starts itself;
    otherwise call ``start()`` from the loop or use ``async with``.
    """

    def __init__(
        self,
        config: QueueConfig | None = None,
        handlers: HandlerRegistry | dict[str, JobHandler] | None = None,
        *,
        event_bus: EventBus | None = None,
        store: JobStore | None = None,
        logger: StructuredLogger | None = None,
    ):
        self.config = config or QueueConfig()
        if isinstance(handlers, HandlerRegistry):
            self.handlers = handlers
        else:
            self.handlers = HandlerRegistry(handlers)

        self._store = store if store is not None else InMemoryJobStore()
        self._event_bus = event_bus
        self._logger = logger or get_logger()
        self._sequence = itertools.count(1)

        self._loop: asyncio.AbstractEventLoop | None = None
        self._wakeup: asyncio.Event | None = None
        self._progress: asyncio.Event | None = None
        self._scheduler_task: asyncio.Task | None = None
        self._cleanup_task: asyncio.Task | None = None
        self._inflight: dict[str, asyncio.Task] = {}
        self._detached: set[asyncio.Task] = set()
        self._cleanup_stopped = False
        self._closed = False

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            pass
        else:
            self.start()

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def store(self) -> JobStore:
        return self._store

    @property
    def event_bus(self) -> EventBus | None:
        return self._event_bus

    @property
    def running(self) -> bool:
        """True while the scheduler task is alive."""
        return self._scheduler_task is not None and not self._scheduler_task.done()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def processing_count(self) -> int:
        """Number of dispatches currently in flight."""
        return len(self._inflight)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start the scheduler and cleanup tasks on the running loop.

        Idempotent.

        Raises:
            RuntimeError: If the queue is closed or no loop is running
        """
        if self._closed:
            raise RuntimeError("JobQueue is closed")
        self._bind_loop()
        if self._scheduler_task is not None:
            return

        self._scheduler_task = self._loop.create_task(
            self._run_scheduler(), name="flipflow-queue-scheduler"
        )
        if not self._cleanup_stopped:
            self._cleanup_task = self._loop.create_task(
                self._run_cleanup(), name="flipflow-queue-cleanup"
            )
        self._logger.debug(
            "Job queue started",
            max_concurrent=self.config.max_concurrent,
            max_queue_size=self.config.max_queue_size,
        )

    async def close(self, *, cancel_inflight: bool = False, timeout: float | None = None) -> None:
        """Stop the queue.

        Stops the scheduler and cleanup tasks, then waits for in-flight
        dispatches (cancelling them right away with ``cancel_inflight``, or
        once ``timeout`` elapses). Cancelled dispatches put their job back
        to pending. Handlers detached after a timeout are cancelled.
        """
        if self._closed:
            return
        self._closed = True
        self.stop_cleanup()

        scheduler, self._scheduler_task = self._scheduler_task, None
        if scheduler is not None:
            scheduler.cancel()
            await asyncio.gather(scheduler, return_exceptions=True)

        inflight = list(self._inflight.values())
        if inflight:
            if cancel_inflight:
                for task in inflight:
                    task.cancel()
            _, still_running = await asyncio.wait(inflight, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)

        detached = list(self._detached)
        for task in detached:
            task.cancel()
        if detached:
            await asyncio.gather(*detached, return_exceptions=True)

        self._logger.debug("Job queue closed", cancelled_detached=len(detached))

    async def __aenter__(self) -> JobQueue:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _bind_loop(self) -> None:
        loop = asyncio.get_running_loop()
        if self._loop is None:
            self._loop = loop
            self._wakeup = asyncio.Event()
            self._progress = asyncio.Event()
        elif self._loop is not loop:
            raise RuntimeError("JobQueue is bound to a different event loop")

    def _wake(self) -> None:
        """Wake the scheduler and any ``join()`` waiters. Thread-safe."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        if _on_loop(loop):
            self._set_wake_events()
        else:
            loop.call_soon_threadsafe(self._set_wake_events)

    def _set_wake_events(self) -> None:
        self._wakeup.set()
        self._progress.set()

    # =========================================================================
    # Submission and lookup
    # =========================================================================

    def add(
        self,
        type: str | Enum,
        data: Any = None,
        options: JobOptions | dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> JobRecord:
        """Submit a job. Safe to call from any thread.

        Options may be given as a JobOptions, a dict, or keyword
        arguments (``priority``, ``max_retries``, ``metadata``); keywords
        win over ``options``.

        Raises:
            ValidationError: If the type or any option is invalid
            QueueFullError: If ``max_queue_size`` jobs are already pending or processing
        """
        job_type = type.value if isinstance(type, Enum) else type
        if not isinstance(job_type, str) or not job_type:
            raise ValidationError("Job type must be a non-empty string", field="type")

        opts = self._coerce_options(options, kwargs)
        max_retries = self.config.max_retries if opts.max_retries is None else opts.max_retries

        now = time.time()
        job = JobRecord(
            id=generate_job_id(now),
            type=job_type,
            data=data,
            priority=opts.priority,
            sequence=next(self._sequence),
            max_retries=max_retries,
            created_at=now,
            metadata=dict(opts.metadata or {}),
        )
        if self._store.create_bounded(job, self.config.max_queue_size) is None:
            raise QueueFullError(max_size=self.config.max_queue_size)

        self._log(job, "added")
        self._publish(JobEventType.JOB_ADDED, job, priority=job.priority)
        self._wake()
        return job

    @staticmethod
    def _coerce_options(
        options: JobOptions | dict[str, Any] | None,
        overrides: dict[str, Any],
    ) -> JobOptions:
        if options is None:
            values: dict[str, Any] = {}
        elif isinstance(options, JobOptions):
            values = dataclasses.asdict(options)
        elif isinstance(options, dict):
            values = {_OPTION_ALIASES.get(k, k): v for k, v in options.items()}
        else:
            raise ValidationError("options must be a JobOptions or a dict", field="options")
        values.update(overrides)

        unknown = set(values) - {f.name for f in dataclasses.fields(JobOptions)}
        if unknown:
            raise ValidationError(
                f"Unknown job option(s): {', '.join(sorted(unknown))}",
                field="options",
            )

        opts = JobOptions(**values)
        if not _is_int(opts.priority):
            raise ValidationError("priority must be an integer", field="priority")
        if opts.max_retries is not None and (not _is_int(opts.max_retries) or opts.max_retries < 0):
            raise ValidationError("max_retries must be a non-negative integer", field="max_retries")
        if opts.metadata is not None and not isinstance(opts.metadata, dict):
            raise ValidationError("metadata must be a dict", field="metadata")
        return opts

    def get(self, job_id: str) -> JobRecord | None:
        """Get a job by ID, or None."""
        return self._store.get(job_id)

    def get_all(
        self,
        filter: JobFilter | dict[str, Any] | None = None,
        *,
        type: str | Enum | None = None,
        status: JobStatus | str | set[JobStatus | str] | None = None,
    ) -> list[JobRecord]:
        """List jobs in submission order, optionally filtered by type/status."""
        if isinstance(filter, dict):
            type = type or filter.get("type")
            status = status or filter.get("status")
        elif filter is not None:
            type = type or filter.type
            status = status or filter.status

        if isinstance(type, Enum):
            type = type.value
        if isinstance(status, (set, frozenset, list, tuple)):
            status = {JobStatus(s) for s in status}
        elif status is not None:
            status = JobStatus(status)

        jobs = self._store.list(JobFilter(type=type, status=status))
        return sorted(jobs, key=lambda job: job.sequence)

    def get_stats(self) -> JobStats:
        """Counts per status and per type at this instant."""
        return JobStats.from_jobs(self._store.list())

    # =========================================================================
    # Cancellation and removal
    # =========================================================================

    def cancel(self, job_id: str) -> bool:
        """Cancel a pending job.

        Returns:
            True if the job existed and was pending, False otherwise
        """
        job = self._store.transition(job_id, JobStatus.CANCELLED, expected=JobStatus.PENDING)
        if job is None:
            return False

        self._log(job, "cancelled")
        self._publish(JobEventType.JOB_CANCELLED, job)
        self._wake()
        return True

    def remove(self, job_id: str) -> bool:
        """Delete a job outright.

        Processing jobs are never removed.

        Returns:
            True if the job existed and was removed
        """
        job = self._store.get(job_id)
        if job is None:
            return False
        if not self._store.delete(job_id, unless={JobStatus.PROCESSING}):
            return False

        self._log(job, "removed")
        self._publish(JobEventType.JOB_REMOVED, job, reason="remove")
        self._wake()
        return True

    def clear(self) -> int:
        """Drop every job. Returns how many were dropped."""
        removed = self._store.clear()
        self._logger.info("Cleared job queue", removed=removed)
        self._wake()
        return removed

    # =========================================================================
    # Cleanup
    # =========================================================================

    def cleanup(self, max_age: float) -> int:
        """Remove terminal jobs older than ``max_age`` seconds.

        Age is measured from ``completed_at``, or ``created_at`` for jobs
        that never completed. Active jobs are never touched.

        Returns:
            Number of jobs removed
        """
        if max_age < 0:
            raise ValueError("max_age must be >= 0")

        now = time.time()
        removed = self._store.delete_where(
            lambda job: job.status.is_terminal and job.age(now) > max_age
        )
        for job in removed:
            self._publish(JobEventType.JOB_REMOVED, job, reason="cleanup")

        self._logger.log_cleanup(len(removed), self._store.count(), max_age)
        return len(removed)

    def stop_cleanup(self) -> None:
        """Stop the periodic cleanup sweep. Idempotent."""
        self._cleanup_stopped = True
        task, self._cleanup_task = self._cleanup_task, None
        if task is None or task.done():
            return
        if _on_loop(self._loop):
            task.cancel()
        else:
            self._loop.call_soon_threadsafe(task.cancel)

    async def _run_cleanup(self) -> None:
        while True:
            await asyncio.sleep(self.config.cleanup_interval)
            try:
                self.cleanup(self.config.job_retention)
            except Exception as exc:
                self._logger.log_error(exc, "Cleanup sweep failed")

    # =========================================================================
    # Scheduling
    # =========================================================================

    def register_handler(
        self,
        job_type: str | Enum,
        handler: JobHandler,
        *,
        replace: bool = False,
    ) -> JobQueue:
        """Register a handler for ``job_type``. Returns self for chaining."""
        self.handlers.register(job_type, handler, replace=replace)
        self._wake()
        return self

    def set_max_concurrent(self, max_concurrent: int) -> None:
        """Change the concurrency limit. 0 pauses automatic dispatch."""
        if not _is_int(max_concurrent) or max_concurrent < 0:
            raise ValueError("max_concurrent must be a non-negative integer")
        self.config = dataclasses.replace(self.config, max_concurrent=max_concurrent)
        self._logger.info("Concurrency limit changed", max_concurrent=max_concurrent)
        self._wake()

    async def dispatch_next(self) -> JobRecord | None:
        """Dispatch the best eligible job regardless of ``max_concurrent``.

        Waits for that attempt to finish and returns the job as it stands
        afterwards, or None if nothing was eligible.
        """
        if self._closed:
            raise RuntimeError("JobQueue is closed")
        self._bind_loop()

        ready, _ = self._eligible(time.time())
        for job in ready:
            task = self._start_dispatch(job)
            if task is not None:
                await task
                return self._store.get(job.id)
        return None

    async def join(self, timeout: float | None = None) -> bool:
        """Wait until nothing is processing and no pending job is left to dispatch.

        Pending jobs waiting out a retry delay count as work left. With
        dispatch paused (``max_concurrent == 0`` or the scheduler not
        running) only in-flight dispatches are waited for.

        Returns:
            True when idle, False if ``timeout`` elapsed first
        """
        if self._is_idle():
            return True
        self._bind_loop()

        async def wait_idle() -> None:
            while not self._is_idle():
                self._progress.clear()
                await self._progress.wait()

        try:
            await asyncio.wait_for(wait_idle(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def _is_idle(self) -> bool:
        if self._inflight:
            return False
        if not self.running or self.config.max_concurrent == 0:
            return True
        return self._store.count(JobFilter(status=JobStatus.PENDING)) == 0

    async def _run_scheduler(self) -> None:
        while True:
            self._wakeup.clear()
            try:
                delay = self._dispatch_ready()
            except Exception as exc:
                self._logger.log_error(exc, "Scheduler pass failed")
                delay = _SCHEDULER_ERROR_DELAY
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

    def _dispatch_ready(self) -> float | None:
        """Dispatch eligible jobs up to the limit.

        Returns:
            Seconds until the earliest retry delay elapses, or None
        """
        now = time.time()
        ready, next_retry_at = self._eligible(now)
        for job in ready:
            if len(self._inflight) >= self.config.max_concurrent:
                break
            self._start_dispatch(job)
        if next_retry_at is None:
            return None
        return max(0.0, next_retry_at - now)

    def _eligible(self, now: float) -> tuple[list[JobRecord], float | None]:
        pending = self._store.list(JobFilter(status=JobStatus.PENDING))
        ready = sorted((job for job in pending if job.is_eligible(now)), key=_dispatch_order)
        waiting = [job.retry_at for job in pending if not job.is_eligible(now)]
        return ready, min(waiting, default=None)

    def _start_dispatch(self, job: JobRecord) -> asyncio.Task | None:
        claimed = self._store.transition(job.id, JobStatus.PROCESSING, expected=JobStatus.PENDING)
        if claimed is None:
            # Cancelled or removed since it was listed
            return None

        task = self._loop.create_task(self._execute(claimed), name=f"flipflow-job-{claimed.id}")
        self._inflight[claimed.id] = task
        task.add_done_callback(functools.partial(self._on_dispatch_done, claimed.id))
        return task

    def _on_dispatch_done(self, job_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(job_id) is task:
            del self._inflight[job_id]

        if task.cancelled():
            self._requeue(job_id)
        elif task.exception() is not None:
            self._logger.log_error(task.exception(), "Dispatch crashed", job_id=job_id)
        self._wake()

    def _requeue(self, job_id: str) -> None:
        """Put a job whose dispatch was cancelled back to pending.

        The interrupted attempt is not counted.
        """
        job = self._store.get(job_id)
        if job is None or job.status != JobStatus.PROCESSING:
            return
        requeued = self._store.transition(
            job_id,
            JobStatus.PENDING,
            expected=JobStatus.PROCESSING,
            attempts=max(job.attempts - 1, 0),
        )
        if requeued is not None:
            self._logger.info("Requeued interrupted job", job_id=job_id, job_type=job.type)

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def _execute(self, job: JobRecord) -> JobRecord | None:
        with self._logger.job_context(job.id, job.type, attempt=job.attempts):
            self._log(job, "started")
            self._publish(JobEventType.JOB_STARTED, job, attempt=job.attempts)

            timer = Timer()
            try:
                result = await self._run_handler(job)
            except Exception as exc:
                return self._fail(job, exc, timer.stop())
            return self._complete(job, result, timer.stop())

    async def _run_handler(self, job: JobRecord) -> Any:
        handler = self.handlers.resolve(job.type)
        task = asyncio.ensure_future(handler(job.data))

        try:
            done, _ = await asyncio.wait({task}, timeout=self.config.job_timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        context = ErrorContext(
            job_id=job.id, job_type=job.type, attempt=job.attempts, operation="dispatch"
        )
        if not done:
            self._detach(job, task)
            raise JobTimeoutError(timeout=self.config.job_timeout, context=context)
        if task.cancelled():
            raise HandlerError("Handler was cancelled", retryable=False, context=context)
        return task.result()

    def _detach(self, job: JobRecord, task: asyncio.Future) -> None:
        """Stop waiting on a timed-out handler without cancelling it."""
        self._detached.add(task)
        task.add_done_callback(functools.partial(self._on_detached_done, job.id))

    def _on_detached_done(self, job_id: str, task: asyncio.Future) -> None:
        self._detached.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        self._logger.debug(
            "Timed-out handler finished",
            job_id=job_id,
            outcome="error" if exc else "ok",
            error=str(exc) if exc else None,
        )

    def _complete(self, job: JobRecord, result: Any, duration_ms: float) -> JobRecord | None:
        updated = self._store.transition(
            job.id,
            JobStatus.COMPLETED,
            expected=JobStatus.PROCESSING,
            result=result,
            error=None,
            error_code=None,
        )
        if updated is None:
            self._logger.debug("Discarding result of a job no longer in the queue", job_id=job.id)
            return None

        self._log(updated, "completed", duration_ms=duration_ms)
        self._publish(JobEventType.JOB_COMPLETED, updated, duration_ms=duration_ms)
        return updated

    def _fail(self, job: JobRecord, exc: Exception, duration_ms: float) -> JobRecord | None:
        if isinstance(exc, QueueError):
            error = exc
        else:
            error = HandlerError.wrap(
                exc,
                ErrorContext(
                    job_id=job.id, job_type=job.type, attempt=job.attempts, operation="dispatch"
                ),
            )
        changes = {
            "error": error.message,
            "error_code": error.code.value,
            "error_history": [*job.error_history, error.message],
        }

        if error.retryable and job.attempts <= job.max_retries:
            retry_at = time.time() + self.config.retry_delay
            updated = self._store.transition(
                job.id, JobStatus.PENDING, expected=JobStatus.PROCESSING, retry_at=retry_at, **changes
            )
            if updated is None:
                return None
            self._log(updated, "retrying", duration_ms=duration_ms, retry_in=self.config.retry_delay)
            self._publish(
                JobEventType.JOB_RETRYING,
                updated,
                attempt=updated.attempts,
                retry_at=retry_at,
                error=error.message,
            )
            return updated

        updated = self._store.transition(
            job.id, JobStatus.FAILED, expected=JobStatus.PROCESSING, **changes
        )
        if updated is None:
            return None
        self._log(updated, "failed", duration_ms=duration_ms)
        self._publish(
            JobEventType.JOB_FAILED,
            updated,
            attempts=updated.attempts,
            error=error.message,
            error_code=error.code.value,
        )
        return updated

    # =========================================================================
    # Observability
    # =========================================================================

    def _log(self, job: JobRecord, event: str, **fields: Any) -> None:
        self._logger.log_job(
            JobLog(
                job_id=job.id,
                job_type=job.type,
                event=event,
                status=job.status.value,
                attempt=job.attempts,
                max_retries=job.max_retries,
                priority=job.priority,
                error=job.error,
                error_code=job.error_code,
                **fields,
            )
        )

    def _publish(self, event_type: JobEventType, job: JobRecord, **data: Any) -> None:
        """Publish a job event. Never raises; safe from any thread."""
        if self._event_bus is None:
            return
        event = JobEvent(
            type=event_type,
            job_id=job.id,
            job_type=job.type,
            data={"status": job.status.value, **data},
        )
        loop = self._loop
        if loop is not None and loop.is_running() and not _on_loop(loop):
            loop.call_soon_threadsafe(self._emit, event)
        else:
            self._emit(event)

    def _emit(self, event: JobEvent) -> None:
        try:
            self._event_bus.publish(event)
        except Exception as exc:
            self._logger.log_error(exc, "Failed to publish job event", event_type=event.type.value)


__all__ = ["JobQueue"]
