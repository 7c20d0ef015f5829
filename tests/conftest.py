"""
Shared test fixtures for flipflow-queue tests.

This module provides:
- Handler factories (flaky, blocking)
- A queue factory wired to a quiet logger
- A polling helper for asynchronous state changes
"""

from __future__ import annotations

import asyncio
import io
import time
import uuid
from collections.abc import Callable
from typing import Any

import pytest

from flipflow_queue.config import QueueConfig
from flipflow_queue.jobs import JobQueue, JobRecord
from flipflow_queue.logging import StructuredLogger

# =============================================================================
# Handler Factories
# =============================================================================


def make_flaky_handler(failures: int, message: str = "boom"):
    """Create a handler that raises ``failures`` times, then succeeds.

    The returned handler exposes ``calls`` (monotonic timestamps of every call).
    """
    calls: list[float] = []

    async def handler(data: Any) -> str:
        calls.append(time.monotonic())
        if len(calls) <= failures:
            raise RuntimeError(message)
        return "ok"

    handler.calls = calls
    return handler


def make_blocking_handler():
    """Create a handler that blocks until ``release`` is set.

    ``started`` is set as soon as the handler runs.
    """
    started = asyncio.Event()
    release = asyncio.Event()

    async def handler(data: Any) -> str:
        started.set()
        await release.wait()
        return "released"

    handler.started = started
    handler.release = release
    return handler


def make_job(**kwargs: Any) -> JobRecord:
    """Create a JobRecord with test defaults."""
    kwargs.setdefault("type", "scrape")
    kwargs.setdefault("data", {"source": "manual"})
    return JobRecord(**kwargs)


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture
def quiet_logger():
    """Structured logger writing to an in-memory stream."""
    return StructuredLogger(
        f"flipflow_queue.tests.{uuid.uuid4().hex[:8]}",
        level="DEBUG",
        stream=io.StringIO(),
    )


@pytest.fixture
def make_queue(quiet_logger):
    """Fixture providing a factory for JobQueues.

    Keyword arguments matching QueueConfig fields configure the queue;
    the rest are passed to JobQueue.
    """

    def _factory(handlers=None, **kwargs: Any) -> JobQueue:
        config_fields = set(QueueConfig.__dataclass_fields__)
        config = QueueConfig(**{k: v for k, v in kwargs.items() if k in config_fields})
        extra = {k: v for k, v in kwargs.items() if k not in config_fields}
        extra.setdefault("logger", quiet_logger)
        return JobQueue(config, handlers, **extra)

    return _factory


@pytest.fixture
def wait_until():
    """Fixture providing an async poller: ``await wait_until(predicate)``."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.005)

    return _wait


@pytest.fixture
def flaky_handler():
    """Fixture providing the flaky handler factory."""
    return make_flaky_handler


@pytest.fixture
def blocking_handler():
    """Fixture providing the blocking handler factory."""
    return make_blocking_handler


@pytest.fixture
def job_factory():
    """Fixture providing the JobRecord factory."""
    return make_job
