"""
Tests for the composition root.
"""

import pytest

from flipflow_queue import build_queue
from flipflow_queue.config import LoggingConfig, QueueConfig, Settings
from flipflow_queue.events import InMemoryEventBus
from flipflow_queue.jobs import HandlerRegistry, InMemoryJobStore, JobStatus


class TestBuildQueue:
    """Test build_queue."""

    def test_uses_settings(self):
        """Test that queue and logging settings are applied."""
        settings = Settings(
            queue=QueueConfig(max_concurrent=0, max_queue_size=5),
            logging=LoggingConfig(level="ERROR"),
        )
        store = InMemoryJobStore()

        queue = build_queue(settings, store=store)

        assert queue.config.max_queue_size == 5
        assert queue.store is store
        assert queue.running is False

    @pytest.mark.asyncio
    async def test_runs_jobs(self):
        """Test an end-to-end dispatch through a built queue."""
        registry = HandlerRegistry()

        @registry.handler("analyze")
        async def analyze(data):
            return {"score": 8}

        bus = InMemoryEventBus()
        settings = Settings(queue=QueueConfig(max_concurrent=2), logging=LoggingConfig(level="ERROR"))

        async with build_queue(settings, registry, bus) as queue:
            job = queue.add("analyze", {"listingId": "l1"})
            assert await queue.join(timeout=2)

            assert queue.get(job.id).status == JobStatus.COMPLETED
            assert queue.get(job.id).result == {"score": 8}
            assert queue.event_bus is bus
