#!/usr/bin/env python3
"""
Example: Queue Basics
Runs scrape -> analyze -> alert work through one JobQueue with priorities,
a flaky handler that is retried, and lifecycle events printed as they happen.
"""
import asyncio
import random

from flipflow_queue import (
    HandlerRegistry,
    InMemoryEventBus,
    JobType,
    QueueConfig,
    Settings,
    build_queue,
    decode_payload,
)
from flipflow_queue.config import LoggingConfig

registry = HandlerRegistry()


@registry.handler(JobType.SCRAPE)
async def scrape(data):
    payload = decode_payload(JobType.SCRAPE, data)
    await asyncio.sleep(0.1 * payload.options.max_pages)
    return {"listings": [f"listing-{n}" for n in range(payload.options.max_pages)]}


@registry.handler(JobType.ANALYZE)
async def analyze(data):
    payload = decode_payload(JobType.ANALYZE, data)
    if random.random() < 0.5:
        raise RuntimeError(f"model overloaded while scoring {payload.listing_id}")
    await asyncio.sleep(0.05)
    return {"listing_id": payload.listing_id, "score": random.randint(1, 10)}


@registry.handler(JobType.ALERT)
async def alert(data):
    payload = decode_payload(JobType.ALERT, data)
    return f"notified {payload.user_id} about {len(payload.listings)} listing(s)"


async def print_events(bus, subscription):
    async for event in bus.events(subscription):
        print(f"  📣 {event.type.value:14} {event.job_type:8} {event.job_id}")


async def main():
    settings = Settings(
        queue=QueueConfig(max_concurrent=2, max_retries=3, retry_delay=0.2, job_timeout=5.0),
        logging=LoggingConfig(level="WARNING"),
    )
    bus = InMemoryEventBus()
    subscription = bus.subscribe()
    printer = asyncio.create_task(print_events(bus, subscription))

    async with build_queue(settings, registry, bus) as queue:
        queue.add(JobType.SCRAPE, {"source": "scheduled", "options": {"maxPages": 2}})
        for n in range(3):
            queue.add(JobType.ANALYZE, {"listingId": f"l{n}"}, priority=5)
        queue.add(JobType.ALERT, {"userId": "u1", "alertId": "a1", "listings": ["l0"]}, priority=10)

        await queue.join(timeout=30)

        print("\n=== Results ===")
        for job in queue.get_all():
            print(f"{job.type:8} {job.status.value:10} attempts={job.attempts} result={job.result}")
        print(f"\nStats: {queue.get_stats().to_dict()}")

    await bus.close()
    await printer


if __name__ == "__main__":
    asyncio.run(main())
