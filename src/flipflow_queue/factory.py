"""
Composition root.

The HTTP layer builds one queue at process startup with ``build_queue``
and passes it to whatever needs it; there is no module-level queue.
"""

from __future__ import annotations

from .config import Settings, get_settings, load_env
from .events import EventBus
from .jobs.handlers import HandlerRegistry, JobHandler
from .jobs.queue import JobQueue
from .jobs.store import JobStore
from .logging import configure_logging


def build_queue(
    settings: Settings | None = None,
    handlers: HandlerRegistry | dict[str, JobHandler] | None = None,
    event_bus: EventBus | None = None,
    *,
    store: JobStore | None = None,
) -> JobQueue:
    """
    Build a configured JobQueue.

    Args:
        settings: Settings to use. If not provided, a ``.env`` file is
            loaded and the global settings are read from the environment.
        handlers: Handler registry, or a mapping of job type to handler
        event_bus: Optional bus receiving job lifecycle events
        store: Optional job store (defaults to an in-memory store)

    Returns:
        The queue. It starts itself when built inside a running event
        loop; otherwise call ``start()`` or use ``async with``.
    """
    if settings is None:
        load_env()
        settings = get_settings()

    logger = configure_logging(settings.logging)
    return JobQueue(
        settings.queue,
        handlers,
        event_bus=event_bus,
        store=store,
        logger=logger,
    )


__all__ = ["build_queue"]
