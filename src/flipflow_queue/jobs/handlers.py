"""
Handler registry mapping job types to the async functions that do the work.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from ..errors import HandlerNotFoundError

logger = logging.getLogger(__name__)

JobHandler = Callable[[Any], Awaitable[Any]]


def _type_key(job_type: str | Enum) -> str:
    return job_type.value if isinstance(job_type, Enum) else str(job_type)


class HandlerRegistry:
    """Registry of job handlers, one per job type.

    Handlers are async callables taking the job's ``data`` payload. They
    never see the store or other jobs.

    Example:
        registry = HandlerRegistry()

        @registry.handler("scrape")
        async def scrape(data):
            ...
    """

    def __init__(self, handlers: dict[str, JobHandler] | None = None):
        self._handlers: dict[str, JobHandler] = {}
        for job_type, fn in (handlers or {}).items():
            self.register(job_type, fn)

    def register(
        self,
        job_type: str | Enum,
        handler: JobHandler,
        *,
        replace: bool = False,
    ) -> HandlerRegistry:
        """Register a handler.

        Returns:
            Self for chaining

        Raises:
            TypeError: If the handler is not an async callable
            ValueError: If a handler is already registered for the type
        """
        key = _type_key(job_type)
        if not key:
            raise ValueError("job_type must be a non-empty string")
        if not _is_async_callable(handler):
            raise TypeError(f"Handler for '{key}' must be an async callable")
        if key in self._handlers and not replace:
            raise ValueError(f"Handler for '{key}' is already registered")

        self._handlers[key] = handler
        logger.debug(f"Registered handler for job type: {key}")
        return self

    def handler(self, job_type: str | Enum, *, replace: bool = False) -> Callable[[JobHandler], JobHandler]:
        """Decorator form of ``register``."""

        def decorator(fn: JobHandler) -> JobHandler:
            self.register(job_type, fn, replace=replace)
            return fn

        return decorator

    def unregister(self, job_type: str | Enum) -> bool:
        """Unregister a handler.

        Returns:
            True if a handler was removed, False if none was registered
        """
        return self._handlers.pop(_type_key(job_type), None) is not None

    def get(self, job_type: str | Enum) -> JobHandler | None:
        return self._handlers.get(_type_key(job_type))

    def resolve(self, job_type: str | Enum) -> JobHandler:
        """Get the handler for ``job_type``.

        Raises:
            HandlerNotFoundError: If no handler is registered
        """
        handler = self.get(job_type)
        if handler is None:
            raise HandlerNotFoundError(job_type=_type_key(job_type))
        return handler

    def types(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, job_type: object) -> bool:
        if not isinstance(job_type, (str, Enum)):
            return False
        return _type_key(job_type) in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


def _is_async_callable(fn: Any) -> bool:
    if inspect.iscoroutinefunction(fn):
        return True
    # Callable instances with an async __call__
    call = getattr(fn, "__call__", None)
    return call is not None and inspect.iscoroutinefunction(call)


__all__ = ["HandlerRegistry", "JobHandler"]
