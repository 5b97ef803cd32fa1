"""Tracked background tasks for side calls that must not block a request.

Usage recording and similar bookkeeping run as tasks held by a
``BackgroundTasks`` set. Failures are logged and never reach the request
path; callers that care (tests, graceful shutdown) can ``drain()``.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from kgrag.observability.logging import get_logger

logger = get_logger(__name__)


class BackgroundTasks:
    """A set of fire-and-forget tasks that are still observable."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        """Schedule ``coro`` and keep a reference until it finishes."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(
                "background_task_failed",
                task=task.get_name(),
                error=str(error),
                error_type=type(error).__name__,
            )

    async def drain(self) -> None:
        """Wait for every pending task. Task failures are not raised."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    def __len__(self) -> int:
        return len(self._tasks)
