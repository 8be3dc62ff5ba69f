"""
Tracked fire-and-forget tasks.

Webhook processing, profile enrichment and realtime publishing run outside
the request path. Keeping strong references lets the event loop finish them
and lets shutdown (and tests) wait for them.
"""

import asyncio
from collections.abc import Coroutine
from typing import Any

from omnihook.core.logging.logger import get_logger

logger = get_logger(__name__)


class TaskTracker:
    """Holds references to background tasks until they complete."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        """
        Schedule a coroutine as a tracked background task.

        Args:
            coro: Coroutine to run
            name: Optional task name for log lines

        Returns:
            The created task
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                f"Background task {task.get_name()} failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def drain(self, timeout: float | None = None) -> None:
        """
        Wait until every tracked task (including ones spawned meanwhile) is done.

        Args:
            timeout: Optional upper bound in seconds; pending tasks are
                cancelled when it expires
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while self._tasks:
            pending = list(self._tasks)
            remaining = None if deadline is None else max(deadline - loop.time(), 0)
            done, not_done = await asyncio.wait(pending, timeout=remaining)
            if not_done and deadline is not None and loop.time() >= deadline:
                logger.warning(f"Cancelling {len(not_done)} background task(s)")
                for task in not_done:
                    task.cancel()
                await asyncio.gather(*not_done, return_exceptions=True)
                return

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)
