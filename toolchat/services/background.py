"""Detached background tasks for best-effort side effects."""

import asyncio
from collections.abc import Coroutine
from typing import Any

from toolchat.utils.logging import get_logger

logger = get_logger(__name__)


class BackgroundTaskRunner:
    """Runs fire-and-forget coroutines outside the request's response path.

    Tasks are held by strong reference until they finish, so a client
    disconnect or a garbage-collected request does not cancel them. Failures
    are logged and otherwise discarded.
    """

    def __init__(self):
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            logger.warning(f"Background task {task.get_name()} was cancelled")
            return

        exc = task.exception()
        if exc is not None:
            logger.warning(f"Background task {task.get_name()} failed: {exc!r}")
        else:
            logger.debug(f"Background task {task.get_name()} completed")

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for all in-flight tasks, e.g. at shutdown or in tests."""
        if not self._tasks:
            return
        logger.debug(f"Draining {len(self._tasks)} background tasks")
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} background tasks still running after drain timeout")
