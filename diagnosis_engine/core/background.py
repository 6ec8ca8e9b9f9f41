"""Detached background tasks whose results nobody awaits.

The spawner holds a strong reference to every running task (the event loop
only keeps weak ones) and logs failures, since no caller will ever see them.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from diagnosis_engine.core.logging import get_logger


class BackgroundTasks:
    """Fire-and-forget task spawner."""

    def __init__(self, logger: logging.Logger | None = None):
        self._logger = logger or get_logger(__name__)
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        """Start ``coro`` detached from the caller. Its result is discarded."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self._logger.warning(f"Background task {task.get_name()} was cancelled")
            return

        exc = task.exception()
        if exc is not None:
            self._logger.error(
                f"Background task {task.get_name()} failed: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every outstanding task, including ones spawned while waiting."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
