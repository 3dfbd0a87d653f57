"""Debounced background work with cancellation on superseding events."""

import asyncio
from typing import Awaitable, Callable, Optional

from loguru import logger


def _log_task_failure(completed: asyncio.Task) -> None:
    if completed.cancelled():
        return
    exc = completed.exception()
    if exc is not None:
        logger.opt(exception=exc).error(f"Background task {completed.get_name()} failed")


class DebouncedTask:
    """Run a coroutine once things have been quiet for ``delay_ms``.

    Every ``schedule()`` cancels the pending run and starts the wait again,
    so a burst of changes produces a single run.
    """

    def __init__(self, name: str, delay_ms: int, callback: Callable[[], Awaitable[None]]):
        self.name = name
        self.delay_ms = delay_ms
        self.callback = callback
        self._task: Optional[asyncio.Task] = None
        self._dirty = False

    @property
    def pending(self) -> bool:
        return self._dirty or (self._task is not None and not self._task.done())

    async def _run_after_delay(self) -> None:
        if self.delay_ms:
            await asyncio.sleep(self.delay_ms / 1000)
        self._dirty = False
        await self.callback()

    def schedule(self) -> None:
        """(Re)start the countdown, superseding any pending run."""
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet; remember the request so flush() picks it up
            self._dirty = True
            return
        self._dirty = True
        self._task = loop.create_task(self._run_after_delay(), name=self.name)
        self._task.add_done_callback(_log_task_failure)

    def cancel(self) -> None:
        """Drop the pending run, if any."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._dirty = False

    async def wait(self) -> None:
        """Wait for the pending run to finish (no-op when idle)."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def flush(self) -> None:
        """Run now if a run is pending, skipping the remaining delay."""
        if not self.pending:
            return
        self.cancel()
        await self.callback()
