from __future__ import annotations

import asyncio
import inspect
from typing import Any, Awaitable, Callable


class Debouncer:
    """Runs ``callback(value)`` once input has been quiet for ``delay`` seconds.

    Each ``trigger`` cancels the pending run and schedules a new one; only a run
    that finishes its wait calls the callback. Must be used inside a running
    event loop.
    """

    def __init__(self, delay: float, callback: Callable[[Any], Awaitable[None] | None]):
        self.delay = float(delay)
        self.callback = callback
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self, value: Any) -> None:
        if self._closed:
            return
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(value))

    async def _run(self, value: Any) -> None:
        await asyncio.sleep(self.delay)
        if self._closed:
            return
        res = self.callback(value)
        if inspect.isawaitable(res):
            await res

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Waits for the pending run, if any (mostly for tests)."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    def close(self) -> None:
        self._closed = True
        self.cancel()
