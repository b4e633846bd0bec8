"""Audecode — cancellable fixed-interval timer on the running event loop.

The callback is awaited before the next interval starts, so two firings of
the same timer never overlap.
"""

import asyncio
from typing import Awaitable, Callable, Optional


class PeriodicTimer:
    def __init__(self, interval: float, callback: Callable[[], Awaitable[None]]):
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.interval  = interval
        self._callback = callback
        self._task: Optional[asyncio.Task] = None
        self.fired     = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start firing every ``interval`` seconds.  No-op if already running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            self.fired += 1
            await self._callback()
