"""Periodic background cleanup owned by a store."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """Runs ``sweep`` every ``interval_seconds`` until stopped."""

    def __init__(self, name: str, interval_seconds: float, sweep: Callable[[], Awaitable[int]]):
        self.name = name
        self.interval_seconds = interval_seconds
        self._sweep = sweep
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name=f"{self.name}-sweeper")
        logger.debug(f"Started {self.name} sweeper every {self.interval_seconds}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Stopped {self.name} sweeper")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self._sweep()
            except Exception as e:
                logger.warning(f"{self.name} sweep failed: {e}")
