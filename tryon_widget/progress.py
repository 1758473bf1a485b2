"""Simulated progress for requests that give no incremental feedback."""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ProgressTicker:
    """Periodic task that bumps a progress value up to a ceiling.

    The outfit endpoint answers only once, so progress is faked: +step every
    interval, never past `ceiling` until the owner snaps it to 100. The
    owner must call `stop()` on every exit path.
    """

    def __init__(
        self,
        on_tick: Callable[[int], None],
        interval: float = 1.0,
        step: int = 10,
        ceiling: int = 90,
    ):
        self.on_tick = on_tick
        self.interval = interval
        self.step = step
        self.ceiling = ceiling
        self.value = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, initial: int = 0) -> None:
        self.stop()
        self.value = initial
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.value >= self.ceiling:
                continue
            self.value = min(self.value + self.step, self.ceiling)
            self.on_tick(self.value)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
