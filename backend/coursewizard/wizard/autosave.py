from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from ..settings import settings
from .coordinator import SaveCoordinator, SaveOutcome, SaveTrigger

logger = logging.getLogger(__name__)


class AutosaveTicker:
    """Fixed-interval timer trigger.

    No backoff: a failed save leaves the session dirty and the next tick
    simply tries again.
    """

    def __init__(self, coordinator: SaveCoordinator, interval: Optional[float] = None) -> None:
        self.coordinator = coordinator
        self.interval = settings.autosave_interval_seconds if interval is None else interval
        if self.interval <= 0:
            raise ValueError("autosave interval must be positive")
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="autosave-ticker")
        logger.debug("Autosave started, every %.1fs", self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.debug("Autosave stopped after %d ticks", self.ticks)

    async def tick(self) -> SaveOutcome:
        self.ticks += 1
        return await self.coordinator.request_save(SaveTrigger.TIMER)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            # a save already issued runs to completion even if the ticker stops
            save = asyncio.ensure_future(self.tick())
            save.add_done_callback(_report_tick_failure)
            await asyncio.shield(save)


def _report_tick_failure(save: asyncio.Future) -> None:
    if not save.cancelled() and save.exception() is not None:
        logger.error("Autosave tick failed", exc_info=save.exception())
