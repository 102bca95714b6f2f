import asyncio
import logging
from typing import Optional

from duejobs.domain.models import TickSummary
from duejobs.scheduler.tick import Tick

logger = logging.getLogger(__name__)

class SchedulerService:
    """
    In-process periodic trigger: calls Tick.on_tick every `interval` seconds.

    Optional. Deployments that drive ticks from cron or a cloud scheduler hit
    POST /api/v1/admin/tick instead. Several replicas may run this loop at once.
    """

    def __init__(self, tick: Tick, interval: float = 60):
        self.tick = tick
        self.interval = interval
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self.last_summary: Optional[TickSummary] = None

    async def start(self):
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(f"Scheduler service started (interval={self.interval}s).")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Scheduler service stopped.")

    async def _loop(self):
        while self._running:
            try:
                self.last_summary = await self.tick.on_tick()
            except Exception as e:
                # on_tick contains per-job errors itself; this is a bug or a config problem
                logger.error(f"Error in scheduler tick: {e}", exc_info=True)

            await asyncio.sleep(self.interval)
