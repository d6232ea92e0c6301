"""SessionSweeper: periodic force-disposal of sessions that outlived any deadline."""

import logging
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from wapair.core.config import SweepConfig
from wapair.runtime.session.coordinator import SessionCoordinator

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Disposes sessions older than ``max_session_age_hours`` on an interval.

    Per-session deadlines normally dispose sessions long before this runs; the
    sweep only catches sessions whose timers were lost.
    """

    JOB_ID = "session_sweep"

    def __init__(self, coordinator: SessionCoordinator, config: SweepConfig):
        self.coordinator = coordinator
        self.config = config
        self._scheduler: AsyncIOScheduler | None = None
        self._job: Any = None
        self.last_disposed = 0

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    async def start(self) -> None:
        """Start the sweep with an interval trigger."""
        if not self.config.enabled:
            logger.info("Session sweep disabled")
            return

        self._scheduler = AsyncIOScheduler()
        trigger = IntervalTrigger(minutes=self.config.interval_minutes)

        self._job = self._scheduler.add_job(
            func=self.run_sweep,
            trigger=trigger,
            id=self.JOB_ID,
            name="Session sweep",
            replace_existing=True,
        )

        self._scheduler.start()
        logger.info(
            f"Session sweep started (interval: {self.config.interval_minutes}m, "
            f"max age: {self.config.max_session_age_hours}h)"
        )

    async def stop(self) -> None:
        """Stop the sweep scheduler."""
        if self._scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=True)
            logger.info("Session sweep stopped")
        self._scheduler = None
        self._job = None

    async def run_sweep(self) -> int:
        """Dispose every session older than the configured ceiling."""
        max_age_seconds = self.config.max_session_age_hours * 3600
        try:
            self.last_disposed = await self.coordinator.sweep_expired(max_age_seconds)
        except Exception as e:
            logger.error(f"Session sweep failed: {e}", exc_info=True)
            return 0
        logger.debug(f"Session sweep finished ({self.last_disposed} disposed)")
        return self.last_disposed
