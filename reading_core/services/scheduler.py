"""
Session Reaper

Closes reading sessions left open by crashes or killed apps, using APScheduler.
"""

import asyncio
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from reading_core.core.config import Settings
from reading_core.services.session_service import SessionManager

logger = logging.getLogger(__name__)


class SessionReaper:
    """
    Periodic sweep over open sessions whose heartbeat went silent for
    STALE_SESSION_AFTER_SECONDS. Overlapping ticks are skipped.
    """

    def __init__(self, config: Settings, sessions: SessionManager):
        self.config = config
        self.sessions = sessions
        self.scheduler = AsyncIOScheduler()
        self._is_running = False
        self._lock = asyncio.Lock()
        self.last_closed = 0

    @property
    def is_running(self) -> bool:
        return self._is_running

    def start(self):
        """Start the scheduler with the reaper job."""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        interval = max(30, self.config.SCHEDULER_INTERVAL_SECONDS)
        self.scheduler.add_job(
            self._reap_tick,
            IntervalTrigger(seconds=interval),
            id="session_reaper",
            replace_existing=True,
            misfire_grace_time=300,
        )
        self.scheduler.start()
        self._is_running = True
        logger.info("Session reaper started with interval job (%ss)", interval)

    def shutdown(self):
        if self._is_running:
            self.scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("Session reaper shutdown complete")

    async def _reap_tick(self) -> int:
        if self._lock.locked():
            return 0

        async with self._lock:
            try:
                closed = await self.sessions.close_stale_sessions(self.config.STALE_SESSION_AFTER_SECONDS)
            except Exception as e:
                logger.error("Reaper tick failed: %s", e)
                return 0
            self.last_closed = closed
            if closed:
                logger.info("Reaper closed %s stale sessions", closed)
            return closed
