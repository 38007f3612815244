"""
Reading session lifecycle: NONE -> OPEN -> CLOSED per (user, story).

Duration is wall-clock time between started_at and the close stamp, never
derived from scrolling. Sessions left open by an unclean termination are
closed at their last heartbeat (reason "abandoned").
"""

import asyncio
import datetime
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from reading_core.core.clock import Clock, ensure_utc, utcnow
from reading_core.core.config import Settings
from reading_core.core.scope import ViewScope
from reading_core.domain.errors import SessionWriteFailed
from reading_core.domain.ports.reader import ErrorReporterPort
from reading_core.domain.ports.unit_of_work import UnitOfWork
from reading_core.models.reading import ReadingSession

logger = logging.getLogger(__name__)

R = TypeVar("R")

CLOSE_UNMOUNT = "unmount"
CLOSE_BACKGROUND = "background"
CLOSE_NAVIGATION = "navigation"
CLOSE_COMPLETED = "completed"
CLOSE_SUPERSEDED = "superseded"
CLOSE_ABANDONED = "abandoned"


class SessionManager:
    WRITE_ATTEMPTS = 2  # first try + a single retry

    def __init__(
        self,
        config: Settings,
        uow_factory: Callable[[], UnitOfWork],
        clock: Clock = utcnow,
        reporter: Optional[ErrorReporterPort] = None,
    ):
        self.config = config
        self.uow_factory = uow_factory
        self.clock = clock
        self.reporter = reporter

    # --- Helpers ---

    def _duration(self, started_at: datetime.datetime, ended_at: datetime.datetime) -> int:
        seconds = int((ensure_utc(ended_at) - ensure_utc(started_at)).total_seconds())
        return max(0, min(seconds, self.config.MAX_SESSION_SECONDS))

    def _close(self, session: ReadingSession, ended_at: datetime.datetime, reason: str, completed: bool = False):
        session.ended_at = ended_at
        session.last_seen_at = ended_at
        session.duration = self._duration(session.started_at, ended_at)
        session.completed = bool(session.completed) or completed
        session.close_reason = reason

    def _abandon_point(self, session: ReadingSession) -> datetime.datetime:
        return ensure_utc(session.last_seen_at) or ensure_utc(session.started_at)

    async def _write(self, op: str, fn: Callable[[], Awaitable[R]], session_id: Optional[str] = None) -> Optional[R]:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.WRITE_ATTEMPTS + 1):
            try:
                return await fn()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = e
                logger.warning("Session %s failed (attempt %s): %s", op, attempt, e)

        error = SessionWriteFailed(f"Session {op} failed: {last_error}", session_id=session_id)
        logger.error("%s", error, extra={"session_id": session_id})
        if self.reporter:
            self.reporter.capture_exception(error, operation=op, session_id=session_id)
        return None

    # --- Lifecycle ---

    async def open_session(
        self,
        user_id: Optional[str],
        story_id: Optional[str],
        is_personalized: bool = False,
        scope: Optional[ViewScope] = None,
    ) -> Optional[str]:
        """
        NONE -> OPEN. Returns the new session id, or None when ids are missing,
        the write failed, or the owning scope died while the insert was in flight.
        """
        if not user_id or not story_id:
            return None
        if scope is not None and not scope.alive:
            return None

        async def _open() -> str:
            now = self.clock()
            async with self.uow_factory() as uow:
                for stale in await uow.sessions.open_for(user_id, story_id):
                    self._close(stale, self._abandon_point(stale), CLOSE_SUPERSEDED)
                    logger.info("Superseded open session %s", stale.id)
                session = ReadingSession(
                    user_id=user_id,
                    story_id=story_id,
                    is_personalized=is_personalized,
                    started_at=now,
                    last_seen_at=now,
                    duration=0,
                    completed=False,
                )
                await uow.sessions.add(session, flush=True)
                return session.id

        session_id = await self._write("open", _open)
        if session_id is None:
            return None

        if scope is not None and not scope.alive:
            # View unmounted while the insert was in flight
            await self.close_session(session_id, reason=CLOSE_UNMOUNT)
            return None

        logger.info("Reading session opened id=%s user=%s story=%s", session_id, user_id, story_id)
        return session_id

    async def heartbeat(self, session_id: str) -> bool:
        """Autosave tick: stamps last_seen_at and the running duration of an open session."""

        async def _beat() -> bool:
            now = self.clock()
            async with self.uow_factory() as uow:
                session = await uow.sessions.get(session_id)
                if session is None or session.ended_at is not None:
                    return False
                session.last_seen_at = now
                session.duration = self._duration(session.started_at, now)
                return True

        return bool(await self._write("heartbeat", _beat, session_id))

    async def close_session(self, session_id: str, reason: str = CLOSE_UNMOUNT, completed: bool = False) -> Optional[int]:
        """
        OPEN -> CLOSED. Idempotent: closing a closed session only upgrades completion.
        Returns the recorded duration in seconds, or None if nothing was written.
        """

        async def _end() -> Optional[int]:
            now = self.clock()
            async with self.uow_factory() as uow:
                session = await uow.sessions.get(session_id)
                if session is None:
                    return None
                if session.ended_at is not None:
                    if completed and not session.completed:
                        session.completed = True
                    return session.duration
                self._close(session, now, reason, completed)
                return session.duration

        duration = await self._write("close", _end, session_id)
        if duration is not None:
            logger.info(
                "Reading session closed id=%s reason=%s duration=%ss completed=%s",
                session_id,
                reason,
                duration,
                completed,
            )
        return duration

    # --- Reconciliation ---

    async def reconcile_abandoned(self, user_id: str) -> int:
        """App start: close every open session of user at its last heartbeat."""

        async def _reconcile() -> int:
            async with self.uow_factory() as uow:
                sessions = await uow.sessions.open_for(user_id)
                for session in sessions:
                    self._close(session, self._abandon_point(session), CLOSE_ABANDONED)
                return len(sessions)

        closed = await self._write("reconcile", _reconcile) or 0
        if closed:
            logger.info("Closed %s abandoned sessions user=%s", closed, user_id)
        return closed

    async def close_stale_sessions(self, older_than_seconds: Optional[int] = None) -> int:
        """Close open sessions (any user) whose last heartbeat is older than the cutoff."""
        cutoff_seconds = older_than_seconds or self.config.STALE_SESSION_AFTER_SECONDS
        cutoff = self.clock() - datetime.timedelta(seconds=cutoff_seconds)

        async def _sweep() -> int:
            async with self.uow_factory() as uow:
                sessions = await uow.sessions.stale_open(cutoff)
                for session in sessions:
                    self._close(session, self._abandon_point(session), CLOSE_ABANDONED)
                return len(sessions)

        return await self._write("sweep", _sweep) or 0
