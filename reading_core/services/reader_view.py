import logging
from typing import Optional

from reading_core.core.config import Settings
from reading_core.core.context import set_trace_id
from reading_core.core.scope import ViewScope
from reading_core.domain.models.reading import AchievementReport, ProgressOutcome, StoryRef
from reading_core.domain.ports.reader import ErrorReporterPort, ReaderViewPort
from reading_core.domain.rules.progress_rules import ProgressRules
from reading_core.services.achievement_service import AchievementEngine
from reading_core.services.progress_gate import ProgressGate
from reading_core.services.progress_store import ProgressStore
from reading_core.services.scroll_tracker import ScrollProgressTracker
from reading_core.services.session_service import (
    CLOSE_BACKGROUND,
    CLOSE_COMPLETED,
    CLOSE_NAVIGATION,
    CLOSE_UNMOUNT,
    SessionManager,
)

logger = logging.getLogger(__name__)


class ReaderViewController:
    """
    One open story view: scroll tracking, the reading session and its
    autosave heartbeat, and completion side effects (streak, achievements).

    Everything deferred belongs to self.scope and dies with unmount().
    """

    def __init__(
        self,
        config: Settings,
        gate: ProgressGate,
        store: ProgressStore,
        sessions: SessionManager,
        achievements: AchievementEngine,
        view: ReaderViewPort,
        story: StoryRef,
        user_id: Optional[str] = None,
        reporter: Optional[ErrorReporterPort] = None,
    ):
        self.config = config
        self.store = store
        self.sessions = sessions
        self.achievements = achievements
        self.story = story
        self.user_id = user_id
        self.reporter = reporter

        self.scope = ViewScope(f"reader-{story.id}")
        self.tracker = ScrollProgressTracker(config, gate, store, self.scope, view, story, user_id, reporter)

        self.session_id: Optional[str] = None
        self.completed = False
        self.last_report: Optional[AchievementReport] = None
        self._autosave_handle = None
        self.app_state = "active"
        self._opening = False

    # --- Lifecycle ---

    async def mount(self) -> None:
        set_trace_id(self.scope.id)
        try:
            saved = await self.store.load(self.user_id, self.story.id)
        except Exception as e:
            logger.error("Could not load saved progress story=%s: %s", self.story.id, e)
            saved = 0.0
        if not self.scope.alive:
            return

        self.tracker.restore_saved_progress(saved)
        await self._start_session()

    async def unmount(self) -> None:
        """Cancels every pending timer first, then closes the open session."""
        self.scope.close()
        self._autosave_handle = None
        await self._end_session(CLOSE_UNMOUNT)

    async def navigate_away(self) -> None:
        """Explicit exit from the reader; nothing reopens afterwards."""
        self.scope.close()
        self._autosave_handle = None
        await self._end_session(CLOSE_NAVIGATION)

    async def on_app_state_change(self, state: str) -> None:
        self.app_state = state
        if self._in_background:
            self.scope.cancel(self._autosave_handle)
            self._autosave_handle = None
            await self._end_session(CLOSE_BACKGROUND)
        elif (
            state == "active"
            and self.scope.alive
            and self.session_id is None
            and not self._opening
            and not self.completed
        ):
            await self._start_session()

    @property
    def _in_background(self) -> bool:
        return self.app_state in ("background", "inactive")

    async def _start_session(self) -> None:
        if not self.user_id or self._in_background:
            return
        self._opening = True
        try:
            session_id = await self.sessions.open_session(
                self.user_id, self.story.id, self.story.is_personalized, self.scope
            )
        finally:
            self._opening = False
        if not session_id:
            return
        if self._in_background:
            # App left the foreground while the open was in flight
            await self.sessions.close_session(session_id, reason=CLOSE_BACKGROUND)
            return
        self.session_id = session_id
        self._schedule_autosave()

    async def _end_session(self, reason: str, completed: bool = False) -> Optional[int]:
        session_id, self.session_id = self.session_id, None
        if not session_id:
            return None
        return await self.sessions.close_session(session_id, reason=reason, completed=completed)

    # --- Autosave ---

    def _schedule_autosave(self) -> None:
        self.scope.cancel(self._autosave_handle)
        self._autosave_handle = self.scope.call_later(self.config.AUTOSAVE_INTERVAL_SECONDS, self._autosave)

    async def _autosave(self) -> None:
        if not self.session_id:
            return
        await self.sessions.heartbeat(self.session_id)
        if self.scope.alive and self.session_id:
            self._schedule_autosave()

    # --- Geometry & scroll ---

    def handle_layout(self, viewport_height: float) -> None:
        self.tracker.handle_layout(viewport_height)

    def handle_content_size(self, content_height: float) -> None:
        self.tracker.handle_content_size(content_height)

    async def handle_scroll(self, offset: float, viewport_height: float, content_height: float) -> ProgressOutcome:
        outcome = await self.tracker.handle_scroll(offset, viewport_height, content_height)
        if (
            outcome.accepted
            and not outcome.paywall
            and not self.completed
            and ProgressRules.is_completed(outcome.progress, self.config.COMPLETION_THRESHOLD)
        ):
            await self._complete(outcome.progress)
        return outcome

    async def _complete(self, progress: float) -> None:
        self.completed = True
        logger.info("Story completed story=%s user=%s", self.story.id, self.user_id or "guest")
        if not self.user_id:
            return

        try:
            await self.store.save(self.user_id, self.story.id, progress, completed=True)
        except Exception as e:
            logger.error("Could not mark story completed story=%s: %s", self.story.id, e)
            if self.reporter:
                self.reporter.capture_exception(e, user_id=self.user_id, story_id=self.story.id)

        session_id = self.session_id
        self.scope.cancel(self._autosave_handle)
        self._autosave_handle = None
        await self._end_session(CLOSE_COMPLETED, completed=True)
        self.last_report = await self.achievements.evaluate_after_session(self.user_id, session_id)
        if self.last_report.granted:
            logger.info("Achievements granted %s", self.last_report.granted)
