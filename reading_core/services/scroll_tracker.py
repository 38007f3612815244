"""
Scroll-to-progress tracking for one open story view.

Scroll events arrive many times per second and each one awaits the progress
gate. Every event takes a sequence number; a gate result that resolves after
a newer event has already been applied is dropped so progress never rolls
backward. Overlapping gate calls still apply in order while scrolling goes on.
"""

import asyncio
import logging
from typing import Optional

from reading_core.core.config import Settings
from reading_core.core.scope import ViewScope
from reading_core.domain.models.entitlement import ReadingLimitDecision
from reading_core.domain.models.reading import ProgressOutcome, StoryRef
from reading_core.domain.ports.reader import ErrorReporterPort, ReaderViewPort
from reading_core.domain.rules.progress_rules import ProgressRules
from reading_core.services.progress_gate import ProgressGate
from reading_core.services.progress_store import ProgressStore

logger = logging.getLogger(__name__)


class ScrollProgressTracker:
    def __init__(
        self,
        config: Settings,
        gate: ProgressGate,
        store: ProgressStore,
        scope: ViewScope,
        view: ReaderViewPort,
        story: StoryRef,
        user_id: Optional[str] = None,
        reporter: Optional[ErrorReporterPort] = None,
    ):
        self.config = config
        self.gate = gate
        self.store = store
        self.scope = scope
        self.view = view
        self.story = story
        self.user_id = user_id
        self.reporter = reporter

        self.content_height = 0.0
        self.viewport_height = 0.0
        self.progress = 0.0
        self.last_decision: Optional[ReadingLimitDecision] = None
        self.paywall_events = 0

        self._seq = 0
        self._applied_seq = 0
        self._persisted_seq = 0
        self._write_lock = asyncio.Lock()
        self._paywall_active = False
        self._corrective_handle: Optional[asyncio.TimerHandle] = None

        self._saved_progress = 0.0
        self._restore_pending = False
        self._restore_scheduled = False

    # --- Geometry ---

    def handle_layout(self, viewport_height: float) -> None:
        self.viewport_height = max(0.0, viewport_height)
        self._maybe_schedule_restore()

    def handle_content_size(self, content_height: float) -> None:
        self.content_height = max(0.0, content_height)
        self._maybe_schedule_restore()

    # --- Gate ---

    async def _decide(self) -> ReadingLimitDecision:
        if self.story.is_personalized:
            return ReadingLimitDecision.full("personalized")
        return await self.gate.check_reading_limit(self.user_id, self.story)

    # --- Scroll ---

    async def handle_scroll(self, offset: float, viewport_height: float, content_height: float) -> ProgressOutcome:
        self._seq += 1
        seq = self._seq

        self.viewport_height = max(0.0, viewport_height)
        self.content_height = max(0.0, content_height)
        raw = ProgressRules.compute_progress(offset, self.viewport_height, self.content_height)

        decision = await self._decide()

        if not self.scope.alive or seq < self._applied_seq:
            logger.debug("Dropping stale gate result seq=%s applied=%s", seq, self._applied_seq)
            return ProgressOutcome(progress=self.progress, accepted=False, stale=True)

        self._applied_seq = seq
        self.last_decision = decision
        progress = raw
        outcome = ProgressOutcome(progress=raw)

        if not decision.can_read_full and ProgressRules.exceeds(raw, decision.max_progress_allowed):
            progress = decision.max_progress_allowed
            outcome = ProgressOutcome(
                progress=progress,
                paywall=True,
                reason=decision.reason or "Upgrade to continue reading the full story!",
                corrective_offset=self._schedule_corrective_scroll(progress),
            )
            self._fire_paywall(outcome.reason)
        else:
            self._paywall_active = False

        self.progress = progress
        self.view.on_progress(progress)
        outcome.persisted = await self._persist(seq, progress)
        return outcome

    def _schedule_corrective_scroll(self, ceiling: float) -> float:
        target = ProgressRules.offset_for_progress(ceiling, self.viewport_height, self.content_height)
        self.scope.cancel(self._corrective_handle)
        self._corrective_handle = self.scope.call_later(
            self.config.CORRECTIVE_SCROLL_DELAY_SECONDS, self._scroll_back, target
        )
        return target

    def _scroll_back(self, target: float) -> None:
        self._corrective_handle = None
        logger.info("Corrective scroll story=%s offset=%.0f", self.story.id, target)
        self.view.scroll_to(target, animated=True)

    def _fire_paywall(self, reason: str) -> None:
        # One event per excursion past the ceiling
        if self._paywall_active:
            return
        self._paywall_active = True
        self.paywall_events += 1
        logger.info("Paywall triggered story=%s user=%s", self.story.id, self.user_id or "guest")
        self.view.show_paywall(reason)

    async def _persist(self, seq: int, progress: float) -> bool:
        if not self.user_id:
            return False
        async with self._write_lock:
            if seq < self._persisted_seq or not self.scope.alive:
                return False
            try:
                await self.store.save(self.user_id, self.story.id, progress)
            except Exception as e:
                logger.error("Progress save failed story=%s: %s", self.story.id, e)
                if self.reporter:
                    self.reporter.capture_exception(e, user_id=self.user_id, story_id=self.story.id)
                return False
            self._persisted_seq = seq
            return True

    # --- Restore saved progress ---

    def restore_saved_progress(self, saved_progress: float) -> None:
        """One-shot replay of saved progress for this open."""
        if self._restore_scheduled:
            return
        self._saved_progress = ProgressRules.clamp(saved_progress)
        self._restore_pending = self._saved_progress > self.config.RESTORE_MIN_PROGRESS
        self._maybe_schedule_restore()

    def _maybe_schedule_restore(self) -> None:
        if not self._restore_pending or self._restore_scheduled:
            return
        if not ProgressRules.should_restore(
            self._saved_progress, self.viewport_height, self.content_height, self.config.RESTORE_MIN_PROGRESS
        ):
            return
        self._restore_scheduled = True
        self._restore_pending = False
        self.scope.call_later(self.config.RESTORE_SETTLE_DELAY_SECONDS, self._restore)

    def _restore(self) -> None:
        target = ProgressRules.offset_for_progress(self._saved_progress, self.viewport_height, self.content_height)
        self.progress = self._saved_progress
        logger.info("Restored saved progress story=%s progress=%.2f", self.story.id, self._saved_progress)
        self.view.scroll_to(max(0.0, target), animated=True)

    @property
    def restore_scheduled(self) -> bool:
        return self._restore_scheduled
