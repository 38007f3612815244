import logging
from typing import Callable, Optional

from reading_core.core.scope import ViewScope
from reading_core.domain.models.reading import ProgressOutcome, StoryRef
from reading_core.domain.rules.progress_rules import ProgressRules
from reading_core.services.progress_gate import ProgressGate

logger = logging.getLogger(__name__)

DEFAULT_PAYWALL_MESSAGE = "Upgrade to continue reading the full story!"


class ProgressProtection:
    """
    Single-function wrapper for call sites that already hold a progress value.

    Forwards accepted progress to on_progress_change. A paywall callback is
    always deferred to the next loop tick so it never lands while the caller
    is still mid-update.
    """

    def __init__(
        self,
        gate: ProgressGate,
        scope: ViewScope,
        story: StoryRef,
        user_id: Optional[str] = None,
        on_progress_change: Optional[Callable[[float], None]] = None,
        on_paywall_triggered: Optional[Callable[[str], None]] = None,
    ):
        self.gate = gate
        self.scope = scope
        self.story = story
        self.user_id = user_id
        self.on_progress_change = on_progress_change
        self.on_paywall_triggered = on_paywall_triggered

    async def protected_progress_change(self, new_progress: float) -> ProgressOutcome:
        progress = ProgressRules.clamp(new_progress)

        if self.story.is_personalized:
            self._forward(progress)
            return ProgressOutcome(progress=progress)

        decision = await self.gate.check_reading_limit(self.user_id, self.story)
        if not self.scope.alive:
            return ProgressOutcome(progress=progress, accepted=False, stale=True)

        if not decision.can_read_full and ProgressRules.exceeds(progress, decision.max_progress_allowed):
            reason = decision.reason or DEFAULT_PAYWALL_MESSAGE
            if self.on_paywall_triggered:
                self.scope.call_soon(self.on_paywall_triggered, reason)
            # Progress beyond the limit is not forwarded
            return ProgressOutcome(
                progress=decision.max_progress_allowed,
                accepted=False,
                paywall=True,
                reason=reason,
            )

        self._forward(progress)
        return ProgressOutcome(progress=progress)

    def _forward(self, progress: float) -> None:
        if self.on_progress_change:
            self.on_progress_change(progress)
