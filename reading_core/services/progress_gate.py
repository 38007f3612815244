import logging
from typing import Optional

from reading_core.core.config import Settings
from reading_core.domain.errors import EntitlementUnavailable
from reading_core.domain.models.entitlement import ReadingLimitDecision
from reading_core.domain.models.reading import StoryRef
from reading_core.domain.ports.reader import ErrorReporterPort
from reading_core.services.daily_story_service import DailyStoryService
from reading_core.services.entitlement_service import UPGRADE_REASON, EntitlementResolver

logger = logging.getLogger(__name__)

GUEST_REASON = "Sign up to continue reading the full story!"


class ProgressGate:
    """
    Decides how far a caller may read a story right now.

    Priority: personalized > daily-free > guest ceiling > tier limits.
    Never raises; infrastructure errors degrade toward the guest ceiling.
    """

    def __init__(
        self,
        config: Settings,
        resolver: EntitlementResolver,
        daily_stories: DailyStoryService,
        reporter: Optional[ErrorReporterPort] = None,
    ):
        self.config = config
        self.resolver = resolver
        self.daily_stories = daily_stories
        self.reporter = reporter

    def _guest_ceiling(self, reason: str = GUEST_REASON) -> ReadingLimitDecision:
        return ReadingLimitDecision.limited(self.config.GUEST_MAX_PROGRESS, reason)

    async def _is_daily_story(self, story_id: str) -> bool:
        try:
            return await self.daily_stories.is_daily_story(story_id)
        except Exception as e:
            # Lookup failure only loses the bypass, never blocks reading
            logger.error("Error checking daily story: %s", e, extra={"story_id": story_id})
            return False

    async def check_reading_limit(self, user_id: Optional[str], story: StoryRef) -> ReadingLimitDecision:
        # 1. Personalized stories are always fully readable
        if story.is_personalized:
            return ReadingLimitDecision.full("personalized")

        # 2. Daily-free story, for everyone including guests
        if await self._is_daily_story(story.id):
            return ReadingLimitDecision.full("daily_free")

        # 3. Guests
        if not user_id:
            return self._guest_ceiling()

        # 4. Tier limits
        try:
            decision = await self.resolver.check_story_reading_limit(user_id)
        except EntitlementUnavailable as e:
            logger.warning("Entitlement unavailable, using guest ceiling user=%s: %s", user_id, e)
            if self.reporter:
                self.reporter.capture_exception(e, user_id=user_id, story_id=story.id)
            return self._guest_ceiling(UPGRADE_REASON)
        except Exception as e:
            logger.exception("Unexpected reading-limit failure user=%s", user_id)
            if self.reporter:
                self.reporter.capture_exception(e, user_id=user_id, story_id=story.id)
            return self._guest_ceiling(UPGRADE_REASON)

        return decision
