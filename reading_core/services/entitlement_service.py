import logging
import time
from typing import Callable, Dict, Optional, Tuple

from reading_core.core.clock import Clock, utcnow
from reading_core.core.config import Settings
from reading_core.domain.errors import EntitlementUnavailable
from reading_core.domain.models.entitlement import (
    AIStoryUsage,
    AudioUsage,
    ReadingLimitDecision,
    StoryReadingUsage,
    TierPolicy,
    TierSnapshot,
    UsageLimits,
)
from reading_core.domain.ports.billing import TierOraclePort
from reading_core.domain.ports.unit_of_work import UnitOfWork
from reading_core.domain.rules.limit_rules import CounterView, LimitRules

logger = logging.getLogger(__name__)

UPGRADE_REASON = "Upgrade to Premium to read complete stories!"


class EntitlementResolver:
    """
    Tier + numeric usage limits for a user.

    The tier oracle is cached per user for ENTITLEMENT_CACHE_TTL_SECONDS; any
    failure surfaces as EntitlementUnavailable.
    """

    def __init__(
        self,
        config: Settings,
        oracle: TierOraclePort,
        uow_factory: Callable[[], UnitOfWork],
        clock: Clock = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.oracle = oracle
        self.uow_factory = uow_factory
        self.clock = clock
        self.monotonic = monotonic
        self._tier_cache: Dict[str, Tuple[float, TierSnapshot]] = {}

    # --- Tier ---

    def policy_for(self, tier: str) -> TierPolicy:
        policies = self.config.TIER_POLICIES
        raw = policies.get(tier) or policies.get(self.config.DEFAULT_TIER)
        if not raw:
            # Never fall through to an unlimited default policy
            raise EntitlementUnavailable(f"No tier policy configured for {tier!r}")
        return TierPolicy(**raw)

    async def get_tier(self, user_id: str) -> TierSnapshot:
        cached = self._tier_cache.get(user_id)
        now = self.monotonic()
        if cached and now - cached[0] < self.config.ENTITLEMENT_CACHE_TTL_SECONDS:
            return cached[1]

        try:
            snapshot = await self.oracle.get_tier(user_id)
        except EntitlementUnavailable:
            raise
        except Exception as e:
            raise EntitlementUnavailable(f"Tier oracle failed for {user_id}: {e}") from e

        self._tier_cache[user_id] = (now, snapshot)
        return snapshot

    def invalidate(self, user_id: Optional[str] = None):
        """Forget cached tiers (one user, or everyone) so the next read hits the oracle."""
        if user_id is None:
            self._tier_cache.clear()
        else:
            self._tier_cache.pop(user_id, None)

    # --- Counters ---

    async def _load_counters(self, user_id: str) -> Tuple[CounterView, str]:
        now = self.clock()
        try:
            async with self.uow_factory() as uow:
                user = await uow.users.get(user_id)
                zone_name = user.timezone if user else None
                counter = await uow.usage.get(user_id)
        except Exception as e:
            raise EntitlementUnavailable(f"Usage store unavailable for {user_id}: {e}") from e

        zone = LimitRules.resolve_zone(zone_name)
        today = LimitRules.local_today(now, zone)
        if counter is None:
            return CounterView(0, 0, 0), zone.key
        view = LimitRules.view_counters(
            today,
            counter.ai_generated_lifetime,
            counter.ai_generated_today,
            counter.ai_last_reset_date,
            counter.audio_this_month,
            counter.audio_last_reset_date,
        )
        return view, zone.key

    # --- Public API ---

    async def get_usage_limits(self, user_id: str) -> UsageLimits:
        """Snapshot of the user's consumption against their tier. Raises EntitlementUnavailable."""
        snapshot = await self.get_tier(user_id)
        policy = self.policy_for(snapshot.tier)
        counters, zone_name = await self._load_counters(user_id)
        zone = LimitRules.resolve_zone(zone_name)
        now = self.clock()

        ai = LimitRules.evaluate_ai(policy, counters)
        audio = LimitRules.evaluate_audio(policy, counters)

        return UsageLimits(
            user_id=user_id,
            tier=snapshot.tier,
            ai_stories=AIStoryUsage(
                lifetime_used=counters.ai_lifetime,
                lifetime_limit=policy.lifetime_ai_limit,
                today_used=counters.ai_today,
                daily_limit=policy.daily_ai_limit,
                can_generate=ai.can_generate,
                reason=ai.reason,
                reset_time=LimitRules.next_daily_reset(now, zone) if policy.daily_ai_limit > 0 else None,
            ),
            audio_generation=AudioUsage(
                monthly_used=counters.audio_month,
                monthly_limit=policy.monthly_audio_limit,
                can_generate=audio.can_generate,
                reason=audio.reason,
                reset_date=LimitRules.next_monthly_reset(now, zone) if policy.monthly_audio_limit > 0 else None,
            ),
            story_reading=StoryReadingUsage(
                can_read_full=policy.unlimited_reading,
                max_progress_allowed=1.0 if policy.unlimited_reading else policy.max_progress,
            ),
        )

    async def check_story_reading_limit(self, user_id: str) -> ReadingLimitDecision:
        limits = await self.get_usage_limits(user_id)
        if limits.story_reading.can_read_full:
            return ReadingLimitDecision.full()
        return ReadingLimitDecision.limited(limits.story_reading.max_progress_allowed, UPGRADE_REASON)

    async def check_ai_generation_limit(self, user_id: str) -> AIStoryUsage:
        try:
            return (await self.get_usage_limits(user_id)).ai_stories
        except EntitlementUnavailable as e:
            logger.error("Error checking AI story limits: %s", e)
            return AIStoryUsage(can_generate=False, reason="Unable to check usage limits. Please try again.")

    async def check_audio_generation_limit(self, user_id: str) -> AudioUsage:
        try:
            return (await self.get_usage_limits(user_id)).audio_generation
        except EntitlementUnavailable as e:
            logger.error("Error checking audio generation limits: %s", e)
            return AudioUsage(can_generate=False, reason="Unable to check usage limits. Please try again.")

    async def increment_ai_story_usage(self, user_id: str) -> None:
        await self._increment(user_id, audio=False)

    async def increment_audio_usage(self, user_id: str) -> None:
        await self._increment(user_id, audio=True)

    async def _increment(self, user_id: str, audio: bool) -> None:
        now = self.clock()
        try:
            async with self.uow_factory() as uow:
                user = await uow.users.get(user_id)
                zone = LimitRules.resolve_zone(user.timezone if user else None)
                today = LimitRules.local_today(now, zone)
                counter = await uow.usage.get_or_create(user_id)
                view = LimitRules.view_counters(
                    today,
                    counter.ai_generated_lifetime,
                    counter.ai_generated_today,
                    counter.ai_last_reset_date,
                    counter.audio_this_month,
                    counter.audio_last_reset_date,
                )
                if audio:
                    counter.audio_this_month = view.audio_month + 1
                    counter.audio_last_reset_date = today
                else:
                    counter.ai_generated_lifetime = view.ai_lifetime + 1
                    counter.ai_generated_today = view.ai_today + 1
                    counter.ai_last_reset_date = today
        except Exception as e:
            raise EntitlementUnavailable(f"Failed to increment usage for {user_id}: {e}") from e
        logger.info("Usage incremented user=%s kind=%s", user_id, "audio" if audio else "ai_story")
