from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from reading_core.domain.models.entitlement import TierPolicy


@dataclass
class CounterView:
    """Stored counters as seen from `today`, after applying pending resets."""

    ai_lifetime: int
    ai_today: int
    audio_month: int


@dataclass
class LimitResult:
    can_generate: bool
    used: int
    limit: int
    reason: Optional[str] = None


class LimitRules:
    @staticmethod
    def resolve_zone(name: Optional[str]) -> ZoneInfo:
        try:
            return ZoneInfo(name or "UTC")
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC")

    @staticmethod
    def local_today(now: datetime, zone: ZoneInfo) -> date:
        return now.astimezone(zone).date()

    @staticmethod
    def next_daily_reset(now: datetime, zone: ZoneInfo) -> datetime:
        """Next local midnight, returned in UTC."""
        local_date = now.astimezone(zone).date() + timedelta(days=1)
        return datetime.combine(local_date, time.min, tzinfo=zone).astimezone(timezone.utc)

    @staticmethod
    def next_monthly_reset(now: datetime, zone: ZoneInfo) -> datetime:
        """First day of next month at local midnight, returned in UTC."""
        local = now.astimezone(zone)
        if local.month == 12:
            first = date(local.year + 1, 1, 1)
        else:
            first = date(local.year, local.month + 1, 1)
        return datetime.combine(first, time.min, tzinfo=zone).astimezone(timezone.utc)

    @staticmethod
    def view_counters(
        today: date,
        ai_lifetime: int,
        ai_today: int,
        ai_last_reset: Optional[date],
        audio_month: int,
        audio_last_reset: Optional[date],
    ) -> CounterView:
        daily = ai_today if ai_last_reset == today else 0
        same_month = audio_last_reset is not None and (audio_last_reset.year, audio_last_reset.month) == (
            today.year,
            today.month,
        )
        monthly = audio_month if same_month else 0
        return CounterView(ai_lifetime=ai_lifetime or 0, ai_today=daily or 0, audio_month=monthly or 0)

    @staticmethod
    def evaluate_ai(policy: TierPolicy, counters: CounterView) -> LimitResult:
        if policy.daily_ai_limit > 0:
            allowed = counters.ai_today < policy.daily_ai_limit
            return LimitResult(
                can_generate=allowed,
                used=counters.ai_today,
                limit=policy.daily_ai_limit,
                reason=None if allowed else "Daily story generation limit reached. Come back tomorrow!",
            )
        if policy.lifetime_ai_limit > 0:
            allowed = counters.ai_lifetime < policy.lifetime_ai_limit
            return LimitResult(
                can_generate=allowed,
                used=counters.ai_lifetime,
                limit=policy.lifetime_ai_limit,
                reason=None if allowed else "Upgrade to Premium to create more personalized stories!",
            )
        return LimitResult(can_generate=True, used=counters.ai_today, limit=0)

    @staticmethod
    def evaluate_audio(policy: TierPolicy, counters: CounterView) -> LimitResult:
        if policy.monthly_audio_limit <= 0:
            return LimitResult(
                can_generate=False,
                used=counters.audio_month,
                limit=0,
                reason="Audio generation is a Premium feature.",
            )
        allowed = counters.audio_month < policy.monthly_audio_limit
        return LimitResult(
            can_generate=allowed,
            used=counters.audio_month,
            limit=policy.monthly_audio_limit,
            reason=None if allowed else "Monthly audio limit reached.",
        )
