import datetime
import logging
from collections import defaultdict
from typing import Callable, Dict, List, Optional, Tuple

from reading_core.core.clock import Clock, ensure_utc, utcnow
from reading_core.core.config import Settings
from reading_core.domain.models.reading import MostReadStory, ReadingStats, StreakData
from reading_core.domain.ports.reader import ErrorReporterPort
from reading_core.domain.ports.unit_of_work import UnitOfWork
from reading_core.domain.rules.limit_rules import LimitRules
from reading_core.domain.rules.streak_rules import StreakRules
from reading_core.models.reading import ReadingSession

logger = logging.getLogger(__name__)


class StreakStatsAggregator:
    """
    Streaks and reading statistics, derived from session history on every call.
    Calendar days are the user's local days; open sessions never count toward time.
    """

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

    async def _load(self, user_id: str) -> Tuple[List[ReadingSession], str]:
        async with self.uow_factory() as uow:
            user = await uow.users.get(user_id)
            sessions = await uow.sessions.history(user_id)
            return sessions, (user.timezone if user else None) or "UTC"

    def _report(self, e: Exception, op: str, user_id: str) -> None:
        logger.error("Failed to compute %s user=%s: %s", op, user_id, e)
        if self.reporter:
            self.reporter.capture_exception(e, operation=op, user_id=user_id)

    @staticmethod
    def _local_day(dt: datetime.datetime, zone) -> datetime.date:
        return ensure_utc(dt).astimezone(zone).date()

    def _qualifying_days(self, sessions: List[ReadingSession], zone) -> List[datetime.date]:
        return [
            self._local_day(s.started_at, zone)
            for s in sessions
            if StreakRules.is_qualifying(
                bool(s.completed),
                s.ended_at is not None,
                s.duration or 0,
                self.config.STREAK_MIN_SESSION_SECONDS,
            )
        ]

    async def get_streak(self, user_id: str, today: Optional[datetime.date] = None) -> StreakData:
        try:
            sessions, tz_name = await self._load(user_id)
        except Exception as e:
            self._report(e, "streak", user_id)
            return StreakData()

        zone = LimitRules.resolve_zone(tz_name)
        today = today or LimitRules.local_today(self.clock(), zone)
        days = self._qualifying_days(sessions, zone)

        return StreakData(
            current_streak=StreakRules.current_streak(days, today),
            longest_streak=StreakRules.longest_streak(days),
            has_read_today=today in set(days),
            last_active_date=StreakRules.last_active(days),
        )

    async def get_reading_stats(self, user_id: str, today: Optional[datetime.date] = None) -> ReadingStats:
        try:
            sessions, tz_name = await self._load(user_id)
        except Exception as e:
            self._report(e, "stats", user_id)
            return ReadingStats()

        zone = LimitRules.resolve_zone(tz_name)
        today = today or LimitRules.local_today(self.clock(), zone)
        week_start = today - datetime.timedelta(days=6)

        closed = [s for s in sessions if s.ended_at is not None]
        total_time = sum(s.duration or 0 for s in closed)

        daily = weekly = 0
        per_story: Dict[str, List[int]] = defaultdict(lambda: [0, 0])
        for s in closed:
            day = self._local_day(s.started_at, zone)
            if day == today:
                daily += s.duration or 0
            if week_start <= day <= today:
                weekly += s.duration or 0
            per_story[s.story_id][0] += 1
            per_story[s.story_id][1] += s.duration or 0

        most_read = None
        if per_story:
            story_id, (count, seconds) = max(per_story.items(), key=lambda kv: (kv[1][0], kv[1][1]))
            most_read = MostReadStory(story_id=story_id, session_count=count, total_time=seconds)

        return ReadingStats(
            total_sessions=len(closed),
            completed_sessions=sum(1 for s in closed if s.completed),
            open_sessions=len(sessions) - len(closed),
            total_reading_time=total_time,
            average_session_time=round(total_time / len(closed), 1) if closed else 0.0,
            daily_reading_time=daily,
            weekly_reading_time=weekly,
            most_read_story=most_read,
        )
