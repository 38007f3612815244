import logging
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError

from reading_core.core.clock import Clock, ensure_utc, utcnow
from reading_core.domain.errors import AchievementGrantConflict
from reading_core.domain.models.reading import AchievementReport, AchievementStatus
from reading_core.domain.ports.reader import ErrorReporterPort
from reading_core.domain.ports.unit_of_work import UnitOfWork
from reading_core.domain.rules.achievement_rules import AchievementFacts, AchievementRules
from reading_core.domain.rules.limit_rules import LimitRules
from reading_core.models.reading import UserAchievement
from reading_core.services.streak_service import StreakStatsAggregator

logger = logging.getLogger(__name__)


class AchievementEngine:
    """
    Grants catalog achievements at most once per user.

    Unlock predicates live in AchievementRules; this class only gathers the
    facts and enforces the (user_id, achievement_id) uniqueness.
    """

    def __init__(
        self,
        uow_factory: Callable[[], UnitOfWork],
        stats: StreakStatsAggregator,
        clock: Clock = utcnow,
        reporter: Optional[ErrorReporterPort] = None,
    ):
        self.uow_factory = uow_factory
        self.stats = stats
        self.clock = clock
        self.reporter = reporter

    async def _insert(self, user_id: str, achievement_id: str) -> bool:
        async with self.uow_factory() as uow:
            if await uow.achievements.find(user_id, achievement_id):
                return False
            grant = UserAchievement(user_id=user_id, achievement_id=achievement_id, unlocked_at=self.clock())
            try:
                await uow.achievements.add(grant, flush=True)
            except IntegrityError as e:
                # A concurrent grant won the race on the unique pair
                raise AchievementGrantConflict(user_id, achievement_id) from e
            return True

    async def check_and_grant_achievement(self, user_id: str, achievement_id: str) -> bool:
        """Returns True only when this call created the grant."""
        if not user_id or not AchievementRules.is_known(achievement_id):
            logger.warning("Unknown achievement %s", achievement_id)
            return False
        try:
            granted = await self._insert(user_id, achievement_id)
        except AchievementGrantConflict as e:
            logger.info("%s", e)
            return False
        except IntegrityError:
            # Conflict surfaced at commit instead of flush
            logger.info("Achievement %s already granted to %s", achievement_id, user_id)
            return False
        except Exception as e:
            logger.error("Achievement grant failed user=%s id=%s: %s", user_id, achievement_id, e)
            if self.reporter:
                self.reporter.capture_exception(e, user_id=user_id, achievement_id=achievement_id)
            return False

        if granted:
            logger.info("Achievement unlocked user=%s id=%s", user_id, achievement_id)
        return granted

    async def get_user_achievements(self, user_id: str) -> List[AchievementStatus]:
        """Full catalog with unlock state, in catalog order."""
        async with self.uow_factory() as uow:
            rows = {row.achievement_id: row for row in await uow.achievements.for_user(user_id)}
        return [
            AchievementStatus(
                id=achievement_id,
                unlocked=achievement_id in rows,
                unlocked_at=ensure_utc(rows[achievement_id].unlocked_at) if achievement_id in rows else None,
            )
            for achievement_id in AchievementRules.CATALOG
        ]

    async def _facts(self, user_id: str, session_id: Optional[str]) -> AchievementFacts:
        facts = AchievementFacts()
        async with self.uow_factory() as uow:
            user = await uow.users.get(user_id)
            zone = LimitRules.resolve_zone(user.timezone if user else None)
            facts.completed_stories = await uow.progress.completed_count(user_id)
            completed_ids = await uow.progress.completed_story_ids(user_id)
            facts.categories_read = set(await uow.stories.categories_for(completed_ids))
            if session_id:
                session = await uow.sessions.get(session_id)
                if session is not None:
                    facts.session_completed = bool(session.completed)
                    facts.session_local_hour = ensure_utc(session.started_at).astimezone(zone).hour

        streak = await self.stats.get_streak(user_id)
        stats = await self.stats.get_reading_stats(user_id)
        facts.current_streak = streak.current_streak
        facts.total_reading_seconds = stats.total_reading_time
        return facts

    async def evaluate_after_session(self, user_id: str, session_id: Optional[str] = None) -> AchievementReport:
        """Grants every catalog entry whose predicate now holds; reports the new ones."""
        report = AchievementReport(user_id=user_id)
        try:
            facts = await self._facts(user_id, session_id)
        except Exception as e:
            logger.error("Achievement evaluation failed user=%s: %s", user_id, e)
            if self.reporter:
                self.reporter.capture_exception(e, user_id=user_id, session_id=session_id)
            return report

        for achievement_id in AchievementRules.earned(facts):
            if await self.check_and_grant_achievement(user_id, achievement_id):
                report.granted.append(achievement_id)
        return report
