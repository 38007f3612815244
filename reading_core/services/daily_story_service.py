import datetime
import logging
from typing import Callable, Optional, Tuple

from reading_core.core.clock import Clock, utcnow
from reading_core.domain.ports.unit_of_work import UnitOfWork
from reading_core.models.story import DailyStorySchedule

logger = logging.getLogger(__name__)


class DailyStoryService:
    """
    Owns the single daily-free story id.

    The schedule row points at one story of the rotation pool (stories with
    is_daily_free). It advances to the next pool entry once
    rotation_interval_days have passed since the last rotation. The resolved
    id is cached for the rest of the day, so the per-scroll gate check does
    not open a transaction.
    """

    def __init__(self, uow_factory: Callable[[], UnitOfWork], clock: Clock = utcnow):
        self.uow_factory = uow_factory
        self.clock = clock
        self._cached: Optional[Tuple[datetime.date, str]] = None

    async def get_current_story_id(self) -> Optional[str]:
        """Current daily-free story id, rotating first if due. Errors propagate to the caller."""
        today = self.clock().date()
        if self._cached and self._cached[0] == today:
            return self._cached[1]

        async with self.uow_factory() as uow:
            schedule = await uow.stories.get_schedule()
            if schedule is None:
                current = await self._initialize(uow, today)
            else:
                last = schedule.last_rotation_date
                if last is None or (today - last).days >= (schedule.rotation_interval_days or 1):
                    await self._rotate(uow, schedule, today)
                current = schedule.current_story_id

        # An empty pool is not cached; stories may be added later today
        self._cached = (today, current) if current else None
        return current

    async def _initialize(self, uow, today) -> Optional[str]:
        pool = await uow.stories.daily_rotation_pool()
        if not pool:
            logger.info("No daily story pool; daily-free bypass disabled")
            return None
        schedule = DailyStorySchedule(current_story_id=pool[0].id, last_rotation_date=today, rotation_interval_days=1)
        uow.session.add(schedule)
        logger.info("Daily story schedule initialized story=%s", pool[0].id)
        return schedule.current_story_id

    async def _rotate(self, uow, schedule: DailyStorySchedule, today) -> None:
        pool = await uow.stories.daily_rotation_pool()
        if not pool:
            return
        ids = [story.id for story in pool]
        if schedule.current_story_id in ids:
            next_id = ids[(ids.index(schedule.current_story_id) + 1) % len(ids)]
        else:
            next_id = ids[0]
        logger.info("Daily story rotated %s -> %s", schedule.current_story_id, next_id)
        schedule.current_story_id = next_id
        schedule.last_rotation_date = today

    async def is_daily_story(self, story_id: str) -> bool:
        return (await self.get_current_story_id()) == story_id
