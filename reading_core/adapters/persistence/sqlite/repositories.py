import datetime
from typing import List, Optional, Sequence

from sqlalchemy import func, select

from reading_core.adapters.persistence.sqlite.base_repository import SqlAlchemyRepository
from reading_core.models.reading import ReadingSession, UserAchievement
from reading_core.models.story import DailyStorySchedule, Story, UserStory
from reading_core.models.user import UsageCounter, User


class UserRepository(SqlAlchemyRepository[User]):
    model_cls = User


class UsageCounterRepository(SqlAlchemyRepository[UsageCounter]):
    model_cls = UsageCounter

    async def get_or_create(self, user_id: str) -> UsageCounter:
        counter = await self.get(user_id)
        if counter:
            return counter
        return await self.add(
            UsageCounter(
                user_id=user_id,
                ai_generated_lifetime=0,
                ai_generated_today=0,
                audio_this_month=0,
            ),
            flush=True,
        )


class StoryRepository(SqlAlchemyRepository[Story]):
    model_cls = Story

    async def daily_rotation_pool(self) -> List[Story]:
        return await self.all(
            Story.is_daily_free.is_(True),
            order_by=(Story.daily_order.asc(), Story.id.asc()),
        )

    async def get_schedule(self) -> Optional[DailyStorySchedule]:
        stmt = select(DailyStorySchedule).order_by(DailyStorySchedule.id.asc()).limit(1)
        return (await self.session.execute(stmt)).scalars().first()

    async def categories_for(self, story_ids: Sequence[str]) -> List[str]:
        if not story_ids:
            return []
        stmt = select(Story.categories).where(Story.id.in_(list(story_ids)))
        categories: List[str] = []
        for row in (await self.session.execute(stmt)).scalars().all():
            categories.extend(row or [])
        return categories


class UserStoryRepository(SqlAlchemyRepository[UserStory]):
    """Progress store keyed by (user_id, story_id)."""

    model_cls = UserStory

    async def find(self, user_id: str, story_id: str) -> Optional[UserStory]:
        return await self.first(UserStory.user_id == user_id, UserStory.story_id == story_id)

    async def upsert_progress(
        self,
        user_id: str,
        story_id: str,
        progress: float,
        completed: Optional[bool] = None,
        is_favorite: Optional[bool] = None,
    ) -> UserStory:
        row = await self.find(user_id, story_id)
        if row is None:
            row = await self.add(
                UserStory(user_id=user_id, story_id=story_id, progress=0.0, completed=False, is_favorite=False)
            )
        row.progress = progress
        if completed is not None:
            # Completion is sticky
            row.completed = bool(row.completed) or completed
        if is_favorite is not None:
            row.is_favorite = is_favorite
        await self.session.flush()
        return row

    async def completed_count(self, user_id: str) -> int:
        return await self.count(UserStory.user_id == user_id, UserStory.completed.is_(True))

    async def completed_story_ids(self, user_id: str) -> List[str]:
        stmt = select(UserStory.story_id).where(UserStory.user_id == user_id, UserStory.completed.is_(True))
        return list((await self.session.execute(stmt)).scalars().all())


class ReadingSessionRepository(SqlAlchemyRepository[ReadingSession]):
    model_cls = ReadingSession

    async def open_for(self, user_id: str, story_id: Optional[str] = None) -> List[ReadingSession]:
        criteria = [ReadingSession.user_id == user_id, ReadingSession.ended_at.is_(None)]
        if story_id is not None:
            criteria.append(ReadingSession.story_id == story_id)
        return await self.all(*criteria)

    async def stale_open(self, seen_before: datetime.datetime) -> List[ReadingSession]:
        """Open sessions whose last heartbeat (or start) is older than seen_before."""
        return await self.all(
            ReadingSession.ended_at.is_(None),
            func.coalesce(ReadingSession.last_seen_at, ReadingSession.started_at) < seen_before,
        )

    async def history(self, user_id: str) -> List[ReadingSession]:
        return await self.all(ReadingSession.user_id == user_id, order_by=ReadingSession.started_at.desc())


class AchievementRepository(SqlAlchemyRepository[UserAchievement]):
    model_cls = UserAchievement

    async def find(self, user_id: str, achievement_id: str) -> Optional[UserAchievement]:
        return await self.first(
            UserAchievement.user_id == user_id,
            UserAchievement.achievement_id == achievement_id,
        )

    async def for_user(self, user_id: str) -> List[UserAchievement]:
        return await self.all(UserAchievement.user_id == user_id)
