from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from reading_core.adapters.persistence.sqlite.repositories import (
    AchievementRepository,
    ReadingSessionRepository,
    StoryRepository,
    UsageCounterRepository,
    UserRepository,
    UserStoryRepository,
)
from reading_core.domain.ports.unit_of_work import UnitOfWork


class SqlAlchemyUnitOfWork(UnitOfWork):
    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.session: Optional[AsyncSession] = None

    async def __aenter__(self):
        self.session = self.session_factory()
        self.users = UserRepository(self.session)
        self.usage = UsageCounterRepository(self.session)
        self.stories = StoryRepository(self.session)
        self.progress = UserStoryRepository(self.session)
        self.sessions = ReadingSessionRepository(self.session)
        self.achievements = AchievementRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        try:
            if exc_type:
                await self.rollback()
            else:
                await self.commit()
        finally:
            await self.session.close()

    async def commit(self):
        await self.session.commit()

    async def rollback(self):
        await self.session.rollback()
