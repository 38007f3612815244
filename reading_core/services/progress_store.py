import logging
from typing import Callable, Optional

from reading_core.domain.ports.unit_of_work import UnitOfWork
from reading_core.domain.rules.progress_rules import ProgressRules

logger = logging.getLogger(__name__)


class ProgressStore:
    """Persisted story progress keyed by (user_id, story_id)."""

    def __init__(self, uow_factory: Callable[[], UnitOfWork]):
        self.uow_factory = uow_factory

    async def load(self, user_id: Optional[str], story_id: str) -> float:
        if not user_id:
            return 0.0
        async with self.uow_factory() as uow:
            row = await uow.progress.find(user_id, story_id)
            return float(row.progress) if row else 0.0

    async def save(
        self,
        user_id: str,
        story_id: str,
        progress: float,
        completed: Optional[bool] = None,
    ) -> float:
        value = ProgressRules.clamp(progress)
        async with self.uow_factory() as uow:
            await uow.progress.upsert_progress(user_id, story_id, value, completed=completed)
        logger.debug("Progress saved user=%s story=%s progress=%.3f", user_id, story_id, value)
        return value

    async def set_favorite(self, user_id: str, story_id: str, is_favorite: bool) -> None:
        async with self.uow_factory() as uow:
            row = await uow.progress.find(user_id, story_id)
            progress = float(row.progress) if row else 0.0
            await uow.progress.upsert_progress(user_id, story_id, progress, is_favorite=is_favorite)

    async def completed_count(self, user_id: str) -> int:
        async with self.uow_factory() as uow:
            return await uow.progress.completed_count(user_id)
