from typing import Any, List, Optional, Type

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from reading_core.domain.ports.repository import Repository, T


class SqlAlchemyRepository(Repository[T]):
    """Query helpers shared by the aggregate repositories. Commit belongs to the UnitOfWork."""

    model_cls: Type[T]

    def __init__(self, session: AsyncSession, model_cls: Optional[Type[T]] = None):
        self.session = session
        if model_cls is not None:
            self.model_cls = model_cls

    def _select(self, criteria, order_by=None, limit=None):
        stmt = select(self.model_cls).where(*criteria)
        if order_by is not None:
            stmt = stmt.order_by(*order_by) if isinstance(order_by, (list, tuple)) else stmt.order_by(order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        return stmt

    async def get(self, key: Any) -> Optional[T]:
        return await self.session.get(self.model_cls, key)

    async def add(self, entity: T, flush: bool = False) -> T:
        self.session.add(entity)
        if flush:
            # Populates server/default-generated keys
            await self.session.flush()
        return entity

    async def first(self, *criteria: Any, order_by: Any = None) -> Optional[T]:
        result = await self.session.execute(self._select(criteria, order_by, limit=1))
        return result.scalars().first()

    async def all(self, *criteria: Any, order_by: Any = None, limit: Optional[int] = None) -> List[T]:
        result = await self.session.execute(self._select(criteria, order_by, limit))
        return list(result.scalars().all())

    async def count(self, *criteria: Any) -> int:
        stmt = select(func.count()).select_from(self.model_cls).where(*criteria)
        return int((await self.session.execute(stmt)).scalar() or 0)
