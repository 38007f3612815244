from typing import Any, List, Optional, Protocol, TypeVar

T = TypeVar("T")


class Repository(Protocol[T]):
    """
    Per-aggregate store. Services go through a UnitOfWork and never
    touch the ORM session directly.
    """

    async def get(self, key: Any) -> Optional[T]: ...

    async def add(self, entity: T, flush: bool = False) -> T: ...

    async def first(self, *criteria: Any, order_by: Any = None) -> Optional[T]: ...

    async def all(self, *criteria: Any, order_by: Any = None, limit: Optional[int] = None) -> List[T]: ...

    async def count(self, *criteria: Any) -> int: ...
