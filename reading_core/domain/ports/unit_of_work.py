from typing import Protocol


class UnitOfWork(Protocol):
    """
    Unit of Work Interface.
    Manages the transaction and exposes the repositories bound to its session.
    """

    users: object
    usage: object
    stories: object
    progress: object
    sessions: object
    achievements: object

    async def __aenter__(self) -> "UnitOfWork": ...

    async def __aexit__(self, exc_type, exc_value, traceback) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...
