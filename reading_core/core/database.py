from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from reading_core.core.config import Settings


def create_engine_for(config: Settings) -> AsyncEngine:
    uri = config.SQLALCHEMY_DATABASE_URI
    engine_args = {"echo": False}

    in_memory = ":memory:" in uri or uri.rstrip("/").endswith("sqlite+aiosqlite:")
    if "sqlite" in uri and in_memory:
        # One shared connection so every session sees the same in-memory DB
        engine_args.update({"poolclass": StaticPool, "connect_args": {"check_same_thread": False}})
    elif "sqlite" not in uri:
        engine_args.update({"pool_pre_ping": True, "pool_size": 3, "max_overflow": 2, "pool_recycle": 300})

    return create_async_engine(uri, **engine_args)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables registered on the declarative Base."""
    from reading_core.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
