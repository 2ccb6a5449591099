"""Async database engine and session management."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all models."""
    pass


def create_engine(database_url: str) -> AsyncEngine:
    """Build the async engine, auto-detecting SQLite connect args."""
    connect_args = {}
    if "sqlite" in database_url:
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = 30  # Wait up to 30s for write lock (default 5s)

    return create_async_engine(database_url, echo=False, connect_args=connect_args)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine) -> None:
    """Create all tables. The schema is a single document table, no migrations."""
    # Ensure models are registered with Base.metadata
    import groupgate.domain.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
