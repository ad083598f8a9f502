"""
Async SQLAlchemy engine and session factory.

Uses ``asyncpg`` as the PostgreSQL driver for non-blocking I/O and
``aiosqlite`` for local runs and tests.  The session factory is the store
handle handed to the Lifecycle Engine at construction; the domain layer
never reaches for a module-level connection.
"""

from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from ridebroker.config import settings


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


def create_engine_for(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        # SQLite serialises writers; wait for the write lock instead of
        # failing a conditional update with "database is locked".
        return create_async_engine(url, echo=False, connect_args={"timeout": 30})
    return create_async_engine(
        url,
        echo=False,
        pool_size=20,
        max_overflow=10,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@lru_cache(maxsize=1)
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Process-wide factory built from ``settings.database_url``."""
    return build_session_factory(create_engine_for(settings.database_url))


async def create_schema(engine: AsyncEngine) -> None:
    """Create every table (tests and local SQLite runs; production uses Alembic)."""
    from . import models  # noqa: F401  registers the tables on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
