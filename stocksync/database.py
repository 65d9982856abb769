# stocksync/database.py

# type: ignore[misc]
import os
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from stocksync.core.config import get_settings

Base = declarative_base()


def resolve_database_url(url: Optional[str] = None) -> str:
    database_url = url or get_settings().DATABASE_URL or os.environ.get('DATABASE_URL', '')
    if not database_url:
        raise ValueError("DATABASE_URL is not set in environment variables")

    # Convert postgresql:// to postgresql+asyncpg:// for async support
    if database_url.startswith('postgresql://'):
        database_url = database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    return database_url


def make_engine(url: Optional[str] = None) -> AsyncEngine:
    database_url = resolve_database_url(url)
    if database_url.startswith('sqlite'):
        return create_async_engine(database_url, echo=False, future=True)
    return create_async_engine(
        database_url,
        echo=False,
        future=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=1800,
    )


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


@lru_cache()
def get_engine() -> AsyncEngine:
    """Process-wide engine, created on first use."""
    return make_engine()


@asynccontextmanager
async def get_session() -> AsyncSession:
    session = make_session_factory(get_engine())()
    try:
        yield session
    finally:
        await session.close()


async def create_all(engine: AsyncEngine) -> None:
    """Create tables directly; used by tests and throwaway SQLite databases."""
    from stocksync import models  # noqa: F401  registers the tables

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
