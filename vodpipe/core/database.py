"""Async SQLAlchemy engine, session factory and declarative base."""

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from vodpipe.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def get_engine() -> AsyncEngine:
    """Create the engine on first use.

    Worker processes run each job in a fresh event loop, so they set
    DATABASE_NULL_POOL to avoid reusing connections bound to a closed loop.
    """
    global _engine
    if _engine is None:
        kwargs = {"echo": settings.DATABASE_ECHO}
        if settings.DATABASE_NULL_POOL:
            kwargs["poolclass"] = NullPool
        _engine = create_async_engine(settings.DATABASE_URL, **kwargs)
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(get_engine(), expire_on_commit=False)
    return _session_maker


async def init_models() -> None:
    """Create tables that do not exist yet."""
    # Import models so they register on Base.metadata
    from vodpipe.modules.video import models  # noqa: F401

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None
