"""
Async engine and session factory.

Both are created on first use so importing the application never opens a
connection; tests replace the request session through a dependency override.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .config import get_settings

_engine: AsyncEngine | None = None
_factory: async_sessionmaker[AsyncSession] | None = None


# PUBLIC_INTERFACE
def get_engine() -> AsyncEngine:
    """Return the process-wide AsyncEngine, creating it from settings on first call."""
    global _engine
    if _engine is None:
        db = get_settings()
        _engine = create_async_engine(db.async_database_url, echo=db.SQL_ECHO, pool_pre_ping=True)
    return _engine


# PUBLIC_INTERFACE
def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _factory
    if _factory is None:
        # Services read attributes after commit to build responses and events.
        _factory = async_sessionmaker(bind=get_engine(), expire_on_commit=False, autoflush=False)
    return _factory


# PUBLIC_INTERFACE
async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding one session per request."""
    async with get_session_maker()() as session:
        yield session


# PUBLIC_INTERFACE
@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """
    Standalone session for work outside a request (seeding, WebSocket auth).

        async with session_scope() as session:
            ...
    """
    async with get_session_maker()() as session:
        yield session


# PUBLIC_INTERFACE
async def dispose_engine() -> None:
    """Close pooled connections and forget the engine; the next use builds a fresh one."""
    global _engine, _factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _factory = None
