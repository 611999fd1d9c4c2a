# streampass/db/session.py
from __future__ import annotations

"""
StreamPass · Database Engine & Session Helpers

- Async engine/session factory, created lazily so importing this module never
  needs a live database (or asyncpg) until first use.
- `transactional_async_session()` opens a session with a transaction that
  commits on success and rolls back on error.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from streampass.core.config import settings

logger = logging.getLogger(__name__)

_POOL_PRE_PING = True
_POOL_RECYCLE = 1800

_engine: Optional[AsyncEngine] = None
_session_maker: Optional[async_sessionmaker[AsyncSession]] = None


def get_async_engine() -> AsyncEngine:
    """Create the async engine on first use."""
    global _engine
    if _engine is None:
        _engine = create_async_engine(
            settings.ASYNC_DATABASE_URL,
            pool_pre_ping=_POOL_PRE_PING,
            pool_recycle=_POOL_RECYCLE,
            echo=False,
        )
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global _session_maker
    if _session_maker is None:
        _session_maker = async_sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _session_maker


@asynccontextmanager
async def transactional_async_session(
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """Async context manager that opens a session and a transaction."""
    maker = session_maker or get_session_maker()
    async with maker() as session:
        async with session.begin():
            yield session


async def db_healthcheck() -> bool:
    """Quick SELECT 1 to verify DB connectivity."""
    try:
        async with get_async_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        logger.exception("DB healthcheck failed")
        return False


async def dispose_engine() -> None:
    global _engine, _session_maker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_maker = None


__all__ = [
    "get_async_engine",
    "get_session_maker",
    "transactional_async_session",
    "db_healthcheck",
    "dispose_engine",
]
