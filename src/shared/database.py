"""PostgreSQL sessions for the database stores and Redis for profile locks."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from src.shared.config import get_settings

settings = get_settings()
logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for the adaptation tables."""

    pass


# ===================
# PostgreSQL
# ===================

# asyncpg connections are bound to the loop that opened them, so engines
# are kept per running loop (pytest-asyncio opens one loop per test).
_engines: dict[int, AsyncEngine] = {}
_session_factories: dict[int, async_sessionmaker[AsyncSession]] = {}


def _loop_key() -> int:
    try:
        return id(asyncio.get_running_loop())
    except RuntimeError:
        return 0


def get_engine() -> AsyncEngine:
    """Engine for the current event loop, created on first use."""
    key = _loop_key()
    engine = _engines.get(key)
    if engine is None:
        engine = create_async_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
        )
        _engines[key] = engine
        logger.debug(f"Created database engine for loop {key}")
    return engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    key = _loop_key()
    factory = _session_factories.get(key)
    if factory is None:
        factory = async_sessionmaker(get_engine(), expire_on_commit=False)
        _session_factories[key] = factory
    return factory


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """One unit of work: commit on clean exit, roll back on any error.

    Usage:
        async with get_db_session() as session:
            repo = AdaptationRuleRepository(session)
            rules = await repo.list_for_tenant(tenant_id)
    """
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def close_db() -> None:
    """Dispose every engine opened by this process."""
    for engine in list(_engines.values()):
        try:
            await engine.dispose()
        except Exception as e:
            logger.warning(f"Error disposing database engine: {e}")
    _engines.clear()
    _session_factories.clear()


# ===================
# Redis
# ===================

_redis_pool: redis.ConnectionPool | None = None


async def get_redis() -> redis.Redis:
    """Client on the shared connection pool, used for profile locks."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.ConnectionPool.from_url(
            settings.redis_url,
            decode_responses=True,
        )
    return redis.Redis(connection_pool=_redis_pool)


async def close_redis() -> None:
    global _redis_pool
    if _redis_pool is None:
        return
    try:
        await _redis_pool.aclose()
    except Exception as e:
        logger.warning(f"Error closing Redis pool: {e}")
    finally:
        _redis_pool = None


async def shutdown() -> None:
    """Release database and Redis connections."""
    await close_db()
    await close_redis()
    logger.info("Adaptation engine connections closed")
