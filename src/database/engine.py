"""
Async SQLAlchemy engine and sessions

One engine per process, created lazily. Request handlers get a session
through the `get_session` dependency; background jobs and scripts open
their own sessions from `get_session_maker()`.
"""

from typing import AsyncGenerator

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)

from config.config import DATABASE_URL, DB_MAX_OVERFLOW, DB_POOL_SIZE, ENVIRONMENT


engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> dict:
    """Pool and driver options for the configured backend"""
    if url.startswith("sqlite"):
        # Local runs against aiosqlite: no server-side pool settings
        return {"connect_args": {"check_same_thread": False}}

    return {
        "pool_size": DB_POOL_SIZE,
        "max_overflow": DB_MAX_OVERFLOW,
        "pool_pre_ping": True,
        "pool_recycle": 1800,  # Supabase pooler closes idle connections
        "connect_args": {
            # pgbouncer in transaction mode cannot keep prepared statements
            "statement_cache_size": 0,
            "server_settings": {"application_name": "fanova_api"},
        },
    }


def get_engine() -> AsyncEngine:
    global engine

    if engine is None:
        engine = create_async_engine(DATABASE_URL, echo=False, **_engine_options(DATABASE_URL))
        backend = DATABASE_URL.split("://", 1)[0]
        logger.info(f"Database engine created ({backend}, {ENVIRONMENT})")

    return engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    global AsyncSessionLocal

    if AsyncSessionLocal is None:
        AsyncSessionLocal = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    return AsyncSessionLocal


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency: one session per request

    Anything left uncommitted when the handler raises is rolled back.

    Usage:
        async def handler(session: AsyncSession = Depends(get_session)):
            ...
    """
    async with get_session_maker()() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def ping_database() -> bool:
    """True when a trivial query succeeds (readiness check)"""
    try:
        async with get_session_maker()() as session:
            await session.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Database ping failed: {e}")
        return False


async def dispose_engine() -> None:
    """Close pooled connections (application shutdown, end of scripts)"""
    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
        logger.info("Database engine disposed")

    engine = None
    AsyncSessionLocal = None
