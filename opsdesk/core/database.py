# opsdesk/core/database.py
"""Database connection and session management using SQLAlchemy."""
from datetime import datetime, timezone
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, create_async_engine, async_sessionmaker
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.pool import NullPool
from sqlalchemy import text
import logging

from .config import settings

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine with pool settings suited to the backend"""
    if database_url.startswith("sqlite"):
        # Local runs and tests: one connection per session, no server settings
        return create_async_engine(database_url, poolclass=NullPool)

    return create_async_engine(
        database_url,
        pool_size=15,
        max_overflow=25,
        pool_timeout=60,
        pool_recycle=1800,
        pool_pre_ping=True,
        echo=(settings.environment == 'development'),
        connect_args={
            "command_timeout": 60,
            "server_settings": {
                "jit": "off",
                "application_name": "opsdesk_chat",
                "idle_in_transaction_session_timeout": "60s",
                "lock_timeout": "30s",
            }
        }
    )


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        expire_on_commit=False,
        class_=AsyncSession,
        autoflush=False,
    )


engine = build_engine(settings.database_url)

# Regular session factory for API requests and live feed ticks
AsyncSessionLocal = build_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session for API requests with proper error handling"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database session error: {e}")
            await session.rollback()
            raise
        finally:
            await session.close()


def get_session_factory() -> async_sessionmaker:
    """Session factory for long-lived connections that open a session per tick"""
    return AsyncSessionLocal


def upsert_insert(db: AsyncSession, model):
    """Dialect-specific INSERT that supports ON CONFLICT clauses.

    PostgreSQL and SQLite both expose ``on_conflict_do_nothing`` and
    ``on_conflict_do_update`` on their own insert constructs.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise NotImplementedError(f"Upsert not supported for dialect {dialect}")


async def health_check_db():
    """Fast health check with timeout handling"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


async def close_db_connections():
    """Properly close all database connections"""
    await engine.dispose()
    logger.info("Database connections closed")
