"""Database engines and session management.

The API runs on the asyncpg engine. Celery tasks use a psycopg2 engine that
is only created the first time a worker asks for a session, so API processes
never open a sync pool.
"""

import logging
from collections.abc import AsyncGenerator, Generator
from contextlib import contextmanager
from functools import lru_cache

from sqlalchemy import create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Session, sessionmaker

from brocomp.core.config import settings

logger = logging.getLogger(__name__)

async_engine = create_async_engine(
    settings.database_url_async,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
)

async_session_maker = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@lru_cache
def _sync_session_maker() -> sessionmaker[Session]:
    engine = create_engine(
        str(settings.database_url),
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
    )
    logger.info("Created sync database engine for worker tasks")
    return sessionmaker(engine, class_=Session, expire_on_commit=False, autoflush=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; commits when the handler returns, rolls back on error."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@contextmanager
def get_sync_session() -> Generator[Session, None, None]:
    """Session for Celery tasks.

    Usage:
        with get_sync_session() as db:
            db.add(AuditLog(...))
    """
    session = _sync_session_maker()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def ping_database() -> bool:
    """Return True when PostgreSQL answers ``SELECT 1``."""
    try:
        async with async_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Database ping failed: {e}")
        return False
    return True
