"""
Database Session Management
Connection, session handling and the unit-of-work guard
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from media_access.core.config import settings
from media_access.core.exceptions import TransientException
from media_access.core.logging import get_logger
from media_access.db.base import Base

logger = get_logger(__name__)

# Engine
engine = None
async_session_maker = None

# Errors that mean "the store is unavailable", as opposed to a bug
STORE_ERRORS = (SQLAlchemyError, OSError, ConnectionError)


async def init_db() -> None:
    """Initialize database engine and create tables"""
    global engine, async_session_maker

    dsn = settings.DATABASE_DSN
    logger.info(f"Connecting to database ({dsn.split('://', 1)[0]})")

    engine_kwargs = {"echo": settings.DEBUG, "pool_pre_ping": True}
    if not dsn.startswith("sqlite"):
        engine_kwargs.update(pool_size=10, max_overflow=20)

    engine = create_async_engine(dsn, **engine_kwargs)

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Import all SQLAlchemy models to ensure they're registered with Base
    from media_access.db import models  # noqa: F401

    # Create tables (use migrations for production)
    if settings.ENVIRONMENT in ("development", "test"):
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")


async def close_db() -> None:
    """Close database connections"""
    global engine

    if engine:
        await engine.dispose()
        logger.info("Database connection closed")


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session (dependency injection)"""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def transaction(db: AsyncSession, operation: str) -> AsyncIterator[AsyncSession]:
    """
    Run one unit of work: commit on success, roll back on anything else

    Store failures surface as TransientException. Application errors and
    cancellation are re-raised unchanged after the rollback, so nothing
    from a half-finished operation is ever committed.
    """
    try:
        yield db
        await db.commit()
    except STORE_ERRORS as e:
        await db.rollback()
        logger.error(f"Store failure during {operation}: {e}")
        raise TransientException(operation=operation) from e
    except BaseException:
        await db.rollback()
        raise


async def check_connection() -> bool:
    """Check the database answers a trivial query"""
    if async_session_maker is None:
        return False
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
            return True
    except STORE_ERRORS as e:
        logger.warning(f"Database check failed: {e}")
        return False
