"""Async SQLAlchemy engine and session factory.

When DATABASE_URL is configured, provides:
- async engine for PostgreSQL via asyncpg
- async session factory used by the Pg* repositories
- transaction(): one session + transaction per repository operation
- FastAPI lifespan hook for startup/shutdown

When DATABASE_URL is None, engine and factory are None and the app falls
back to in-memory repositories.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from online_courses.core.config import SETTINGS
from online_courses.core.errors import PersistenceError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all table models."""


# --- Engine and session factory (None when no DATABASE_URL) ---

if SETTINGS.database_url:
    engine = create_async_engine(
        SETTINGS.database_url,
        echo=SETTINGS.is_dev,
        pool_size=5,
        max_overflow=10,
    )
    async_session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
else:
    engine = None
    async_session_factory = None


@asynccontextmanager
async def transaction(
    factory: async_sessionmaker[AsyncSession],
    operation: str,
) -> AsyncIterator[AsyncSession]:
    """Run one repository operation in its own session and transaction.

    Commits on success and rolls back on any exception.  Driver errors are
    logged with whatever the engine reports (SQLSTATE, server message) and
    re-raised as PersistenceError so callers never see SQLAlchemy types.
    """
    try:
        async with factory.begin() as session:
            yield session
    except SQLAlchemyError as exc:
        orig = getattr(exc, "orig", None)
        logger.exception(
            "Database operation %s failed  sqlstate=%s detail=%s",
            operation,
            getattr(orig, "sqlstate", None),
            orig if orig is not None else exc,
        )
        raise PersistenceError(f"{operation} failed") from exc


@asynccontextmanager
async def lifespan_db():
    """Startup/shutdown hook for the database engine."""
    if engine is None:
        logger.info("No DATABASE_URL configured; using in-memory repositories")
        yield
        return

    logger.info("Database engine created: %s", engine.url)
    yield
    await engine.dispose()
    logger.info("Database engine disposed")
