from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from sqlalchemy import event, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from crm.core.config import settings
from crm.core.exceptions import DatabaseError
from crm.core.logging import get_structlog_logger
from crm.db.base import Base

logger = get_structlog_logger(__name__)

# Global engine instance
engine: Optional[AsyncEngine] = None
AsyncSessionLocal: Optional[async_sessionmaker[AsyncSession]] = None


def _engine_options(database_url: str) -> Dict[str, Any]:
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"echo": settings.debug}

    if settings.is_testing:
        # Use NullPool for tests to ensure clean state
        return {"poolclass": NullPool, "echo": settings.debug}

    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_timeout": settings.database_pool_timeout,
        "pool_recycle": settings.database_pool_recycle,
        "pool_pre_ping": True,  # Verify connections before using
        "echo": settings.debug,
    }


def configure_sqlite_engine(async_engine: AsyncEngine) -> None:
    """
    Let SQLAlchemy own transaction boundaries on SQLite.

    The driver's implicit BEGIN handling breaks SAVEPOINTs, and foreign
    keys are off unless switched on per connection.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(async_engine.sync_engine, "begin")
    def _on_begin(connection):
        connection.exec_driver_sql("BEGIN")


def create_database_engine() -> AsyncEngine:
    """Create and configure the async database engine."""
    global engine, AsyncSessionLocal

    if engine is not None:
        return engine

    engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))
    if engine.url.get_backend_name() == "sqlite":
        configure_sqlite_engine(engine)

    # Create session factory
    AsyncSessionLocal = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info(
        "database.engine.created",
        backend=engine.url.get_backend_name(),
        testing=settings.is_testing,
    )

    return engine


async def create_tables() -> None:
    """Create any missing tables."""
    async with create_database_engine().begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    logger.info("database.tables_ensured")


async def dispose_engine() -> None:
    global engine, AsyncSessionLocal

    if engine is None:
        return
    await engine.dispose()
    engine = None
    AsyncSessionLocal = None


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session for dependency injection."""
    if AsyncSessionLocal is None:
        create_database_engine()

    session = AsyncSessionLocal()

    try:
        yield session

    except SQLAlchemyError as e:
        logger.error("database.session_error", error=str(e))
        await session.rollback()
        raise DatabaseError(
            message="Database session error",
            details={"error": str(e)},
        ) from e

    finally:
        await session.close()


@asynccontextmanager
async def session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for sessions outside request handling (CLI)."""
    if AsyncSessionLocal is None:
        create_database_engine()

    async with AsyncSessionLocal() as session:
        yield session


async def health_check(session: AsyncSession) -> Dict[str, str]:
    """Check database health."""
    try:
        result = await session.execute(text("SELECT 1"))
        row = result.fetchone()
        return {
            "status": "healthy" if row and row[0] == 1 else "unhealthy",
            "backend": session.bind.dialect.name if session.bind is not None else "unknown",
        }
    except SQLAlchemyError as e:
        logger.error("database.health_check_failed", error=str(e))
        return {
            "status": "unhealthy",
            "error": str(e),
        }
