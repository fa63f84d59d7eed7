"""
Async database connection pool and session management.
Uses SQLAlchemy 2.0 with asyncpg (aiosqlite in tests).
"""
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from buildfolio.config import get_settings
from buildfolio.utils.logger import get_logger

logger = get_logger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


@dataclass(frozen=True)
class SchemaCapabilities:
    """Optional tables this deployment has. Resolved once at startup."""

    experiences: bool = True


_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_from_settings() -> AsyncEngine:
    """Create async engine with connection pool settings."""
    settings = get_settings()
    db_url = settings.database_url
    if not db_url:
        raise ValueError("DATABASE_URL is not configured")

    logger.info(f"Connecting to database: {db_url.split('@')[1] if '@' in db_url else db_url.split(':')[0]}")

    if db_url.startswith("sqlite"):
        return create_async_engine(db_url, echo=False)
    return create_async_engine(
        db_url,
        pool_size=10,
        max_overflow=5,
        pool_pre_ping=True,
        pool_recycle=3600,
        echo=settings.environment == "development" and settings.log_level == "DEBUG",
    )


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = create_engine_from_settings()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
    return _session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields a database session. Caller must not log session contents."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@asynccontextmanager
async def transaction(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a multi-table write as one unit on an existing session.
    Commits on exit, rolls back everything on exception.
    """
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        logger.warning("Transaction rolled back")
        raise


async def init_db() -> None:
    """Create missing tables (development convenience; production uses migrations)."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database connection verified")


async def detect_capabilities(engine: AsyncEngine | None = None) -> SchemaCapabilities:
    """
    Decide which optional tables are usable. An explicit EXPERIENCES_ENABLED
    setting wins; otherwise the live schema is inspected once.
    """
    settings = get_settings()
    if settings.experiences_enabled is not None:
        return SchemaCapabilities(experiences=settings.experiences_enabled)
    engine = engine or get_engine()
    async with engine.connect() as conn:
        tables = await conn.run_sync(lambda sync_conn: set(inspect(sync_conn).get_table_names()))
    capabilities = SchemaCapabilities(experiences="experiences" in tables)
    if not capabilities.experiences:
        logger.warning("Experiences table is missing; experience entries will not be stored")
    return capabilities


async def close_db() -> None:
    """Dispose of the connection pool."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("Database pool disposed")
    _engine = None
    _session_factory = None
