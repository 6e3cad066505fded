"""Async database engine and session management.

Provides:
    - _get_engine: The SQLAlchemy async engine (lazy singleton).
    - get_session_factory: A sessionmaker bound to the engine.
    - get_async_session: FastAPI dependency that yields a session per request.
    - init_db / close_db: Lifecycle hooks for FastAPI's lifespan.

Usage in FastAPI:
    @router.get("/escrow/{engagement_id}")
    async def get_escrow(session: AsyncSession = Depends(get_async_session)):
        ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from escrow_governance.config import get_settings
from escrow_governance.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = get_logger(__name__)

# Module-level singletons (initialized in init_db)
_engine = None
_session_factory = None


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, applying pool settings only where the driver pools."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)

    settings = get_settings()
    return create_async_engine(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_pre_ping=True,
        echo=echo,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _get_engine() -> AsyncEngine:
    """Get or create the async engine (lazy singleton)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = build_engine(settings.database_url, echo=settings.db_echo_sql)
        logger.info(
            "database.engine_created",
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory (lazy singleton)."""
    global _session_factory
    if _session_factory is None:
        _session_factory = build_session_factory(_get_engine())
    return _session_factory


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an async database session.

    Services commit their own units of work; anything left pending when the
    request ends is committed here, and rolled back on error.
    """
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def ping_database() -> bool:
    """Round-trip a trivial statement. Used by the health probe."""
    from sqlalchemy import text

    async with _get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True


async def init_db() -> None:
    """Initialize the database engine and create tables if they don't exist.

    Called during FastAPI's lifespan startup. In production, use Alembic
    migrations instead of create_all.
    """
    from escrow_governance.infrastructure.database.orm_models import Base

    engine = _get_engine()
    settings = get_settings()

    if settings.is_development:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("database.tables_created")
    else:
        logger.info("database.skipping_create_all", reason="not in development mode")


async def close_db() -> None:
    """Dispose of the database engine. Called during FastAPI's lifespan shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database.engine_disposed")
        _engine = None
        _session_factory = None
