"""Async SQLAlchemy engine and session management for the SQL store."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from peerlearn.config import get_settings
from peerlearn.logging_config import get_logger
from peerlearn.models import Base

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def normalize_database_url(url: str) -> str:
    """Point plain postgres URLs at the asyncpg driver."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql://") and "+asyncpg" not in url:
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def validate_database_url(url: str) -> str:
    """Reject in-memory SQLite URLs.

    An in-memory SQLite database lives on a single connection, so the store's
    concurrent sessions (request handlers plus the activity writer) would
    share it and roll back each other's writes. File-backed SQLite is fine.
    """
    if url.startswith("sqlite"):
        path = url.split("://", 1)[-1]
        if path in ("", "/") or ":memory:" in path or "mode=memory" in path:
            raise ValueError("In-memory SQLite is not supported; use a file-backed database URL")
    return url


def get_engine() -> AsyncEngine:
    """Get or create the async database engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        url = validate_database_url(normalize_database_url(settings.database_url))
        kwargs: dict = {"echo": settings.database_echo, "pool_pre_ping": True}
        if not url.startswith("sqlite"):
            kwargs.update(
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_recycle=3600,
            )
        _engine = create_async_engine(url, **kwargs)
        logger.info("database_engine_created", dialect=_engine.dialect.name)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the async session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            bind=get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        logger.info("session_factory_created")
    return _session_factory


async def init_db(create_tables: bool = True) -> None:
    """Verify connectivity and create missing tables."""
    engine = get_engine()
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
            if create_tables:
                await conn.run_sync(Base.metadata.create_all)
        logger.info("database_connection_verified")
    except Exception as e:
        logger.error("database_connection_failed", error=str(e))
        raise


async def close_db() -> None:
    """Close database connections."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("database_connections_closed")

