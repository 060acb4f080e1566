"""
Database Configuration
======================

SQLAlchemy database setup with async support.
Supports both SQLite (dev) and PostgreSQL (production).
"""

import structlog

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def _mask_url(url: str) -> str:
    """Mask password in URL for safe logging."""
    if not url:
        return "<empty>"
    if "://" in url and "@" in url:
        pre = url.split("://")[0] + "://"
        rest = url.split("://", 1)[1]
        if ":" in rest.split("@", 1)[0]:
            user = rest.split(":")[0]
            after_at = rest.split("@", 1)[1]
            return f"{pre}{user}:****@{after_at}"
    return url[:30] + "..." if len(url) > 30 else url


def get_database_url(url: str) -> str:
    """
    Convert a configured database URL to its async driver form.

    Handles:
    - sqlite:///         -> sqlite+aiosqlite:///
    - postgresql://      -> postgresql+asyncpg://
    - postgres://        -> postgresql+asyncpg://
    Already-async URLs are returned unchanged.
    """
    url = url.strip()

    if url.startswith(("sqlite+aiosqlite://", "postgresql+asyncpg://")):
        return url

    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]

    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)

    logger.error("Unrecognized database URL", url=_mask_url(url))
    raise ValueError(f"Invalid DATABASE_URL: {_mask_url(url)}")


def create_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine for a configured database URL."""
    async_url = get_database_url(url)

    if "sqlite" in async_url:
        engine = create_async_engine(
            async_url,
            echo=echo,
            connect_args={
                "check_same_thread": False,
                "timeout": 30,
            },
        )
        logger.info("Created SQLite async engine", url=_mask_url(async_url))
    else:
        engine = create_async_engine(
            async_url,
            echo=echo,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            pool_recycle=300,
        )
        logger.info("Created PostgreSQL async engine", url=_mask_url(async_url), pool_size=5)

    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create the async session factory bound to an engine."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    """Initialize database tables."""
    async with engine.begin() as conn:
        from docgate.models import db_models  # noqa
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables initialized successfully")


async def ping_db(engine: AsyncEngine) -> bool:
    """Round-trip a trivial query; False if the database is unreachable."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database ping failed", error=str(e))
        return False


async def close_db(engine: AsyncEngine) -> None:
    """Close database connections."""
    await engine.dispose()
    logger.info("Database connections closed")
