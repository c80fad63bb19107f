"""
Async SQLAlchemy engine and session management.

Usage:
    from deliverywatch.core.database import AsyncSessionLocal

    async with AsyncSessionLocal() as session:
        result = await session.execute(stmt)
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from deliverywatch.core.config import settings


def get_async_database_url(url: str) -> str:
    """Convert a plain PostgreSQL URL to the asyncpg dialect."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


Base = declarative_base()

engine = create_async_engine(
    get_async_database_url(settings.DATABASE_URL),
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    echo=settings.DB_ECHO,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def close_db() -> None:
    """Dispose of the engine connection pool."""
    await engine.dispose()
