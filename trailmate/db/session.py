"""
Database Session Management

Provides the async engine and session factory.
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from trailmate.config import settings


def _get_async_url(url: str) -> str:
    """Convert sync database URL to async version."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///")
    elif url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://")
    return url


_async_url = _get_async_url(settings.database_url)

if _async_url.startswith("sqlite"):
    async_engine = create_async_engine(
        _async_url,
        connect_args={"check_same_thread": False}
    )
elif _async_url.startswith("postgresql"):
    # PostgreSQL with connection pool settings
    async_engine = create_async_engine(
        _async_url,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,  # 30 minutes
    )
else:
    async_engine = create_async_engine(_async_url)

# Async session factory
AsyncSessionLocal = async_sessionmaker(
    async_engine,
    class_=AsyncSession,
    expire_on_commit=False
)


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Create tables that don't exist yet (development / SQLite)."""
    from trailmate.models import Base, import_all_models

    import_all_models()

    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
