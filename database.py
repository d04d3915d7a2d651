"""
Async SQLAlchemy setup for GardenGrid: users, gardens and their child rows,
plus the processed webhook event log.
"""
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from config.settings import settings, IS_PRODUCTION

LOCAL_DATABASE_URL = "sqlite+aiosqlite:///./gardengrid.db"


def resolve_database_url(url, production):
    """
    Pick the async driver URL. Production must run on Postgres; a plain
    postgresql:// URL from the host is switched to asyncpg.
    """
    if production and (not url or "sqlite" in url.lower()):
        raise RuntimeError("GardenGrid needs a PostgreSQL DATABASE_URL in production")
    url = url or LOCAL_DATABASE_URL
    return url.replace("postgresql://", "postgresql+asyncpg://", 1)


engine = create_async_engine(resolve_database_url(settings.database_url, IS_PRODUCTION), echo=False)

Base = declarative_base()

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


async def init_db():
    """Create any missing tables. Runs on application startup."""
    async with engine.begin() as conn:
        import database_models  # noqa: F401  registers tables on Base
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; commits on success, rolls back on error."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
