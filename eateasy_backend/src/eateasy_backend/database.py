# eateasy_backend/database.py
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from eateasy_backend.settings import settings
# Imported for their side effect of registering tables on SQLModel.metadata
from eateasy_backend.models import hours_models, order_models, rate_limit_models, restaurant_models  # noqa: F401


def async_database_url(url: str) -> str:
    """Point plain postgres URLs at the asyncpg driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


connection_string = async_database_url(settings.DIRECT_URL)

engine_options = {
    "echo": settings.DB_ECHO,
    "future": True,
    # Pings connections before use
    "pool_pre_ping": True,
}
if connection_string.startswith("postgresql+asyncpg"):
    # Crucial for PgBouncer/Supavisor transaction mode: disable prepared statement cache
    engine_options["connect_args"] = {"statement_cache_size": 0}
    engine_options["pool_recycle"] = 3600

async_engine = create_async_engine(connection_string, **engine_options)

AsyncSessionLocal = sessionmaker(
    async_engine, class_=AsyncSession, expire_on_commit=False
)

async def create_db_tables():
    async with async_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

# Dependency to get an async session for FastAPI
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
