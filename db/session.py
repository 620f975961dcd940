from __future__ import annotations

from typing import Any, AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from core.settings import get_settings


settings = get_settings()

# NullPool in debug so reloads never hold on to connections.
pool_kwargs: dict[str, Any] = (
    {"poolclass": NullPool}
    if settings.debug
    else {"pool_size": settings.db_pool_size, "max_overflow": settings.db_max_overflow}
)
engine = create_async_engine(
    settings.sqlalchemy_database_uri_async,
    echo=settings.db_echo,
    pool_pre_ping=True,
    **pool_kwargs,
)

# expire_on_commit=False: store results are read after each commit.
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with AsyncSessionLocal() as session:
        yield session
