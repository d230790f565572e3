"""
Database wiring shared by the HTTP routes and the realtime user store.

One engine per process. Request handlers get a session from get_db; the
user store opens its own session per update through AsyncSessionLocal.
"""
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from monkeychat.core.config import settings


def build_engine(url: str | None = None) -> AsyncEngine:
    # presence updates can sit idle for long stretches; pre-ping drops dead pool connections
    return create_async_engine(
        url or settings.DATABASE_URL_ASYNC,
        echo=settings.DATABASE_ECHO,
        pool_pre_ping=True,
    )


engine = build_engine()
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def dispose_engine() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
