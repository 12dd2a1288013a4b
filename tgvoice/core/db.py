from collections.abc import AsyncGenerator
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tgvoice.core.config import settings


logger = logging.getLogger(__name__)

engine = create_async_engine(settings.DATABASE_URL_ASYNC, echo=settings.DB_ECHO, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; REST services open their own transactions on it."""
    async with AsyncSessionLocal() as session:
        yield session


async def dispose_engine() -> None:
    await engine.dispose()
    logger.info("Database engine disposed")
