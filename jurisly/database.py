# jurisly/database.py
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from .config import settings
from .logging_config import get_logger

logger = get_logger(__name__)

Base = declarative_base()


def _make_async_url(sync_url: str) -> str:
    """Rewrite sync driver URLs to their async drivers (asyncpg / aiosqlite)"""
    if sync_url.startswith("postgres://"):
        return sync_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if sync_url.startswith("postgresql://"):
        return sync_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if sync_url.startswith("sqlite:///"):
        return sync_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return sync_url


def build_engine(database_url: str) -> AsyncEngine:
    url = _make_async_url(database_url)

    if url.startswith("sqlite"):
        # One connection per session; nothing outlives the event loop that opened it
        engine = create_async_engine(url, echo=False, poolclass=NullPool)
        pool_type = "NullPool"
    else:
        engine = create_async_engine(
            url,
            pool_pre_ping=True,
            pool_size=10,
            max_overflow=5,
            pool_timeout=10,
            pool_recycle=3600,
            echo=False,
        )
        pool_type = "AsyncQueuePool"

    logger.info(
        "Async database engine configured",
        extra={"extra_data": {
            "database": url.split("@")[-1],
            "pool_type": pool_type
        }}
    )
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def create_tables(engine: AsyncEngine):
    """Create missing tables (dev/test). Production schemas come from alembic."""
    from .chats import models  # noqa: F401  registers chat_history on Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async_engine = build_engine(settings.DATABASE_URL)
async_session = build_session_factory(async_engine)


async def get_async_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Async DB session dependency.

    Usage:
        @app.get("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_async_db)):
            ...
    """
    async with async_session() as session:
        try:
            yield session
        except Exception as e:
            logger.error(
                "Error in async database session",
                extra={"extra_data": {"error": str(e)}},
                exc_info=True
            )
            await session.rollback()
            raise
