"""Async engine and session handling for the row store."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from memoryreel.config import Settings, settings
from memoryreel.db.models import Base
from memoryreel.errors import StoreError

logger = logging.getLogger(__name__)


def build_engine(url: Optional[str] = None, config: Settings = settings) -> AsyncEngine:
    """Create the engine; pool sizing only applies to server databases."""
    url = url or config.DATABASE_URL
    if url.startswith("sqlite"):
        return create_async_engine(url)
    return create_async_engine(
        url,
        pool_size=config.DATABASE_POOL_SIZE,
        max_overflow=config.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@asynccontextmanager
async def get_session_context(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session that commits on success and rolls back on any error.

    Commit failures surface as StoreError.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error(f"Row store transaction failed: {e}")
            raise StoreError("commit", str(e)) from e
        except Exception:
            await session.rollback()
            raise


async def init_db(engine: AsyncEngine) -> None:
    """Create missing tables. Production schemas come from alembic."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_db(engine: AsyncEngine) -> bool:
    """Reachability check for the health endpoint."""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Database health check failed: {e}")
        return False


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("Database connections closed")
