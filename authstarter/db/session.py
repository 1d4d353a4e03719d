from typing import Any
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from authstarter.db.model_registry import metadata

logger = logging.getLogger(__name__)


class Database:
    """Owns the async engine and hands out one AsyncSession per unit of work."""

    def __init__(self, url: str, **engine_kwargs: Any) -> None:
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        # objects stay readable after commit; nothing lazy-loads behind our back
        self.sessions = async_sessionmaker(self.engine, expire_on_commit=False, class_=AsyncSession)

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False
        return True

    async def create_all(self) -> None:
        """Create tables directly; for local sqlite setups. Deployments use alembic."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
