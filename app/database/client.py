"""Database lifecycle helpers used by the application lifespan."""

from typing import Any, Dict

from sqlalchemy import text

from app.database.base import Base, engine
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


class DatabaseClient:
    """Thin wrapper around the shared async engine."""

    def __init__(self, db_engine=engine):
        self.engine = db_engine

    async def create_tables(self, drop_existing: bool = False) -> None:
        """Create all tables registered on ``Base.metadata``.

        Args:
            drop_existing: Drop every table first (development resets only)
        """
        # Register models on the metadata before create_all.
        from app.database import models  # noqa: F401

        async with self.engine.begin() as conn:
            if drop_existing:
                LOGGER.warning("Dropping existing tables")
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

    async def health_check(self) -> Dict[str, Any]:
        """Check database connectivity.

        Returns:
            Dict with ``status`` set to ``healthy`` or ``unhealthy``
        """
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "healthy"}
        except Exception as e:
            LOGGER.warning(f"Database health check failed: {e}")
            return {"status": "unhealthy", "error": str(e)}

    async def close(self) -> None:
        await self.engine.dispose()


db_client = DatabaseClient()


async def init_database(auto_migrate: bool = True, drop_existing: bool = False) -> None:
    """Initialize the database schema.

    Args:
        auto_migrate: Create missing tables on startup
        drop_existing: Drop tables before creating them
    """
    if auto_migrate:
        await db_client.create_tables(drop_existing=drop_existing)
        LOGGER.info("Database tables ensured")


async def close_database() -> None:
    """Dispose the engine and its connection pool."""
    await db_client.close()
    LOGGER.info("Database connections closed")
