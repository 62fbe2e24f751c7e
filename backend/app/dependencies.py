"""FastAPI dependency injection functions."""

from sqlalchemy.ext.asyncio import AsyncSession
import logging

from db import database
from messaging.registry import ChannelRegistry, get_channel_registry

logger = logging.getLogger(__name__)


async def get_db() -> AsyncSession:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session that is automatically
    committed on success or rolled back on error.
    """
    async with database.AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Database error: {str(e)}")
            await session.rollback()
            raise
        finally:
            await session.close()


def get_channel_registry_dep() -> ChannelRegistry:
    """Provide the outbound channel registry (overridable in tests)."""
    return get_channel_registry()
