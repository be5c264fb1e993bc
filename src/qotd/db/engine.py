"""Async SQLAlchemy engine factory.

The engine is built from Settings and handed to PersistenceGateway; nothing
here is a module-level singleton.

SQLite gets a NullPool: every gateway operation opens its own connection
and closes it when done, which keeps connections from crossing event loops.
Server databases (PostgreSQL via asyncpg) get a regular bounded pool.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from qotd.config import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    """Build the async engine described by settings.database_url."""
    if settings.database_url.startswith("sqlite"):
        return create_async_engine(
            settings.database_url,
            echo=settings.debug,
            poolclass=NullPool,
        )
    # Connection pool: min 5, max 20 connections.
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_size=5,
        max_overflow=15,
    )
