"""Persistence gateway — the only component that talks to the database.

Every public operation borrows exactly one connection for its duration and
gives it back on every exit path, including failures. Failures come out as
StoreError subclasses:

- StoreConnectionError: no connection could be acquired
- StoreQueryError: a statement failed on an acquired connection

Startup operations translate those into SchemaBootstrapError and
SeedImportError so the readiness gate can report which step broke.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import structlog
from sqlalchemy import func, insert, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from qotd.config import Settings
from qotd.db.engine import create_engine
from qotd.db.models import metadata, quotes
from qotd.errors import (
    SchemaBootstrapError,
    SeedImportError,
    StoreConnectionError,
    StoreError,
    StoreQueryError,
)

logger = structlog.get_logger()


def split_statements(script: str) -> list[str]:
    """Split a SQL script into statements, dropping `--` comment lines."""
    lines = [
        line for line in script.splitlines()
        if not line.lstrip().startswith("--")
    ]
    return [stmt.strip() for stmt in "\n".join(lines).split(";") if stmt.strip()]


class PersistenceGateway:
    """Schema bootstrap, seed import, and quote reads/writes."""

    def __init__(self, engine: AsyncEngine, seed_script: Optional[str] = None):
        self.engine = engine
        self.seed_script = seed_script

    @classmethod
    def from_settings(cls, settings: Settings) -> "PersistenceGateway":
        return cls(create_engine(settings), seed_script=settings.seed_script)

    @asynccontextmanager
    async def _connection(self, operation: str) -> AsyncIterator[AsyncConnection]:
        """Borrow one connection inside a transaction; always release it."""
        try:
            conn = await self.engine.connect()
        except (SQLAlchemyError, OSError) as e:
            logger.error("store.connect_failed", operation=operation, error=str(e))
            raise StoreConnectionError(f"{operation}: could not acquire a connection") from e

        try:
            async with conn.begin():
                yield conn
        except SQLAlchemyError as e:
            logger.error("store.query_failed", operation=operation, error=str(e))
            raise StoreQueryError(f"{operation}: statement failed") from e
        finally:
            await conn.close()

    # ─── Startup ────────────────────────────────────────

    async def bootstrap_schema(self) -> None:
        """Create the schema. Safe to run against an existing schema."""
        try:
            async with self._connection("bootstrap_schema") as conn:
                await conn.run_sync(metadata.create_all, checkfirst=True)
        except StoreError as e:
            raise SchemaBootstrapError(str(e)) from e
        logger.info("store.schema_ready")

    async def import_seed_data(self) -> int:
        """Load the seed script into an empty quotes table.

        Returns the number of statements executed; 0 when seeding is
        disabled or the table already holds data.
        """
        if self.seed_script is None:
            logger.info("store.seed_skipped", reason="disabled")
            return 0

        try:
            script = Path(self.seed_script).read_text(encoding="utf-8")
        except OSError as e:
            raise SeedImportError(f"cannot read seed script {self.seed_script}: {e}") from e

        statements = split_statements(script)
        try:
            async with self._connection("import_seed_data") as conn:
                existing = await conn.scalar(select(func.count()).select_from(quotes))
                if existing:
                    logger.info("store.seed_skipped", reason="not_empty", rows=existing)
                    return 0
                for statement in statements:
                    await conn.exec_driver_sql(statement)
        except StoreError as e:
            raise SeedImportError(str(e)) from e

        logger.info("store.seed_imported", statements=len(statements), script=self.seed_script)
        return len(statements)

    # ─── Quotes ─────────────────────────────────────────

    async def insert_quote(self, text: str, author: str) -> None:
        """Insert one quote. Values are bound parameters, never spliced into SQL."""
        async with self._connection("insert_quote") as conn:
            await conn.execute(insert(quotes).values({"TEXT": text, "AUTHOR": author}))

    async def list_quotes(self) -> list[dict]:
        """Every stored quote as {"TEXT", "AUTHOR"}, in storage order."""
        async with self._connection("list_quotes") as conn:
            result = await conn.execute(select(quotes.c.TEXT, quotes.c.AUTHOR))
            return [dict(row) for row in result.mappings()]

    # ─── Lifecycle ──────────────────────────────────────

    async def ping(self) -> None:
        async with self._connection("ping") as conn:
            await conn.execute(text("SELECT 1"))

    async def close(self) -> None:
        """Dispose of the engine and any pooled connections."""
        await self.engine.dispose()
