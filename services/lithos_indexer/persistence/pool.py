"""
Database Connection Pool

Manages async PostgreSQL connections using asyncpg.
Supports automatic schema initialization on startup.
"""

import logging
import re
from pathlib import Path
from typing import Optional

import asyncpg

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema_postgres.sql"

# Tables the schema must produce
EXPECTED_TABLES = ("indexer_entities",)


def split_schema(schema_sql: str) -> list[str]:
    """Strip SQL comments and split a schema script into statements."""
    schema_sql = re.sub(r"--[^\n]*", "", schema_sql)
    schema_sql = re.sub(r"/\*.*?\*/", "", schema_sql, flags=re.DOTALL)
    return [statement.strip() for statement in schema_sql.split(";") if statement.strip()]


class DatabasePool:
    """
    Async database connection pool for the entity snapshot tables.

    Usage:
        pool = DatabasePool()
        await pool.connect(database_url)
        async with pool.acquire() as conn:
            await conn.fetch("SELECT kind, id FROM indexer_entities")
        await pool.close()
    """

    def __init__(self):
        self._pool: Optional[asyncpg.Pool] = None
        self._database_url: Optional[str] = None

    async def connect(
        self,
        database_url: str,
        min_size: int = 2,
        max_size: int = 10,
    ) -> None:
        """
        Create connection pool.

        Args:
            database_url: PostgreSQL connection string
            min_size: Minimum pool connections
            max_size: Maximum pool connections
        """
        if self._pool is not None:
            logger.warning("Pool already connected")
            return

        self._database_url = database_url
        self._pool = await asyncpg.create_pool(
            database_url,
            min_size=min_size,
            max_size=max_size,
        )
        logger.info(f"Database pool created (min={min_size}, max={max_size})")

    async def close(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("Database pool closed")

    def _require_pool(self) -> asyncpg.Pool:
        if not self._pool:
            raise RuntimeError("Database pool not connected")
        return self._pool

    def acquire(self):
        """Acquire a connection from the pool."""
        return self._require_pool().acquire()

    async def execute(self, query: str, *args) -> str:
        """Execute a query that doesn't return rows."""
        return await self._require_pool().execute(query, *args)

    async def fetch(self, query: str, *args) -> list:
        """Execute a query and fetch all rows."""
        return await self._require_pool().fetch(query, *args)

    async def fetchrow(self, query: str, *args):
        """Execute a query and fetch one row."""
        return await self._require_pool().fetchrow(query, *args)

    async def fetchval(self, query: str, *args):
        """Execute a query and fetch a single value."""
        return await self._require_pool().fetchval(query, *args)

    @property
    def is_connected(self) -> bool:
        """Check if pool is connected."""
        return self._pool is not None

    async def check_health(self) -> bool:
        """Check database connectivity."""
        if not self._pool:
            return False
        try:
            await self._pool.fetchval("SELECT 1")
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    async def initialize_schema(self, schema_path: Path = SCHEMA_PATH) -> bool:
        """
        Initialize database schema if tables don't exist.

        Safe to call multiple times - uses CREATE TABLE IF NOT EXISTS.

        Returns:
            True if schema initialized successfully, False otherwise
        """
        pool = self._require_pool()

        try:
            if not schema_path.exists():
                logger.error(f"Schema file not found: {schema_path}")
                return False

            statements = split_schema(schema_path.read_text())

            async with pool.acquire() as conn:
                async with conn.transaction():
                    for statement in statements:
                        try:
                            logger.debug(f"Executing: {statement[:80]}...")
                            await conn.execute(statement)
                        except asyncpg.exceptions.DuplicateObjectError:
                            logger.debug("Object already exists, skipping")
                        except asyncpg.exceptions.DuplicateTableError:
                            logger.debug("Table already exists, skipping")

            for table in EXPECTED_TABLES:
                table_exists = await pool.fetchval(
                    "SELECT EXISTS (SELECT 1 FROM information_schema.tables WHERE table_name = $1)",
                    table,
                )
                if not table_exists:
                    logger.error(f"Schema executed but {table} table not found!")
                    return False

            logger.info("Database schema initialized successfully")
            return True

        except Exception as e:
            logger.error(f"Failed to initialize schema: {e}")
            return False
