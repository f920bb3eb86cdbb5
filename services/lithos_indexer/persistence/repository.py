"""
Entity Snapshot Repository

Persists the in-memory entity store to PostgreSQL and restores it at start-up.

Table schema (see schema_postgres.sql):
    CREATE TABLE indexer_entities (
        kind          VARCHAR(64) NOT NULL,
        id            TEXT        NOT NULL,
        data          JSONB       NOT NULL,
        updated_block BIGINT      NOT NULL DEFAULT 0,
        updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        PRIMARY KEY (kind, id)
    );

Snapshots are incremental: only entities upserted or removed since the last
snapshot are written, in one transaction.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Optional

from ..core.constants import CURSOR_ID
from ..core.entities import EntityKind, IndexerCursor
from ..core.metrics import record_db_write
from .pool import DatabasePool
from .store import InMemoryEntityStore

logger = logging.getLogger(__name__)

TABLE = "indexer_entities"


@dataclass
class SnapshotResult:
    upserted: int = 0
    removed: int = 0
    block_number: int = 0


class EntitySnapshotRepository:
    """
    Repository for entity snapshots.

    Usage:
        repo = EntitySnapshotRepository(pool)
        restored = await repo.load_into(store)
        ...
        await repo.save_changes(store, block_number)
    """

    def __init__(self, pool: DatabasePool):
        self.pool = pool

    async def save_changes(self, store: InMemoryEntityStore, block_number: int) -> SnapshotResult:
        """
        Write every change since the last snapshot.

        On failure the drained changes are put back on the store so the next
        snapshot retries them.
        """
        upserts, removals = store.drain_changes()
        result = SnapshotResult(upserted=len(upserts), removed=len(removals), block_number=block_number)
        if not upserts and not removals:
            return result

        start = time.perf_counter()
        try:
            async with self.pool.acquire() as conn:
                async with conn.transaction():
                    if upserts:
                        await conn.executemany(
                            """
                            INSERT INTO indexer_entities (kind, id, data, updated_block, updated_at)
                            VALUES ($1, $2, $3::jsonb, $4, NOW())
                            ON CONFLICT (kind, id)
                            DO UPDATE SET
                                data = EXCLUDED.data,
                                updated_block = EXCLUDED.updated_block,
                                updated_at = EXCLUDED.updated_at
                            """,
                            [
                                (entity.KIND.value, entity.id, json.dumps(entity.model_dump(mode="json")), block_number)
                                for entity in upserts
                            ],
                        )
                    if removals:
                        await conn.executemany(
                            "DELETE FROM indexer_entities WHERE kind = $1 AND id = $2",
                            [(kind.value, entity_id) for kind, entity_id in removals],
                        )
        except Exception as e:
            record_db_write(TABLE, False, time.perf_counter() - start)
            store.requeue(upserts, removals)
            logger.error(f"Failed to save entity snapshot at block {block_number}: {e}")
            raise

        record_db_write(TABLE, True, time.perf_counter() - start)
        logger.info(
            f"Saved entity snapshot at block {block_number}: "
            f"{result.upserted} upserted, {result.removed} removed"
        )
        return result

    async def load_into(self, store: InMemoryEntityStore) -> int:
        """
        Restore every persisted entity into the store.

        Rows of unknown kinds (written by a newer schema) are skipped.

        Returns:
            Number of entities restored
        """
        try:
            rows = await self.pool.fetch("SELECT kind, id, data FROM indexer_entities")
        except Exception as e:
            logger.error(f"Failed to load entity snapshot: {e}")
            raise

        restored = 0
        for row in rows:
            try:
                kind = EntityKind(row["kind"])
            except ValueError:
                logger.warning(f"Skipping persisted row of unknown kind {row['kind']!r}")
                continue
            data = row["data"]
            if isinstance(data, str):
                data = json.loads(data)
            store.restore(kind, row["id"], data)
            restored += 1

        logger.info(f"Restored {restored} entities from snapshot")
        return restored


class IndexerCursorRepository:
    """Reads the persisted cursor without loading the whole snapshot."""

    def __init__(self, pool: DatabasePool):
        self.pool = pool

    async def get(self) -> Optional[IndexerCursor]:
        try:
            data = await self.pool.fetchval(
                "SELECT data FROM indexer_entities WHERE kind = $1 AND id = $2",
                EntityKind.INDEXER_CURSOR.value,
                CURSOR_ID,
            )
        except Exception as e:
            logger.error(f"Failed to read indexer cursor: {e}")
            raise

        if data is None:
            return None
        if isinstance(data, str):
            data = json.loads(data)
        return IndexerCursor.model_validate(data)
