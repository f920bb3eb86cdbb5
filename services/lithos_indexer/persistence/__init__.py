# Lithos Indexer Persistence
# In-memory entity store with PostgreSQL snapshots

"""
Persistence module for derived entities.

Components:
- EntityStore / InMemoryEntityStore: Synchronous store injected into aggregators
- EntitySnapshotRepository: Incremental JSONB snapshots of the store
- IndexerCursorRepository: Last processed (block, log index)
- DatabasePool: Connection pool management
"""

from .pool import DatabasePool
from .repository import EntitySnapshotRepository, IndexerCursorRepository, SnapshotResult
from .store import EntityStore, InMemoryEntityStore

__all__ = [
    "DatabasePool",
    "EntitySnapshotRepository",
    "EntityStore",
    "InMemoryEntityStore",
    "IndexerCursorRepository",
    "SnapshotResult",
]
