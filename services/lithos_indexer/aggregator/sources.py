"""
Data Source Registry

Tracks which contract addresses the engine routes events for and in what
role. Static sources come from configuration; pairs, pools, gauges and bribes
are registered as their creation events are processed.
"""

import logging
from typing import Optional

from ..core.entities import DataSource
from ..core.types import SourceKind
from ..persistence.store import EntityStore

logger = logging.getLogger(__name__)


class DataSourceRegistry:
    """Store-backed address -> SourceKind lookup."""

    def __init__(self, store: EntityStore):
        self.store = store

    def register(self, address: str, kind: SourceKind, block_number: int = 0) -> DataSource:
        """Register a source. Re-registering an address keeps its original role."""
        address = address.lower()
        existing = self.store.load(DataSource, address)
        if existing is not None:
            if existing.kind != kind:
                logger.warning(
                    f"Data source {address} already registered as {existing.kind.value}, "
                    f"ignoring {kind.value}"
                )
            return existing

        source = DataSource(id=address, kind=kind, created_at_block_number=block_number)
        self.store.upsert(source)
        logger.info(f"Registered {kind.value} data source {address} at block {block_number}")
        return source

    def kind_of(self, address: str) -> Optional[SourceKind]:
        source = self.store.load(DataSource, address.lower())
        return source.kind if source is not None else None

    def addresses(self, kind: Optional[SourceKind] = None) -> list[str]:
        return sorted(
            source.id for source in self.store.all(DataSource)
            if kind is None or source.kind == kind
        )
