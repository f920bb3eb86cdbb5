"""
Event Aggregation Engine

Routes decoded chain events to the aggregator registered for the emitting
contract's role and event name.

Responsibilities:
- Own the token and data-source registries shared by every aggregator
- Run the protocol bootstrap once before the first event
- Serialize processing: one event at a time, load, mutate, upsert
- Reject events from an earlier block than the cursor
- Count applied and skipped events, advance the indexer cursor

Events from unknown contracts or with unhandled names are counted and
skipped, never raised.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Iterable, Optional

from ..connectors.base import ChainReader
from ..core.constants import CURSOR_ID
from ..core.entities import IndexerCursor
from ..core.errors import InvalidEventError, OutOfOrderEventError
from ..core.metrics import record_event_processed, record_event_skipped
from ..core.types import ChainEvent, ProtocolConfig, SkipReason, SourceKind
from ..persistence.store import EntityStore
from .base import BaseAggregator
from .bootstrap import initialize_protocol
from .bribe import BribeAggregator
from .cl_pool import CLPoolAggregator
from .factory import CLFactoryAggregator, PairFactoryAggregator
from .fees import FeeSplitAggregator
from .gauge import GaugeAggregator
from .minter import MinterAggregator
from .pair import PairAggregator
from .sources import DataSourceRegistry
from .tokens import TokenRegistry
from .voter import VoterAggregator
from .voting_escrow import VotingEscrowAggregator

logger = logging.getLogger(__name__)


AGGREGATOR_TYPES: tuple[type[BaseAggregator], ...] = (
    PairFactoryAggregator,
    CLFactoryAggregator,
    PairAggregator,
    FeeSplitAggregator,
    CLPoolAggregator,
    GaugeAggregator,
    BribeAggregator,
    VoterAggregator,
    VotingEscrowAggregator,
    MinterAggregator,
)


@dataclass
class ProcessResult:
    """Outcome of processing one event."""

    event_id: str
    source: Optional[SourceKind]
    event_name: str
    applied: bool
    skip_reason: Optional[SkipReason] = None


@dataclass
class BatchResult:
    """Outcome of processing a batch of events."""

    applied: int = 0
    skipped: int = 0
    skip_reasons: dict[str, int] = field(default_factory=dict)

    def add(self, result: ProcessResult) -> None:
        if result.applied:
            self.applied += 1
            return
        self.skipped += 1
        reason = result.skip_reason.value if result.skip_reason else "unknown"
        self.skip_reasons[reason] = self.skip_reasons.get(reason, 0) + 1


class EventAggregator:
    """
    Single entry point for feeding events into the entity store.

    Usage:
        engine = EventAggregator(store, reader, config)
        engine.initialize()
        for event in events:
            engine.process(event)
    """

    def __init__(self, store: EntityStore, reader: ChainReader, config: ProtocolConfig):
        self.store = store
        self.reader = reader
        self.config = config

        self.tokens = TokenRegistry(store, reader)
        self.sources = DataSourceRegistry(store)

        self._routes = {}
        for aggregator_type in AGGREGATOR_TYPES:
            aggregator = aggregator_type(store, reader, config, self.tokens, self.sources)
            self._routes.update(aggregator.handlers())

        self._lock = threading.Lock()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Create protocol singletons and static data sources. Idempotent."""
        with self._lock:
            initialize_protocol(self.store, self.reader, self.config, self.sources)
            self._initialized = True

    def cursor(self) -> IndexerCursor:
        cursor = self.store.load(IndexerCursor, CURSOR_ID)
        return cursor if cursor is not None else IndexerCursor(id=CURSOR_ID)

    def routes(self) -> list[tuple[SourceKind, str]]:
        return sorted(self._routes, key=lambda key: (key[0].value, key[1]))

    def process(self, event: ChainEvent) -> ProcessResult:
        """
        Apply one event.

        Raises:
            OutOfOrderEventError: event block precedes the cursor's block
            InvalidEventError: event parameters could not be decoded
        """
        with self._lock:
            if not self._initialized:
                initialize_protocol(self.store, self.reader, self.config, self.sources)
                self._initialized = True
            return self._process(event)

    def process_many(self, events: Iterable[ChainEvent]) -> BatchResult:
        batch = BatchResult()
        for event in events:
            batch.add(self.process(event))
        return batch

    def _process(self, event: ChainEvent) -> ProcessResult:
        cursor = self.cursor()
        if event.block_number < cursor.block_number:
            raise OutOfOrderEventError(cursor.position, event.position)

        result = self._dispatch(event)
        self._advance_cursor(cursor, event, result.applied)
        return result

    def _dispatch(self, event: ChainEvent) -> ProcessResult:
        source = self.sources.kind_of(event.contract_address)
        if source is None:
            return self._skip(event, None, SkipReason.UNROUTED)

        handler = self._routes.get((source, event.event_name))
        if handler is None:
            return self._skip(event, source, SkipReason.UNHANDLED)

        start = time.perf_counter()
        try:
            outcome = handler(event)
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidEventError(
                f"{source.value}.{event.event_name} at {event.event_id}: {e}"
            ) from e
        latency = time.perf_counter() - start

        if outcome is True:
            record_event_processed(source.value, event.event_name, latency, event.block_number)
            return ProcessResult(
                event_id=event.event_id,
                source=source,
                event_name=event.event_name,
                applied=True,
            )
        reason = outcome if isinstance(outcome, SkipReason) else SkipReason.MISSING_ENTITY
        return self._skip(event, source, reason)

    def _skip(self, event: ChainEvent, source: Optional[SourceKind], reason: SkipReason) -> ProcessResult:
        source_label = source.value if source is not None else "unknown"
        logger.debug(f"Skipped {source_label}.{event.event_name} at {event.event_id}: {reason.value}")
        record_event_skipped(source_label, event.event_name, reason.value)
        return ProcessResult(
            event_id=event.event_id,
            source=source,
            event_name=event.event_name,
            applied=False,
            skip_reason=reason,
        )

    def _advance_cursor(self, cursor: IndexerCursor, event: ChainEvent, applied: bool) -> None:
        if event.position > cursor.position:
            cursor.block_number = event.block_number
            cursor.log_index = event.log_index
        if applied:
            cursor.events_processed += 1
        self.store.upsert(cursor)
