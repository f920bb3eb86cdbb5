"""
Replay Service

Feeds a JSON-lines file of decoded events through the aggregation engine.

Usage:
    service = ReplayService(engine, repository=repo, snapshot_interval_blocks=1000)
    result = await service.replay_file("events.jsonl")

Each line is one ChainEvent in its camelCase wire form:
    {"contractAddress": "0x...", "blockNumber": 1, "blockTimestamp": 1700000000,
     "txHash": "0x...", "logIndex": 0, "eventName": "Sync", "params": {...}}

The stream must be ordered by (block_number, log_index). Malformed lines are
recorded and skipped; an event that goes backwards aborts the replay, since
applying it would corrupt cumulative state.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Union

from pydantic import ValidationError

from ..aggregator.engine import EventAggregator
from ..core.errors import InvalidEventError, OutOfOrderEventError
from ..core.types import ChainEvent
from ..persistence.repository import EntitySnapshotRepository
from ..persistence.store import InMemoryEntityStore

logger = logging.getLogger(__name__)


@dataclass
class ReplayResult:
    """Result of a replay run."""

    source: str
    lines_read: int = 0
    events_applied: int = 0
    events_skipped: int = 0
    events_already_processed: int = 0
    snapshots_written: int = 0
    first_block: Optional[int] = None
    last_block: Optional[int] = None
    errors: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


def parse_event_line(line: str, line_number: int) -> Optional[ChainEvent]:
    """
    Decode one JSON line. Blank lines yield None.

    Raises:
        InvalidEventError: line is not a valid event
    """
    line = line.strip()
    if not line:
        return None
    try:
        return ChainEvent.model_validate(json.loads(line))
    except (json.JSONDecodeError, ValidationError) as e:
        raise InvalidEventError(f"line {line_number}: {e}") from e


class ReplayService:
    """
    Ordered replay of recorded events with periodic snapshots.

    Events at or before the engine's cursor are skipped when `resume` is set,
    so a replay restarted after a snapshot restore does not double count.
    """

    def __init__(
        self,
        engine: EventAggregator,
        repository: Optional[EntitySnapshotRepository] = None,
        snapshot_interval_blocks: int = 1000,
        resume: bool = True,
    ):
        self.engine = engine
        self.repository = repository
        self.snapshot_interval_blocks = snapshot_interval_blocks
        self.resume = resume

    async def replay_file(self, path: Union[str, Path]) -> ReplayResult:
        path = Path(path)
        with path.open("r", encoding="utf-8") as handle:
            return await self.replay_lines(handle, source=str(path))

    async def replay_lines(self, lines: Iterable[str], source: str = "<stream>") -> ReplayResult:
        """
        Replay events from an iterable of JSON lines.

        Raises:
            OutOfOrderEventError: an event precedes the previous one
        """
        start = datetime.now()
        result = ReplayResult(source=source)

        cursor = self.engine.cursor()
        resume_after = cursor.position if self.resume and cursor.events_processed > 0 else None
        last_position: Optional[tuple[int, int]] = None
        last_snapshot_block: Optional[int] = None

        for line_number, line in enumerate(lines, start=1):
            result.lines_read += 1
            try:
                event = parse_event_line(line, line_number)
            except InvalidEventError as e:
                logger.warning(f"Skipping malformed event in {source}: {e}")
                result.errors.append(str(e))
                continue
            if event is None:
                continue

            if last_position is not None and event.position < last_position:
                raise OutOfOrderEventError(last_position, event.position)
            last_position = event.position

            if resume_after is not None and event.position <= resume_after:
                result.events_already_processed += 1
                continue

            if last_snapshot_block is None:
                last_snapshot_block = event.block_number
            # Snapshot only on block boundaries so a block is never half persisted
            elif event.block_number - last_snapshot_block >= self.snapshot_interval_blocks:
                if await self._snapshot(result.last_block):
                    result.snapshots_written += 1
                last_snapshot_block = event.block_number

            # Handlers make blocking chain reads
            processed = await asyncio.to_thread(self.engine.process, event)
            if processed.applied:
                result.events_applied += 1
            else:
                result.events_skipped += 1

            if result.first_block is None:
                result.first_block = event.block_number
            result.last_block = event.block_number

        if result.last_block is not None and await self._snapshot(result.last_block):
            result.snapshots_written += 1

        result.duration_seconds = (datetime.now() - start).total_seconds()
        logger.info(
            f"Replay of {source} complete: {result.events_applied} applied, "
            f"{result.events_skipped} skipped, {len(result.errors)} malformed, "
            f"blocks {result.first_block}..{result.last_block} in {result.duration_seconds:.2f}s"
        )
        return result

    async def _snapshot(self, block_number: Optional[int]) -> bool:
        if self.repository is None or block_number is None:
            return False
        store = self.engine.store
        if not isinstance(store, InMemoryEntityStore):
            return False
        await self.repository.save_changes(store, block_number)
        return True
