"""
Unit tests for ReplayService.

Tests ordered replay of JSON-lines event files:
- Periodic snapshots on block boundaries
- Resume after a restored cursor
- Malformed lines and out-of-order streams
"""

import asyncio
import json
import time

import pytest
from unittest.mock import AsyncMock, MagicMock

from services.lithos_indexer.core.entities import VotingEscrow
from services.lithos_indexer.core.errors import InvalidEventError, OutOfOrderEventError
from services.lithos_indexer.replay import ReplayService, parse_event_line

T0 = 1_700_000_000


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_repository():
    """Mock snapshot repository."""
    repo = MagicMock()
    repo.save_changes = AsyncMock()
    return repo


@pytest.fixture
def supply_line(addr):
    """Build a JSON line for a voting-escrow Supply event."""

    def _line(block, log_index=0, supply=1):
        return json.dumps({
            "contractAddress": addr.escrow,
            "blockNumber": block,
            "blockTimestamp": T0 + block,
            "txHash": f"0x{block:064x}",
            "logIndex": log_index,
            "eventName": "Supply",
            "params": {"prevSupply": 0, "supply": supply},
        })

    return _line


# =============================================================================
# Line Parsing Tests
# =============================================================================


class TestParseEventLine:
    """Tests for parse_event_line()."""

    def test_valid_line(self, supply_line, addr):
        event = parse_event_line(supply_line(5, 2), 1)

        assert event.contract_address == addr.escrow
        assert event.position == (5, 2)

    def test_blank_line(self):
        assert parse_event_line("   \n", 1) is None

    def test_bad_json(self):
        with pytest.raises(InvalidEventError, match="line 3"):
            parse_event_line("{not json", 3)

    def test_missing_fields(self):
        with pytest.raises(InvalidEventError):
            parse_event_line(json.dumps({"eventName": "Sync"}), 1)


# =============================================================================
# Replay Tests
# =============================================================================


class TestReplayService:
    """Tests for ReplayService.replay_lines()."""

    @pytest.mark.asyncio
    async def test_snapshots_on_interval(self, engine, mock_repository, supply_line):
        """Snapshots are written at the last block before each interval crossing and at the end."""
        service = ReplayService(engine, repository=mock_repository, snapshot_interval_blocks=10)
        lines = [supply_line(block) for block in (1, 5, 20, 40)]

        result = await service.replay_lines(lines)

        assert result.events_applied == 4
        assert result.first_block == 1
        assert result.last_block == 40
        assert result.snapshots_written == 3
        blocks = [call.args[1] for call in mock_repository.save_changes.await_args_list]
        assert blocks == [5, 20, 40]

    @pytest.mark.asyncio
    async def test_without_repository(self, engine, supply_line, store, addr):
        service = ReplayService(engine)

        result = await service.replay_lines([supply_line(1, supply=7)])

        assert result.snapshots_written == 0
        assert store.load(VotingEscrow, addr.escrow).total_supply == 7

    @pytest.mark.asyncio
    async def test_resume_skips_processed_events(self, engine, supply_line, store, addr):
        """Events at or before the cursor should not be applied again."""
        service = ReplayService(engine)
        await service.replay_lines([supply_line(1, supply=1), supply_line(2, supply=2)])

        result = await service.replay_lines([
            supply_line(1, supply=1),
            supply_line(2, supply=2),
            supply_line(3, supply=3),
        ])

        assert result.events_already_processed == 2
        assert result.events_applied == 1
        assert engine.cursor().events_processed == 3
        assert store.load(VotingEscrow, addr.escrow).total_supply == 3

    @pytest.mark.asyncio
    async def test_malformed_lines_recorded(self, engine, supply_line):
        service = ReplayService(engine)

        result = await service.replay_lines([supply_line(1), "garbage", "", supply_line(2)])

        assert result.lines_read == 4
        assert result.events_applied == 2
        assert len(result.errors) == 1
        assert "line 2" in result.errors[0]

    @pytest.mark.asyncio
    async def test_skipped_events_counted(self, engine, supply_line):
        service = ReplayService(engine)
        unrouted = json.dumps({
            "contractAddress": "0x" + "77" * 20,
            "blockNumber": 2,
            "blockTimestamp": T0,
            "txHash": "0xaa",
            "logIndex": 0,
            "eventName": "Sync",
        })

        result = await service.replay_lines([supply_line(1), unrouted])

        assert result.events_applied == 1
        assert result.events_skipped == 1

    @pytest.mark.asyncio
    async def test_out_of_order_aborts(self, engine, supply_line):
        service = ReplayService(engine)

        with pytest.raises(OutOfOrderEventError):
            await service.replay_lines([supply_line(5, 3), supply_line(5, 1)])

    @pytest.mark.asyncio
    async def test_replay_file(self, engine, mock_repository, supply_line, tmp_path):
        path = tmp_path / "events.jsonl"
        path.write_text("\n".join(supply_line(block) for block in (1, 2, 3)) + "\n")
        service = ReplayService(engine, repository=mock_repository)

        result = await service.replay_file(path)

        assert result.source == str(path)
        assert result.events_applied == 3
        mock_repository.save_changes.assert_awaited_once_with(engine.store, 3)

    @pytest.mark.asyncio
    async def test_snapshot_failure_propagates(self, engine, mock_repository, supply_line):
        mock_repository.save_changes.side_effect = RuntimeError("db down")
        service = ReplayService(engine, repository=mock_repository)

        with pytest.raises(RuntimeError, match="db down"):
            await service.replay_lines([supply_line(1)])

    @pytest.mark.asyncio
    async def test_chain_reads_do_not_block_event_loop(self, engine, reader, addr, monkeypatch):
        """Slow chain reads during replay should leave other tasks running."""
        recorded_read = reader.read

        def slow_read(*args):
            time.sleep(0.05)
            return recorded_read(*args)

        monkeypatch.setattr(reader, "read", slow_read)

        lines = [
            json.dumps({
                "contractAddress": addr.factory,
                "blockNumber": block,
                "blockTimestamp": T0,
                "txHash": f"0x{block:064x}",
                "logIndex": 0,
                "eventName": "PairCreated",
                "params": {
                    "token0": "0x" + f"{block:02d}" * 20,
                    "token1": "0x" + f"{block + 50:02d}" * 20,
                    "stable": False,
                    "pair": "0x" + f"{block + 80:02d}" * 20,
                },
            })
            for block in (1, 2)
        ]

        loop = asyncio.get_running_loop()
        done = asyncio.Event()
        gaps = []

        async def ticker():
            last = loop.time()
            while not done.is_set():
                await asyncio.sleep(0.01)
                now = loop.time()
                gaps.append(now - last)
                last = now

        ticking = asyncio.create_task(ticker())
        result = await ReplayService(engine).replay_lines(lines)
        done.set()
        await ticking

        assert result.events_applied == 2
        assert len(reader.calls_to("symbol")) >= 4
        assert max(gaps) < 0.15
