"""
Shared fixtures for Lithos Indexer unit tests.

Every test gets a fresh in-memory store, a fixture-backed chain reader with
token metadata for the protocol's reference tokens, and an initialized engine.
"""

import itertools
from types import SimpleNamespace

import pytest

from services.lithos_indexer.aggregator.engine import EventAggregator
from services.lithos_indexer.connectors.recorded import RecordedChainReader
from services.lithos_indexer.core.constants import LITH_ADDRESS
from services.lithos_indexer.core.types import ChainEvent, ProtocolConfig
from services.lithos_indexer.persistence.store import InMemoryEntityStore


# A Tuesday well inside its epoch (epoch start 1_699_488_000)
T0 = 1_700_000_000


@pytest.fixture
def addr():
    """Deterministic contract and account addresses."""
    return SimpleNamespace(
        factory="0x" + "f1" * 20,
        cl_factory="0x" + "f2" * 20,
        voter="0x" + "e1" * 20,
        escrow="0x" + "e2" * 20,
        minter="0x" + "e3" * 20,
        wxpl="0x" + "a1" * 20,
        usdt="0x" + "a2" * 20,
        lith=LITH_ADDRESS,
        pair="0x" + "b1" * 20,
        pool="0x" + "b2" * 20,
        gauge="0x" + "c1" * 20,
        internal_bribe="0x" + "d1" * 20,
        external_bribe="0x" + "d2" * 20,
        alice="0x" + "11" * 20,
        bob="0x" + "22" * 20,
    )


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def reader(addr):
    """Recorded reader knowing the metadata of WXPL, USDT and LITH."""
    reader = RecordedChainReader()
    for address, symbol, name, decimals in (
        (addr.wxpl, "WXPL", "Wrapped XPL", 18),
        (addr.usdt, "USDT", "Tether USD", 6),
        (addr.lith, "LITH", "Lithos", 18),
    ):
        reader.record(address, "symbol", symbol)
        reader.record(address, "name", name)
        reader.record(address, "decimals", decimals)
    return reader


@pytest.fixture
def config(addr):
    return ProtocolConfig(
        factory_address=addr.factory,
        cl_factory_address=addr.cl_factory,
        voter_address=addr.voter,
        voting_escrow_address=addr.escrow,
        minter_address=addr.minter,
        wrapped_native_address=addr.wxpl,
        stablecoin_addresses=[addr.usdt],
    )


@pytest.fixture
def engine(store, reader, config):
    engine = EventAggregator(store, reader, config)
    engine.initialize()
    return engine


@pytest.fixture
def make_event():
    """
    Build ChainEvents with a unique tx hash and a log index that increases
    across calls, so events made in order are always in chain order.
    """
    counter = itertools.count()

    def _make(address, name, params=None, block=100, timestamp=T0, tx_from=None, log_index=None):
        index = next(counter)
        return ChainEvent(
            contract_address=address,
            block_number=block,
            block_timestamp=timestamp,
            tx_hash=f"0x{index:064x}",
            log_index=index if log_index is None else log_index,
            event_name=name,
            params=params or {},
            tx_from=tx_from,
        )

    return _make


@pytest.fixture
def create_pair(engine, addr, make_event):
    """Create the WXPL/USDT volatile pair through the factory."""

    def _create(token0=None, token1=None, pair=None, stable=False):
        event = make_event(addr.factory, "PairCreated", {
            "token0": token0 or addr.wxpl,
            "token1": token1 or addr.usdt,
            "stable": stable,
            "pair": pair or addr.pair,
        })
        return engine.process(event)

    return _create


@pytest.fixture
def create_gauge(engine, addr, make_event):
    """Create the gauge and both bribes for a pool through the voter."""

    def _create(pool=None):
        event = make_event(addr.voter, "GaugeCreated", {
            "gauge": addr.gauge,
            "creator": addr.alice,
            "internal_bribe": addr.internal_bribe,
            "external_bribe": addr.external_bribe,
            "pool": pool or addr.pair,
        })
        return engine.process(event)

    return _create
