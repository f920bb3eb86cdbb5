"""
Unit tests for the factory, pair and fee split aggregators.

The WXPL/USDT pair prices WXPL at 500 USDT once synced:
reserves 10 WXPL / 5000 USDT.
"""

from decimal import Decimal

import pytest

from services.lithos_indexer.aggregator.engine import EventAggregator
from services.lithos_indexer.core.constants import BUNDLE_ID, FACTORY_ID, ZERO_ADDRESS
from services.lithos_indexer.core.entities import (
    Bundle,
    CLPool,
    CLPoolEpochData,
    Factory,
    LiquidityPosition,
    Mint,
    Pair,
    PairEpochData,
    Swap,
    Token,
    User,
)
from services.lithos_indexer.core.epoch import epoch_start
from services.lithos_indexer.core.pricing import convert_token_to_decimal
from services.lithos_indexer.core.types import SkipReason, SourceKind

T0 = 1_700_000_000

WAD = 10 ** 18
USDT_UNIT = 10 ** 6


@pytest.fixture
def synced_pair(engine, addr, make_event, create_pair):
    """WXPL/USDT pair synced at 10 WXPL / 5000 USDT."""
    create_pair()
    engine.process(make_event(addr.pair, "Sync", {
        "reserve0": 10 * WAD,
        "reserve1": 5000 * USDT_UNIT,
    }))
    return engine


class TestPairCreation:
    """Tests for PairCreated on the factory."""

    def test_creates_pair_tokens_and_source(self, engine, store, addr, create_pair):
        """PairCreated should create both tokens, the pair and its data source."""
        result = create_pair()

        assert result.applied
        pair = store.load(Pair, addr.pair)
        assert pair.token0 == addr.wxpl
        assert pair.token1 == addr.usdt
        assert pair.stable is False

        usdt = store.load(Token, addr.usdt)
        assert usdt.symbol == "USDT"
        assert usdt.decimals == 6

        assert store.load(Factory, FACTORY_ID).pair_count == 1
        assert engine.sources.kind_of(addr.pair) == SourceKind.PAIR

    def test_duplicate_creation_is_noop(self, store, create_pair):
        """A repeated PairCreated should not bump the pair count."""
        create_pair()
        create_pair()

        assert store.load(Factory, FACTORY_ID).pair_count == 1

    def test_unknown_token_metadata_falls_back(self, store, addr, create_pair):
        """Tokens whose reads revert should get the default metadata."""
        unknown = "0x" + "9f" * 20
        create_pair(token0=unknown)

        token = store.load(Token, unknown)
        assert token.symbol == "UNKNOWN"
        assert token.name == "Unknown Token"
        assert token.decimals == 18


class TestSync:
    """Tests for Sync on pairs."""

    def test_reserves_and_prices(self, synced_pair, store, addr):
        """Sync should normalize reserves and derive both prices."""
        pair = store.load(Pair, addr.pair)

        assert pair.reserve0 == Decimal(10)
        assert pair.reserve1 == Decimal(5000)
        assert pair.token0_price == Decimal(500)
        assert pair.token1_price == Decimal("0.002")

    def test_reference_prices(self, synced_pair, store, addr):
        """A native/stable pair should set the native USD price."""
        bundle = store.load(Bundle, BUNDLE_ID)
        wxpl = store.load(Token, addr.wxpl)
        usdt = store.load(Token, addr.usdt)

        assert bundle.eth_price == Decimal(500)
        assert wxpl.derived_eth == Decimal(1)
        assert usdt.derived_eth == Decimal("0.002")

    def test_tracked_liquidity(self, synced_pair, store, addr):
        """Reserve USD should sum both priced legs."""
        pair = store.load(Pair, addr.pair)
        assert pair.reserve_usd == Decimal(10000)
        assert store.load(Factory, FACTORY_ID).total_liquidity_usd == Decimal(10000)

    def test_token_liquidity_tracks_delta(self, synced_pair, store, addr, make_event):
        """Token liquidity should move by the reserve delta, not accumulate reserves."""
        synced_pair.process(make_event(addr.pair, "Sync", {
            "reserve0": 12 * WAD,
            "reserve1": 6000 * USDT_UNIT,
        }))

        assert store.load(Token, addr.wxpl).total_liquidity == Decimal(12)
        assert store.load(Token, addr.usdt).total_liquidity == Decimal(6000)

    def test_zero_reserve_keeps_prior_price(self, synced_pair, store, addr, make_event):
        """A zero denominator should leave the previous price in place."""
        synced_pair.process(make_event(addr.pair, "Sync", {
            "reserve0": 0,
            "reserve1": 5000 * USDT_UNIT,
        }))

        pair = store.load(Pair, addr.pair)
        assert pair.token0_price == Decimal(500)
        assert pair.token1_price == Decimal(0)

    def test_sync_for_unknown_pair_is_unrouted(self, engine, make_event):
        """Events from an unregistered address should be skipped."""
        result = engine.process(make_event("0x" + "77" * 20, "Sync", {"reserve0": 1, "reserve1": 1}))

        assert not result.applied
        assert result.skip_reason == SkipReason.UNROUTED


class TestSwap:
    """Tests for Swap on pairs."""

    def test_volume_and_user(self, synced_pair, store, addr, make_event):
        """Swap volume should be valued by averaging both priced legs."""
        result = synced_pair.process(make_event(addr.pair, "Swap", {
            "sender": addr.alice,
            "to": addr.alice,
            "amount0In": 1 * WAD,
            "amount1In": 0,
            "amount0Out": 0,
            "amount1Out": 500 * USDT_UNIT,
        }, tx_from=addr.alice))

        assert result.applied
        pair = store.load(Pair, addr.pair)
        assert pair.volume_token0 == Decimal(1)
        assert pair.volume_token1 == Decimal(500)
        assert pair.volume_usd == Decimal(500)
        assert pair.tx_count == 1

        bucket = store.load(PairEpochData, PairEpochData.bucket_id(addr.pair, epoch_start(T0)))
        assert bucket.volume_usd == Decimal(500)
        assert bucket.tx_count == 1

        assert store.load(User, addr.alice).usd_swapped == Decimal(500)
        assert store.load(Factory, FACTORY_ID).total_volume_usd == Decimal(500)

        swaps = list(store.all(Swap))
        assert len(swaps) == 1
        assert swaps[0].token0_price_usd == Decimal(500)


class TestLiquidity:
    """Tests for Mint, Burn, Transfer and Claim on pairs."""

    def test_mint_reads_total_supply(self, synced_pair, store, reader, addr, make_event):
        """Mint liquidity should be the LP total supply delta."""
        reader.record(addr.pair, "totalSupply", 70 * WAD)
        synced_pair.process(make_event(addr.pair, "Mint", {
            "sender": addr.alice,
            "amount0": 10 * WAD,
            "amount1": 5000 * USDT_UNIT,
        }))

        pair = store.load(Pair, addr.pair)
        assert pair.total_supply == Decimal(70)
        mint = list(store.all(Mint))[0]
        assert mint.liquidity == Decimal(70)
        assert mint.amount_usd == Decimal(5000)

    def test_burn_with_reverted_supply_keeps_supply(self, synced_pair, store, reader, addr, make_event):
        """A reverted totalSupply read should keep the previous supply."""
        reader.record(addr.pair, "totalSupply", 70 * WAD)
        synced_pair.process(make_event(addr.pair, "Mint", {"amount0": 1, "amount1": 1}))
        reader.forget(addr.pair, "totalSupply")

        synced_pair.process(make_event(addr.pair, "Burn", {"amount0": 1, "amount1": 1, "to": addr.alice}))

        pair = store.load(Pair, addr.pair)
        assert pair.total_supply == Decimal(70)
        assert pair.tx_count == 2

    def test_lp_transfers(self, synced_pair, store, addr, make_event):
        """LP transfers should move balances and floor at zero."""
        position_alice = f"{addr.alice}-{addr.pair}"
        position_bob = f"{addr.bob}-{addr.pair}"

        synced_pair.process(make_event(addr.pair, "Transfer", {
            "from": ZERO_ADDRESS, "to": addr.alice, "amount": 5 * WAD,
        }))
        synced_pair.process(make_event(addr.pair, "Transfer", {
            "from": addr.alice, "to": addr.bob, "amount": 2 * WAD,
        }))

        assert store.load(LiquidityPosition, position_alice).liquidity_token_balance == Decimal(3)
        assert store.load(LiquidityPosition, position_bob).liquidity_token_balance == Decimal(2)

        synced_pair.process(make_event(addr.pair, "Transfer", {
            "from": addr.bob, "to": addr.pair, "amount": 9 * WAD,
        }))
        assert store.load(LiquidityPosition, position_bob).liquidity_token_balance == Decimal(0)
        assert store.load(LiquidityPosition, f"{addr.pair}-{addr.pair}") is None

    def test_claim_resets_claimables(self, synced_pair, store, addr, make_event):
        """Claim should zero the holder's claimable fees."""
        position_id = f"{addr.alice}-{addr.pair}"
        store.upsert(LiquidityPosition(
            id=position_id, user=addr.alice, pair=addr.pair,
            claimable0=Decimal(3), claimable1=Decimal(4),
        ))

        synced_pair.process(make_event(addr.pair, "Claim", {"sender": addr.alice}))

        position = store.load(LiquidityPosition, position_id)
        assert position.claimable0 == Decimal(0)
        assert position.claimable1 == Decimal(0)


class TestFeeSplitAggregator:
    """Tests for Fees on pairs."""

    def test_default_policy(self, synced_pair, store, addr, make_event):
        """Reverted factory reads should fall back to 1200 / 3000 bps."""
        synced_pair.process(make_event(addr.pair, "Fees", {"amount0": 100_000, "amount1": 0}))

        pair = store.load(Pair, addr.pair)
        assert pair.referral_fees_token0 == convert_token_to_decimal(12_000, 18)
        assert pair.staking_fees_token0 == convert_token_to_decimal(26_400, 18)
        assert pair.fees_token0 == convert_token_to_decimal(61_600, 18)

        bucket = store.load(PairEpochData, PairEpochData.bucket_id(addr.pair, epoch_start(T0)))
        assert bucket.referral_fees_token0 == pair.referral_fees_token0
        assert bucket.fees_token0 == pair.fees_token0

    def test_policy_from_factory_reads(self, store, reader, config, addr, make_event):
        """Fee policy read from the factory should drive the split."""
        reader.record(addr.factory, "stakingNFTFee", 0)
        reader.record(addr.factory, "MAX_REFERRAL_FEE", 1200)
        engine = EventAggregator(store, reader, config)
        engine.initialize()

        engine.process(make_event(addr.factory, "PairCreated", {
            "token0": addr.wxpl, "token1": addr.usdt, "stable": False, "pair": addr.pair,
        }))
        engine.process(make_event(addr.pair, "Fees", {"amount0": 0, "amount1": 1_000_000}))

        pair = store.load(Pair, addr.pair)
        assert pair.referral_fees_token1 == Decimal("0.12")
        assert pair.staking_fees_token1 == Decimal(0)
        assert pair.fees_token1 == Decimal("0.88")
        assert pair.referral_fees_token1 + pair.staking_fees_token1 + pair.fees_token1 == Decimal(1)

    def test_usd_per_share(self, synced_pair, store, addr, make_event):
        """Each share should be valued as the average of its two priced legs."""
        synced_pair.process(make_event(addr.pair, "Fees", {"amount0": WAD, "amount1": 500 * USDT_UNIT}))

        pair = store.load(Pair, addr.pair)
        bucket = store.load(PairEpochData, PairEpochData.bucket_id(addr.pair, epoch_start(T0)))
        for target in (pair, bucket):
            assert target.referral_fees_usd == Decimal(60)
            assert target.staking_fees_usd == Decimal(132)
            assert target.fees_usd == Decimal(308)
            assert target.referral_fees_token1 == Decimal(60)

    def test_usd_one_leg_halved(self, synced_pair, store, addr, make_event):
        """A fee on one token only still averages in the zero amount on the other."""
        synced_pair.process(make_event(addr.pair, "Fees", {"amount0": WAD, "amount1": 0}))

        pair = store.load(Pair, addr.pair)
        assert pair.referral_fees_usd == Decimal(30)
        assert pair.staking_fees_usd == Decimal(66)
        assert pair.fees_usd == Decimal(154)

    def test_usd_unpriced_pair(self, engine, store, addr, make_event, create_pair):
        """Before any Sync neither token has a price, so USD stays zero."""
        create_pair()
        engine.process(make_event(addr.pair, "Fees", {"amount0": WAD, "amount1": 500 * USDT_UNIT}))

        pair = store.load(Pair, addr.pair)
        assert pair.fees_token0 == Decimal("0.616")
        assert pair.fees_usd == Decimal(0)

    def test_missing_factory_skips(self, synced_pair, store, addr, make_event):
        """Without the Factory row there is no fee policy and nothing is written."""
        store.remove(Factory, FACTORY_ID)

        result = synced_pair.process(make_event(addr.pair, "Fees", {"amount0": WAD, "amount1": 500 * USDT_UNIT}))

        assert not result.applied
        assert result.skip_reason == SkipReason.MISSING_ENTITY
        pair = store.load(Pair, addr.pair)
        assert pair.fees_token0 == Decimal(0)
        assert pair.fees_usd == Decimal(0)
        bucket = store.load(PairEpochData, PairEpochData.bucket_id(addr.pair, epoch_start(T0)))
        assert bucket.fees_token0 == Decimal(0)
        assert bucket.referral_fees_usd == Decimal(0)

    def test_missing_token_skips(self, synced_pair, store, addr, make_event):
        store.remove(Token, addr.usdt)

        result = synced_pair.process(make_event(addr.pair, "Fees", {"amount0": WAD, "amount1": 0}))

        assert result.skip_reason == SkipReason.MISSING_ENTITY
        assert store.load(Pair, addr.pair).referral_fees_token0 == Decimal(0)


class TestCLPool:
    """Tests for concentrated liquidity pools."""

    def test_pool_lifecycle(self, engine, store, reader, addr, make_event):
        """Pool creation, initialize and swap should update state and volume."""
        engine.process(make_event(addr.cl_factory, "Pool", {
            "token0": addr.wxpl, "token1": addr.lith, "pool": addr.pool,
        }))
        assert engine.sources.kind_of(addr.pool) == SourceKind.CL_POOL

        engine.process(make_event(addr.pool, "Initialize", {"sqrtPriceX96": 2 ** 96, "tick": 0}))
        pool = store.load(CLPool, addr.pool)
        assert pool.token0_price == Decimal(1)

        engine.process(make_event(addr.pool, "Swap", {
            "sender": addr.alice,
            "recipient": addr.alice,
            "amount0": 2 * WAD,
            "amount1": -2 * WAD,
            "sqrtPriceX96": 2 ** 96,
            "liquidity": 1000,
            "tick": 0,
        }))

        pool = store.load(CLPool, addr.pool)
        assert pool.volume_token0 == Decimal(2)
        assert pool.volume_token1 == Decimal(2)
        assert pool.liquidity == 1000

        bucket = store.load(CLPoolEpochData, CLPoolEpochData.bucket_id(addr.pool, epoch_start(T0)))
        assert bucket.volume_token1 == Decimal(2)
