"""
Unit tests for gauge creation on the voter and LP staking on gauges.
"""

import pytest

from services.lithos_indexer.aggregator.engine import EventAggregator
from services.lithos_indexer.core.entities import (
    Bribe,
    Gauge,
    GaugeEpochData,
    GaugePosition,
    Pair,
    PoolGauge,
    Voter,
)
from services.lithos_indexer.core.epoch import epoch_start
from services.lithos_indexer.core.metrics import REGISTRY
from services.lithos_indexer.core.types import BribeType, ProtocolConfig, SkipReason, SourceKind

T0 = 1_700_000_000
WAD = 10 ** 18


@pytest.fixture
def gauge(engine, create_pair, create_gauge):
    create_pair()
    create_gauge()
    return engine


def deposit(engine, make_event, addr, amount, user=None, name="Deposit"):
    return engine.process(make_event(addr.gauge, name, {"user": user or addr.alice, "amount": amount}))


class TestGaugeCreated:
    """Tests for GaugeCreated on the voter."""

    def test_gauge_reads_chain_state(self, engine, store, reader, addr, create_pair, create_gauge):
        """Gauge fields should come from chain reads, with fallbacks."""
        reader.record(addr.gauge, "rewardToken", addr.lith)
        reader.record(addr.gauge, "rewardRate", 5 * WAD)
        reader.record(addr.gauge, "periodFinish", T0 + 86_400)
        create_pair()

        result = create_gauge()

        assert result.applied
        gauge = store.load(Gauge, addr.gauge)
        assert gauge.pool == addr.pair
        assert gauge.pair == addr.pair
        assert gauge.reward_token == addr.lith
        assert gauge.reward_rate == 5 * WAD
        assert gauge.period_finish == T0 + 86_400
        # reverted reads
        assert gauge.is_for_pair is True
        assert gauge.emergency is False
        assert gauge.total_staked == 0
        assert gauge.stake_token == addr.pair

    def test_links_and_sources(self, gauge, store, addr):
        """The pair, the pool link and all three data sources should be registered."""
        assert store.load(Pair, addr.pair).gauge == addr.gauge
        assert store.load(PoolGauge, addr.pair).gauge == addr.gauge

        assert gauge.sources.kind_of(addr.gauge) == SourceKind.GAUGE
        assert gauge.sources.kind_of(addr.internal_bribe) == SourceKind.BRIBE
        assert gauge.sources.kind_of(addr.external_bribe) == SourceKind.BRIBE

        voter = store.load(Voter, addr.voter)
        assert voter.total_gauges_created == 1
        assert voter.total_pools_with_gauges == 1

    def test_bribes_read_from_gauge_when_missing(self, engine, store, reader, addr, make_event, create_pair):
        """Zero bribe addresses in the event should fall back to gauge reads."""
        reader.record(addr.gauge, "internal_bribe", addr.internal_bribe)
        reader.record(addr.gauge, "external_bribe", addr.external_bribe.upper().replace("0X", "0x"))
        create_pair()

        engine.process(make_event(addr.voter, "GaugeCreated", {"gauge": addr.gauge, "pool": addr.pair}))

        gauge = store.load(Gauge, addr.gauge)
        assert gauge.internal_bribe == addr.internal_bribe
        assert gauge.external_bribe == addr.external_bribe
        assert store.load(Bribe, addr.external_bribe).type == BribeType.EXTERNAL

    def test_gauge_for_non_pair_pool(self, engine, store, addr, create_gauge):
        """A gauge on an address that is not a known pair should have no pair link."""
        create_gauge(pool=addr.pool)

        gauge = store.load(Gauge, addr.gauge)
        assert gauge.pool == addr.pool
        assert gauge.pair is None

    def test_uninitialized_voter_skips(self, store, reader, addr, make_event):
        """GaugeCreated from a voter without a Voter row is a missing entity."""
        engine = EventAggregator(store, reader, ProtocolConfig())
        engine.initialize()
        engine.sources.register(addr.voter, SourceKind.VOTER)

        result = engine.process(make_event(addr.voter, "GaugeCreated", {
            "gauge": addr.gauge, "pool": addr.pair,
        }))
        assert result.skip_reason == SkipReason.MISSING_ENTITY


class TestGaugeEvents:
    """Tests for staking, rewards and emergency flags."""

    def test_deposit_and_withdraw(self, gauge, store, addr, make_event):
        deposit(gauge, make_event, addr, 10 * WAD)
        deposit(gauge, make_event, addr, 4 * WAD, name="Withdraw")

        g = store.load(Gauge, addr.gauge)
        assert g.total_staked == 6 * WAD

        position = store.load(GaugePosition, f"{addr.gauge}-{addr.alice}")
        assert position.staked_balance == 6 * WAD
        assert position.total_deposited == 10 * WAD
        assert position.total_withdrawn == 4 * WAD
        assert position.last_deposit_time == T0

        bucket = store.load(GaugeEpochData, GaugeEpochData.bucket_id(addr.gauge, epoch_start(T0)))
        assert bucket.deposits == 10 * WAD
        assert bucket.withdrawals == 4 * WAD

    def test_withdraw_clamps(self, gauge, store, addr, make_event):
        """Withdrawing more than deposited should floor both balances at zero."""
        before = REGISTRY.get_sample_value("lithos_negative_clamps_total", {"entity": "gauge"}) or 0

        deposit(gauge, make_event, addr, 1, user=addr.bob)
        deposit(gauge, make_event, addr, 5, user=addr.bob, name="Withdraw")

        assert store.load(Gauge, addr.gauge).total_staked == 0
        assert store.load(GaugePosition, f"{addr.gauge}-{addr.bob}").staked_balance == 0
        after = REGISTRY.get_sample_value("lithos_negative_clamps_total", {"entity": "gauge"})
        assert after == before + 1

    def test_reward_added_refreshes_rate(self, gauge, store, reader, addr, make_event):
        reader.record(addr.gauge, "rewardRate", 3)
        reader.record(addr.gauge, "periodFinish", T0 + 100)

        gauge.process(make_event(addr.gauge, "RewardAdded", {"reward": 1000}))

        g = store.load(Gauge, addr.gauge)
        assert g.reward_rate == 3
        assert g.period_finish == T0 + 100
        assert g.total_rewards_distributed == 1000
        assert g.last_update_time == T0
        bucket = store.load(GaugeEpochData, GaugeEpochData.bucket_id(addr.gauge, epoch_start(T0)))
        assert bucket.rewards == 1000

    def test_harvest(self, gauge, store, addr, make_event):
        gauge.process(make_event(addr.gauge, "Harvest", {"user": addr.alice, "reward": 7}))

        assert store.load(Gauge, addr.gauge).total_rewards_claimed == 7
        assert store.load(GaugePosition, f"{addr.gauge}-{addr.alice}").total_rewards_claimed == 7

    def test_claim_fees(self, gauge, store, addr, make_event):
        gauge.process(make_event(addr.gauge, "ClaimFees", {"claimed0": 3, "claimed1": 4}))
        gauge.process(make_event(addr.gauge, "ClaimFees", {"claimed0": 1, "claimed1": 0}))

        g = store.load(Gauge, addr.gauge)
        assert (g.fees_claimed0, g.fees_claimed1) == (4, 4)

    def test_emergency_toggle(self, gauge, store, addr, make_event):
        gauge.process(make_event(addr.gauge, "EmergencyActivated"))
        assert store.load(Gauge, addr.gauge).emergency is True

        gauge.process(make_event(addr.gauge, "EmergencyDeactivated"))
        assert store.load(Gauge, addr.gauge).emergency is False

    def test_unhandled_gauge_event(self, gauge, addr, make_event):
        result = gauge.process(make_event(addr.gauge, "Approval"))
        assert result.skip_reason == SkipReason.UNHANDLED
