"""
Gauge Aggregator

LP staking and emission events on gauges. Gauges are created by the voter's
GaugeCreated event; events from a gauge that was never created are skipped.
"""

import logging

from ..core.entities import Gauge, GaugeEpochData, GaugePosition
from ..core.epoch import epoch_start
from ..core.types import ChainEvent, SourceKind
from .base import BaseAggregator

logger = logging.getLogger(__name__)


def gauge_position_id(gauge: str, user: str) -> str:
    return f"{gauge}-{user}"


class GaugeAggregator(BaseAggregator):
    """Handles reward, staking, harvest and emergency events on gauges."""

    SOURCE_KIND = SourceKind.GAUGE
    EVENTS = {
        "RewardAdded": "handle_reward_added",
        "Deposit": "handle_deposit",
        "Withdraw": "handle_withdraw",
        "Harvest": "handle_harvest",
        "ClaimFees": "handle_claim_fees",
        "EmergencyActivated": "handle_emergency_activated",
        "EmergencyDeactivated": "handle_emergency_deactivated",
    }

    def _epoch_bucket(self, gauge: Gauge, event: ChainEvent) -> GaugeEpochData:
        epoch = epoch_start(event.block_timestamp)
        bucket_id = GaugeEpochData.bucket_id(gauge.id, epoch)
        bucket = self.store.ensure_exists(
            GaugeEpochData,
            bucket_id,
            lambda: GaugeEpochData(id=bucket_id, gauge=gauge.id, **GaugeEpochData.epoch_fields(epoch)),
        )
        bucket.touch(event.block_timestamp, event.block_number)
        return bucket

    def _position(self, gauge: Gauge, user: str) -> GaugePosition:
        self.ensure_user(user)
        position_id = gauge_position_id(gauge.id, user)
        return self.store.ensure_exists(
            GaugePosition,
            position_id,
            lambda: GaugePosition(id=position_id, gauge=gauge.id, user=user),
        )

    def _load_gauge(self, event: ChainEvent):
        gauge = self.store.load(Gauge, event.contract_address)
        if gauge is None:
            logger.debug(f"{event.event_name} for unknown gauge {event.contract_address}")
        return gauge

    def handle_reward_added(self, event: ChainEvent) -> bool:
        gauge = self._load_gauge(event)
        if gauge is None:
            return False

        reward = event.int_param("reward")
        gauge.reward_rate = int(self.reader.try_read(gauge.id, "rewardRate", default=gauge.reward_rate))
        gauge.period_finish = int(self.reader.try_read(gauge.id, "periodFinish", default=gauge.period_finish))
        gauge.total_rewards_distributed += reward
        gauge.last_update_time = event.block_timestamp

        bucket = self._epoch_bucket(gauge, event)
        bucket.rewards += reward

        self.store.upsert(bucket)
        self.store.upsert(gauge)
        return True

    def handle_deposit(self, event: ChainEvent) -> bool:
        gauge = self._load_gauge(event)
        if gauge is None:
            return False

        amount = event.int_param("amount")
        position = self._position(gauge, event.address_param("user"))
        position.staked_balance += amount
        position.total_deposited += amount
        position.last_deposit_time = event.block_timestamp

        gauge.total_staked += amount

        bucket = self._epoch_bucket(gauge, event)
        bucket.deposits += amount

        self.store.upsert(position)
        self.store.upsert(bucket)
        self.store.upsert(gauge)
        return True

    def handle_withdraw(self, event: ChainEvent) -> bool:
        gauge = self._load_gauge(event)
        if gauge is None:
            return False

        amount = event.int_param("amount")
        position = self._position(gauge, event.address_param("user"))
        position.staked_balance = self.clamp_subtract(
            position.staked_balance, amount, "gauge_position", position.id
        )
        position.total_withdrawn += amount
        position.last_withdraw_time = event.block_timestamp

        gauge.total_staked = self.clamp_subtract(gauge.total_staked, amount, "gauge", gauge.id)

        bucket = self._epoch_bucket(gauge, event)
        bucket.withdrawals += amount

        self.store.upsert(position)
        self.store.upsert(bucket)
        self.store.upsert(gauge)
        return True

    def handle_harvest(self, event: ChainEvent) -> bool:
        gauge = self._load_gauge(event)
        if gauge is None:
            return False

        reward = event.int_param("reward")
        position = self._position(gauge, event.address_param("user"))
        position.total_rewards_claimed += reward
        position.last_harvest_time = event.block_timestamp
        gauge.total_rewards_claimed += reward

        self.store.upsert(position)
        self.store.upsert(gauge)
        return True

    def handle_claim_fees(self, event: ChainEvent) -> bool:
        gauge = self._load_gauge(event)
        if gauge is None:
            return False

        gauge.fees_claimed0 += event.int_param("claimed0")
        gauge.fees_claimed1 += event.int_param("claimed1")
        self.store.upsert(gauge)
        return True

    def _set_emergency(self, event: ChainEvent, active: bool) -> bool:
        gauge = self._load_gauge(event)
        if gauge is None:
            return False
        gauge.emergency = active
        self.store.upsert(gauge)
        logger.warning(f"Gauge {gauge.id} emergency {'activated' if active else 'deactivated'}")
        return True

    def handle_emergency_activated(self, event: ChainEvent) -> bool:
        return self._set_emergency(event, True)

    def handle_emergency_deactivated(self, event: ChainEvent) -> bool:
        return self._set_emergency(event, False)
