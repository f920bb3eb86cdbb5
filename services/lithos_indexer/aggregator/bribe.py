"""
Bribe Voting Ledger

Per-bribe voting power and per-epoch vote weight snapshots, plus the bribe's
reward-token registry.

Stakes and withdrawals apply to the *next* epoch boundary, read from the bribe
(`getNextEpochStart`) or computed as `epoch_start(ts) + WEEK` when the read
reverts. Withdrawals floor every counter at zero.

Rewards are bucketed by the reward's declared `startTimestamp`, not the
transaction time.
"""

import logging

from ..core.constants import WEEK
from ..core.entities import (
    Bribe,
    BribeEpochReward,
    BribeEpochStake,
    BribeEpochVeStake,
    BribeRewardAdded,
    BribeRewardPaid,
    BribeRewardToken,
    BribeStake,
    BribeWithdraw,
    Pair,
    PairBribeEpochReward,
)
from ..core.epoch import epoch_start
from ..core.types import BribeType, ChainEvent, SourceKind
from .base import BaseAggregator

logger = logging.getLogger(__name__)


def reward_token_id(bribe: str, token: str) -> str:
    return f"{bribe}-{token}"


def ve_stake_id(bribe: str, epoch: int, ve_nft: str) -> str:
    return f"{bribe}-{epoch}-{ve_nft}"


class BribeAggregator(BaseAggregator):
    """Handles stake, withdraw, reward and ownership events on bribes."""

    SOURCE_KIND = SourceKind.BRIBE
    EVENTS = {
        "Staked": "handle_staked",
        "Withdrawn": "handle_withdrawn",
        "RewardAdded": "handle_reward_added",
        "RewardPaid": "handle_reward_paid",
        "SetOwner": "handle_set_owner",
    }

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _load_bribe(self, event: ChainEvent):
        bribe = self.store.load(Bribe, event.contract_address)
        if bribe is None:
            logger.debug(f"{event.event_name} for unknown bribe {event.contract_address}")
        return bribe

    def next_epoch(self, bribe: Bribe, timestamp: int) -> int:
        """Epoch a stake or withdrawal at `timestamp` applies to."""
        fallback = epoch_start(timestamp) + WEEK
        value = self.reader.try_read(bribe.id, "getNextEpochStart", default=fallback)
        try:
            return int(value)
        except (TypeError, ValueError):
            return fallback

    def _epoch_stake(self, bribe: Bribe, epoch: int, event: ChainEvent) -> BribeEpochStake:
        stake_id = BribeEpochStake.bucket_id(bribe.id, epoch)
        stake = self.store.ensure_exists(
            BribeEpochStake,
            stake_id,
            lambda: BribeEpochStake(id=stake_id, bribe=bribe.id, **BribeEpochStake.epoch_fields(epoch)),
        )
        stake.touch(event.block_timestamp, event.block_number)
        return stake

    def _ve_stake(
        self, bribe: Bribe, epoch_stake: BribeEpochStake, ve_nft: str, event: ChainEvent
    ) -> BribeEpochVeStake:
        epoch = epoch_stake.epoch
        stake_id = ve_stake_id(bribe.id, epoch, ve_nft)
        stake = self.store.ensure_exists(
            BribeEpochVeStake,
            stake_id,
            lambda: BribeEpochVeStake(
                id=stake_id,
                bribe=bribe.id,
                epoch_stake=epoch_stake.id,
                ve_nft=ve_nft,
                **BribeEpochVeStake.epoch_fields(epoch),
            ),
        )
        stake.touch(event.block_timestamp, event.block_number)
        return stake

    def _reward_token(self, bribe: Bribe, token_address: str) -> BribeRewardToken:
        """Load or register a reward token; registering bumps the bribe's count."""
        token = self.tokens.get_or_create(token_address)
        entry_id = reward_token_id(bribe.id, token.id)
        entry = self.store.load(BribeRewardToken, entry_id)
        if entry is None:
            entry = BribeRewardToken(id=entry_id, bribe=bribe.id, token=token.id)
            bribe.reward_token_count += 1
        return entry

    # -------------------------------------------------------------------------
    # Voting power
    # -------------------------------------------------------------------------

    def handle_staked(self, event: ChainEvent) -> bool:
        bribe = self._load_bribe(event)
        if bribe is None:
            return False

        ve_nft = str(event.int_param("tokenId"))
        amount = event.int_param("amount")
        epoch = self.next_epoch(bribe, event.block_timestamp)

        epoch_stake = self._epoch_stake(bribe, epoch, event)
        epoch_stake.total_weight += amount
        self.store.upsert(epoch_stake)

        ve_stake = self._ve_stake(bribe, epoch_stake, ve_nft, event)
        ve_stake.weight += amount
        self.store.upsert(ve_stake)

        bribe.total_voting_power += amount
        self.store.upsert(bribe)

        self.store.upsert(BribeStake(
            id=event.event_id,
            transaction=event.tx_hash,
            timestamp=event.block_timestamp,
            block_number=event.block_number,
            log_index=event.log_index,
            bribe=bribe.id,
            ve_nft=ve_nft,
            amount=amount,
            epoch=epoch,
            epoch_stake=epoch_stake.id,
        ))
        return True

    def handle_withdrawn(self, event: ChainEvent) -> bool:
        bribe = self._load_bribe(event)
        if bribe is None:
            return False

        ve_nft = str(event.int_param("tokenId"))
        amount = event.int_param("amount")
        epoch = self.next_epoch(bribe, event.block_timestamp)

        bribe.total_voting_power = self.clamp_subtract(
            bribe.total_voting_power, amount, "bribe", bribe.id
        )
        self.store.upsert(bribe)

        epoch_stake = self._epoch_stake(bribe, epoch, event)
        epoch_stake.total_weight = self.clamp_subtract(
            epoch_stake.total_weight, amount, "bribe_epoch_stake", epoch_stake.id
        )
        self.store.upsert(epoch_stake)

        ve_stake = self._ve_stake(bribe, epoch_stake, ve_nft, event)
        ve_stake.weight = self.clamp_subtract(
            ve_stake.weight, amount, "bribe_epoch_ve_stake", ve_stake.id
        )
        self.store.upsert(ve_stake)

        self.store.upsert(BribeWithdraw(
            id=event.event_id,
            transaction=event.tx_hash,
            timestamp=event.block_timestamp,
            block_number=event.block_number,
            log_index=event.log_index,
            bribe=bribe.id,
            ve_nft=ve_nft,
            amount=amount,
            epoch=epoch,
        ))
        return True

    # -------------------------------------------------------------------------
    # Rewards
    # -------------------------------------------------------------------------

    def handle_reward_added(self, event: ChainEvent) -> bool:
        bribe = self._load_bribe(event)
        if bribe is None:
            return False

        token_address = event.address_param("rewardToken")
        reward = event.int_param("reward")
        start_timestamp = event.int_param("startTimestamp", event.block_timestamp)
        epoch = epoch_start(start_timestamp)

        entry = self._reward_token(bribe, token_address)
        entry.total_rewards += reward
        entry.epoch_count += 1
        self.store.upsert(entry)
        self.store.upsert(bribe)

        bucket_id = BribeEpochReward.bucket_id(entry.id, epoch)
        bucket = self.store.ensure_exists(
            BribeEpochReward,
            bucket_id,
            lambda: BribeEpochReward(
                id=bucket_id,
                bribe=bribe.id,
                reward_token=entry.id,
                **BribeEpochReward.epoch_fields(epoch),
            ),
        )
        bucket.reward += reward
        bucket.touch(event.block_timestamp, event.block_number)
        self.store.upsert(bucket)

        if bribe.pair is not None and self.store.exists(Pair, bribe.pair):
            self._add_pair_reward(bribe, entry.token, epoch, reward, event)

        self.store.upsert(BribeRewardAdded(
            id=event.event_id,
            transaction=event.tx_hash,
            timestamp=event.block_timestamp,
            block_number=event.block_number,
            log_index=event.log_index,
            bribe=bribe.id,
            reward_token=entry.id,
            reward_token_address=entry.token,
            reward=reward,
            start_timestamp=start_timestamp,
            epoch=epoch,
        ))
        return True

    def _add_pair_reward(self, bribe: Bribe, token: str, epoch: int, reward: int, event: ChainEvent) -> None:
        pair_id = bribe.pair
        record_id = f"{pair_id}-{epoch}-{token}"
        record = self.store.ensure_exists(
            PairBribeEpochReward,
            record_id,
            lambda: PairBribeEpochReward(
                id=record_id,
                pair=pair_id,
                bribe=bribe.id,
                reward_token=token,
                **PairBribeEpochReward.epoch_fields(epoch),
            ),
        )
        record.gauge = bribe.gauge or record.gauge
        record.is_internal = bribe.type == BribeType.INTERNAL
        record.reward += reward
        record.touch(event.block_timestamp, event.block_number)
        self.store.upsert(record)

    def handle_reward_paid(self, event: ChainEvent) -> bool:
        bribe = self._load_bribe(event)
        if bribe is None:
            return False

        user = self.ensure_user(event.address_param("user"))
        self.store.upsert(BribeRewardPaid(
            id=event.event_id,
            transaction=event.tx_hash,
            timestamp=event.block_timestamp,
            block_number=event.block_number,
            log_index=event.log_index,
            bribe=bribe.id,
            user=user.id,
            reward_token_address=event.address_param("rewardsToken"),
            reward=event.int_param("reward"),
        ))
        return True

    def handle_set_owner(self, event: ChainEvent) -> bool:
        bribe = self._load_bribe(event)
        if bribe is None:
            return False

        owner = self.ensure_user(event.address_param("_owner"))
        bribe.owner = owner.id
        self.store.upsert(bribe)
        return True
