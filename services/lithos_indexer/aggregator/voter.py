"""
Voter Aggregator

Gauge creation and vote synchronization on the voter contract.

GaugeCreated materializes the gauge and both of its bribes and registers them
as data sources.

Voted / Abstained trigger a full resync of the veNFT's votes for the current
epoch from the voter's read interface. Gauge epoch totals are overwritten with
the voter's authoritative `weights(pool)`, never incremented, so repeated or
changed votes within an epoch cannot double count.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..connectors.base import REVERTED
from ..core.constants import ZERO_ADDRESS
from ..core.entities import (
    Bribe,
    Gauge,
    GaugeEpochVote,
    Pair,
    PoolGauge,
    TokenEpochVoteSet,
    TokenGaugeVote,
    VoteCast,
    Voter,
)
from ..core.epoch import epoch_start
from ..core.types import BribeType, ChainEvent, SkipReason, SourceKind, VoteAction
from .base import BaseAggregator, HandlerResult

logger = logging.getLogger(__name__)


class VoteReadReverted(Exception):
    """The voter's vote enumeration could not be read."""


@dataclass
class VoteSyncResult:
    """Outcome of one vote resync."""

    token_id: str
    epoch: int
    current: dict[str, int] = field(default_factory=dict)
    removed: list[str] = field(default_factory=list)
    gauge_totals: dict[str, int] = field(default_factory=dict)


class VoteSynchronizer:
    """
    Rebuilds a veNFT's per-pool votes for an epoch from the voter contract.

    Usage:
        sync = VoteSynchronizer(store, reader, voter_address)
        result = sync.sync(token_id="7", timestamp=1_700_000_000, block_number=123)
    """

    def __init__(self, store, reader, voter_address: str):
        self.store = store
        self.reader = reader
        self.voter_address = voter_address

    def read_votes(self, token_id: int) -> dict[str, int]:
        """
        Current (pool -> weight) for a veNFT, in the voter's index order.

        Raises:
            VoteReadReverted: if the length or any pool read reverts
        """
        length = self.reader.read(self.voter_address, "poolVoteLength", token_id)
        if length is REVERTED:
            raise VoteReadReverted(f"poolVoteLength({token_id}) reverted")

        votes: dict[str, int] = {}
        for index in range(int(length)):
            pool = self.reader.read(self.voter_address, "poolVote", token_id, index)
            if pool is REVERTED:
                raise VoteReadReverted(f"poolVote({token_id}, {index}) reverted")
            pool = str(pool).lower()
            weight = self.reader.try_read(self.voter_address, "votes", token_id, pool, default=0)
            votes[pool] = votes.get(pool, 0) + int(weight)
        return votes

    def gauge_for_pool(self, pool: str) -> str:
        """Gauge address for a pool; the pool itself when no gauge is known."""
        link = self.store.load(PoolGauge, pool)
        if link is not None:
            return link.gauge
        gauge = self.reader.try_read(self.voter_address, "gauges", pool, default=ZERO_ADDRESS)
        gauge = str(gauge).lower()
        return pool if gauge == ZERO_ADDRESS else gauge

    def _refresh_gauge_total(self, pool: str, epoch: int, timestamp: int, block_number: int) -> Optional[int]:
        gauge = self.gauge_for_pool(pool)
        vote_id = GaugeEpochVote.bucket_id(gauge, epoch)
        aggregate = self.store.ensure_exists(
            GaugeEpochVote,
            vote_id,
            lambda: GaugeEpochVote(id=vote_id, gauge=gauge, pool=pool, **GaugeEpochVote.epoch_fields(epoch)),
        )
        total = self.reader.read(self.voter_address, "weights", pool)
        if total is REVERTED:
            logger.debug(f"weights({pool}) reverted, keeping {aggregate.total_weight}")
        else:
            aggregate.total_weight = int(total)
        aggregate.touch(timestamp, block_number)
        self.store.upsert(aggregate)
        return aggregate.total_weight

    def sync(self, token_id: str, timestamp: int, block_number: int) -> VoteSyncResult:
        """
        Resync a veNFT's votes for the epoch containing `timestamp`.

        Raises:
            VoteReadReverted: nothing is written when enumeration fails
        """
        epoch = epoch_start(timestamp)
        set_id = TokenEpochVoteSet.bucket_id(token_id, epoch)

        previous = self.store.load(TokenEpochVoteSet, set_id)
        previous_pools = list(previous.pools) if previous is not None else []

        current = self.read_votes(int(token_id))
        union = list(current) + [pool for pool in previous_pools if pool not in current]
        result = VoteSyncResult(token_id=token_id, epoch=epoch, current=current)

        for pool in union:
            result.gauge_totals[pool] = self._refresh_gauge_total(pool, epoch, timestamp, block_number)

        for pool, weight in current.items():
            vote_id = TokenGaugeVote.vote_id(token_id, epoch, pool)
            vote = self.store.load(TokenGaugeVote, vote_id) or TokenGaugeVote(
                id=vote_id,
                token_id=token_id,
                pool=pool,
                gauge=self.gauge_for_pool(pool),
                **TokenGaugeVote.epoch_fields(epoch),
            )
            vote.weight = weight
            vote.touch(timestamp, block_number)
            self.store.upsert(vote)

        for pool in previous_pools:
            if pool not in current:
                self.store.remove(TokenGaugeVote, TokenGaugeVote.vote_id(token_id, epoch, pool))
                result.removed.append(pool)

        vote_set = previous or TokenEpochVoteSet(
            id=set_id, token_id=token_id, **TokenEpochVoteSet.epoch_fields(epoch)
        )
        vote_set.pools = list(current)
        vote_set.touch(timestamp, block_number)
        self.store.upsert(vote_set)

        logger.debug(
            f"Synced votes for veNFT {token_id} epoch {epoch}: "
            f"{len(current)} pools, {len(result.removed)} removed"
        )
        return result


class VoterAggregator(BaseAggregator):
    """Handles GaugeCreated, Voted and Abstained on the voter."""

    SOURCE_KIND = SourceKind.VOTER
    EVENTS = {
        "GaugeCreated": "handle_gauge_created",
        "Voted": "handle_voted",
        "Abstained": "handle_abstained",
    }

    # -------------------------------------------------------------------------
    # Gauge creation
    # -------------------------------------------------------------------------

    def _bribe_address(self, event: ChainEvent, gauge_id: str, name: str) -> str:
        bribe = event.address_param(name)
        if bribe == ZERO_ADDRESS:
            bribe = str(self.reader.try_read(gauge_id, name, default=ZERO_ADDRESS)).lower()
        return bribe

    def _build_gauge(self, event: ChainEvent, gauge_id: str, pool: str) -> Gauge:
        reward_token = self.reader.try_read(gauge_id, "rewardToken", default=ZERO_ADDRESS)
        reward_token = self.tokens.get_or_create(str(reward_token))
        return Gauge(
            id=gauge_id,
            voter=event.contract_address,
            pool=pool,
            reward_token=reward_token.id,
            stake_token=str(self.reader.try_read(gauge_id, "TOKEN", default=pool)).lower(),
            internal_bribe=self._bribe_address(event, gauge_id, "internal_bribe"),
            external_bribe=self._bribe_address(event, gauge_id, "external_bribe"),
            is_for_pair=bool(self.reader.try_read(gauge_id, "isForPair", default=True)),
            emergency=bool(self.reader.try_read(gauge_id, "emergency", default=False)),
            reward_rate=int(self.reader.try_read(gauge_id, "rewardRate", default=0)),
            period_finish=int(self.reader.try_read(gauge_id, "periodFinish", default=0)),
            total_staked=int(self.reader.try_read(gauge_id, "totalSupply", default=0)),
        )

    def _create_bribe(self, bribe_id: str, bribe_type: BribeType, gauge: str, pair: Optional[str], block: int) -> None:
        if bribe_id == ZERO_ADDRESS:
            return
        bribe = self.store.load(Bribe, bribe_id) or Bribe(id=bribe_id)
        bribe.type = bribe_type
        bribe.gauge = gauge
        bribe.pair = pair
        self.store.upsert(bribe)
        self.sources.register(bribe_id, SourceKind.BRIBE, block)

    def handle_gauge_created(self, event: ChainEvent) -> bool:
        voter = self.store.load(Voter, event.contract_address)
        if voter is None:
            logger.debug(f"GaugeCreated on uninitialized voter {event.contract_address}")
            return False

        gauge_id = event.address_param("gauge")
        pool = event.address_param("pool")
        self.tokens.get_or_create(pool)

        pair = self.store.load(Pair, pool)
        pair_id = pair.id if pair is not None else None

        gauge = self.store.ensure_exists(Gauge, gauge_id, lambda: self._build_gauge(event, gauge_id, pool))
        gauge.pair = pair_id
        self.store.upsert(gauge)

        self._create_bribe(gauge.internal_bribe, BribeType.INTERNAL, gauge_id, pair_id, event.block_number)
        self._create_bribe(gauge.external_bribe, BribeType.EXTERNAL, gauge_id, pair_id, event.block_number)

        if pair is not None:
            pair.gauge = gauge_id
            self.store.upsert(pair)

        self.store.upsert(PoolGauge(id=pool, gauge=gauge_id))
        self.sources.register(gauge_id, SourceKind.GAUGE, event.block_number)

        voter.total_gauges_created += 1
        voter.total_pools_with_gauges += 1
        self.store.upsert(voter)

        logger.info(f"Gauge {gauge_id} created for pool {pool}")
        return True

    # -------------------------------------------------------------------------
    # Votes
    # -------------------------------------------------------------------------

    def _sync_votes(self, event: ChainEvent, action: VoteAction) -> HandlerResult:
        token_id = str(event.int_param("tokenId"))
        synchronizer = VoteSynchronizer(self.store, self.reader, event.contract_address)
        try:
            result = synchronizer.sync(token_id, event.block_timestamp, event.block_number)
        except VoteReadReverted as e:
            logger.warning(f"Vote sync for veNFT {token_id} skipped, previous state kept: {e}")
            return SkipReason.READ_REVERTED

        self.store.upsert(VoteCast(
            id=event.event_id,
            transaction=event.tx_hash,
            timestamp=event.block_timestamp,
            block_number=event.block_number,
            log_index=event.log_index,
            token_id=token_id,
            voter=event.address_param("voter") if "voter" in event.params else event.tx_from,
            action=action,
            epoch=result.epoch,
            weight=event.int_param("weight"),
            pool_count=len(result.current),
        ))

        voter = self.store.load(Voter, event.contract_address)
        if voter is not None:
            voter.total_votes_cast += 1
            self.store.upsert(voter)
        return True

    def handle_voted(self, event: ChainEvent) -> HandlerResult:
        return self._sync_votes(event, VoteAction.VOTED)

    def handle_abstained(self, event: ChainEvent) -> HandlerResult:
        return self._sync_votes(event, VoteAction.ABSTAINED)
