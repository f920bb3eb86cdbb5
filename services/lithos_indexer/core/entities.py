"""
Lithos Indexer Entities

Derived analytics rows maintained by the aggregators.

Every entity has a string `id` and a class-level `KIND` naming its table in the
entity store. Raw on-chain integer amounts (stake weights, reward amounts,
voting power) stay `int`; decimal-normalized token amounts and USD values are
`Decimal`.

Epoch-bucketed entities share the `EpochBucket` shape and are keyed by
`"{subject}-{epoch_start}"`. Event-derived records are keyed by
`"{tx_hash}-{log_index}"`.
"""

from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field

from .constants import (
    DEFAULT_NATIVE_PRICE_USD,
    DEFAULT_REFERRAL_FEE_BPS,
    DEFAULT_STABLE_FEE,
    DEFAULT_STAKING_FEE_BPS,
    DEFAULT_TOKEN_DECIMALS,
    DEFAULT_TOKEN_NAME,
    DEFAULT_TOKEN_SYMBOL,
    DEFAULT_VOLATILE_FEE,
    WEEK,
    ZERO_ADDRESS,
)
from .types import BribeType, SourceKind, VoteAction, to_camel

ZERO = Decimal("0")


class EntityKind(str, Enum):
    """Entity tables."""
    FACTORY = "factory"
    BUNDLE = "bundle"
    TOKEN = "token"
    PAIR = "pair"
    PAIR_EPOCH_DATA = "pair_epoch_data"
    USER = "user"
    LIQUIDITY_POSITION = "liquidity_position"
    MINT = "mint"
    BURN = "burn"
    SWAP = "swap"
    CL_POOL = "cl_pool"
    CL_POOL_EPOCH_DATA = "cl_pool_epoch_data"
    GAUGE = "gauge"
    GAUGE_POSITION = "gauge_position"
    GAUGE_EPOCH_DATA = "gauge_epoch_data"
    BRIBE = "bribe"
    BRIBE_REWARD_TOKEN = "bribe_reward_token"
    BRIBE_EPOCH_REWARD = "bribe_epoch_reward"
    BRIBE_EPOCH_STAKE = "bribe_epoch_stake"
    BRIBE_EPOCH_VE_STAKE = "bribe_epoch_ve_stake"
    BRIBE_STAKE = "bribe_stake"
    BRIBE_WITHDRAW = "bribe_withdraw"
    BRIBE_REWARD_ADDED = "bribe_reward_added"
    BRIBE_REWARD_PAID = "bribe_reward_paid"
    PAIR_BRIBE_EPOCH_REWARD = "pair_bribe_epoch_reward"
    VOTER = "voter"
    POOL_GAUGE = "pool_gauge"
    GAUGE_EPOCH_VOTE = "gauge_epoch_vote"
    TOKEN_GAUGE_VOTE = "token_gauge_vote"
    TOKEN_EPOCH_VOTE_SET = "token_epoch_vote_set"
    VOTE_CAST = "vote_cast"
    VOTING_ESCROW = "voting_escrow"
    VE_NFT = "ve_nft"
    MINTER = "minter"
    MINTER_EMISSION = "minter_emission"
    DATA_SOURCE = "data_source"
    INDEXER_CURSOR = "indexer_cursor"


class Entity(BaseModel):
    """Base for all stored entities."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    KIND: ClassVar[EntityKind]

    id: str


class EventRecord(Entity):
    """Immutable record derived from one log, keyed by `{tx_hash}-{log_index}`."""

    transaction: str
    timestamp: int
    block_number: int
    log_index: int = 0


class EpochBucket(Entity):
    """Weekly aggregate for one subject, keyed by `{subject}-{epoch_start}`."""

    epoch: int
    epoch_start: int
    epoch_end: int
    updated_at_timestamp: int = 0
    updated_at_block_number: int = 0

    @staticmethod
    def bucket_id(subject: str, epoch: int) -> str:
        return f"{subject}-{epoch}"

    @classmethod
    def epoch_fields(cls, epoch: int) -> dict:
        """Constructor kwargs shared by every bucket for `epoch`."""
        return {"epoch": epoch, "epoch_start": epoch, "epoch_end": epoch + WEEK}

    def touch(self, timestamp: int, block_number: int) -> None:
        self.updated_at_timestamp = timestamp
        self.updated_at_block_number = block_number


# =============================================================================
# Singletons
# =============================================================================

class Factory(Entity):
    KIND: ClassVar[EntityKind] = EntityKind.FACTORY

    pair_count: int = 0
    total_volume_usd: Decimal = ZERO
    total_volume_eth: Decimal = ZERO
    total_liquidity_usd: Decimal = ZERO
    total_liquidity_eth: Decimal = ZERO
    tx_count: int = 0

    stable_fee: int = DEFAULT_STABLE_FEE
    volatile_fee: int = DEFAULT_VOLATILE_FEE
    referral_fee_bps: int = DEFAULT_REFERRAL_FEE_BPS
    staking_fee_bps: int = DEFAULT_STAKING_FEE_BPS


class Bundle(Entity):
    """Reference native price in USD."""

    KIND: ClassVar[EntityKind] = EntityKind.BUNDLE

    eth_price: Decimal = DEFAULT_NATIVE_PRICE_USD


# =============================================================================
# Tokens, Pairs & Users
# =============================================================================

class Token(Entity):
    KIND: ClassVar[EntityKind] = EntityKind.TOKEN

    symbol: str = DEFAULT_TOKEN_SYMBOL
    name: str = DEFAULT_TOKEN_NAME
    decimals: int = DEFAULT_TOKEN_DECIMALS
    derived_eth: Decimal = ZERO
    trade_volume: Decimal = ZERO
    trade_volume_usd: Decimal = ZERO
    tx_count: int = 0
    total_liquidity: Decimal = ZERO


class Pair(Entity):
    KIND: ClassVar[EntityKind] = EntityKind.PAIR

    token0: str
    token1: str
    stable: bool = False

    reserve0: Decimal = ZERO
    reserve1: Decimal = ZERO
    total_supply: Decimal = ZERO
    reserve_eth: Decimal = ZERO
    reserve_usd: Decimal = ZERO

    token0_price: Decimal = ZERO
    token1_price: Decimal = ZERO

    volume_token0: Decimal = ZERO
    volume_token1: Decimal = ZERO
    volume_usd: Decimal = ZERO
    tx_count: int = 0

    # LP share of swap fees
    fees_token0: Decimal = ZERO
    fees_token1: Decimal = ZERO
    fees_usd: Decimal = ZERO
    referral_fees_token0: Decimal = ZERO
    referral_fees_token1: Decimal = ZERO
    referral_fees_usd: Decimal = ZERO
    staking_fees_token0: Decimal = ZERO
    staking_fees_token1: Decimal = ZERO
    staking_fees_usd: Decimal = ZERO

    gauge: Optional[str] = None

    created_at_timestamp: int = 0
    created_at_block_number: int = 0
    last_update_timestamp: int = 0
    last_update_block_number: int = 0


class PairEpochData(EpochBucket):
    KIND: ClassVar[EntityKind] = EntityKind.PAIR_EPOCH_DATA

    pair: str
    token0: str
    token1: str

    fees_token0: Decimal = ZERO
    fees_token1: Decimal = ZERO
    fees_usd: Decimal = ZERO
    referral_fees_token0: Decimal = ZERO
    referral_fees_token1: Decimal = ZERO
    referral_fees_usd: Decimal = ZERO
    staking_fees_token0: Decimal = ZERO
    staking_fees_token1: Decimal = ZERO
    staking_fees_usd: Decimal = ZERO

    volume_token0: Decimal = ZERO
    volume_token1: Decimal = ZERO
    volume_usd: Decimal = ZERO
    tx_count: int = 0


class User(Entity):
    KIND: ClassVar[EntityKind] = EntityKind.USER

    usd_swapped: Decimal = ZERO
    ve_nft_count: int = 0
    total_locked: Decimal = ZERO
    delegated_to: Optional[str] = None
    delegated_voting_power: int = 0


class LiquidityPosition(Entity):
    """LP token balance of one user in one pair, keyed by `{user}-{pair}`."""

    KIND: ClassVar[EntityKind] = EntityKind.LIQUIDITY_POSITION

    user: str
    pair: str
    liquidity_token_balance: Decimal = ZERO
    claimable0: Decimal = ZERO
    claimable1: Decimal = ZERO


class Mint(EventRecord):
    KIND: ClassVar[EntityKind] = EntityKind.MINT

    pair: str
    sender: Optional[str] = None
    to: Optional[str] = None
    amount0: Decimal = ZERO
    amount1: Decimal = ZERO
    liquidity: Decimal = ZERO
    amount_usd: Decimal = ZERO


class Burn(EventRecord):
    KIND: ClassVar[EntityKind] = EntityKind.BURN

    pair: str
    sender: Optional[str] = None
    to: Optional[str] = None
    amount0: Decimal = ZERO
    amount1: Decimal = ZERO
    liquidity: Decimal = ZERO
    amount_usd: Decimal = ZERO


class Swap(EventRecord):
    KIND: ClassVar[EntityKind] = EntityKind.SWAP

    pair: str
    sender: Optional[str] = None
    to: Optional[str] = None
    amount0_in: Decimal = ZERO
    amount1_in: Decimal = ZERO
    amount0_out: Decimal = ZERO
    amount1_out: Decimal = ZERO
    amount_usd: Decimal = ZERO
    token0_price_usd: Optional[Decimal] = None
    token1_price_usd: Optional[Decimal] = None


# =============================================================================
# Concentrated Liquidity
# =============================================================================

class CLPool(Entity):
    KIND: ClassVar[EntityKind] = EntityKind.CL_POOL

    factory: str
    token0: str
    token1: str

    liquidity: int = 0
    sqrt_price_x96: int = 0
    tick: int = 0
    token0_price: Decimal = ZERO
    token1_price: Decimal = ZERO

    fee_growth_global0_x128: int = 0
    fee_growth_global1_x128: int = 0
    fees_token0: Decimal = ZERO
    fees_token1: Decimal = ZERO
    fees_usd: Decimal = ZERO

    volume_token0: Decimal = ZERO
    volume_token1: Decimal = ZERO
    volume_usd: Decimal = ZERO
    tx_count: int = 0

    created_at_timestamp: int = 0
    created_at_block_number: int = 0
    last_update_timestamp: int = 0
    last_update_block_number: int = 0


class CLPoolEpochData(EpochBucket):
    KIND: ClassVar[EntityKind] = EntityKind.CL_POOL_EPOCH_DATA

    pool: str
    token0: str
    token1: str

    fees_token0: Decimal = ZERO
    fees_token1: Decimal = ZERO
    fees_usd: Decimal = ZERO
    volume_token0: Decimal = ZERO
    volume_token1: Decimal = ZERO
    volume_usd: Decimal = ZERO


# =============================================================================
# Gauges
# =============================================================================

class Gauge(Entity):
    KIND: ClassVar[EntityKind] = EntityKind.GAUGE

    voter: str = ZERO_ADDRESS
    pool: str = ZERO_ADDRESS
    pair: Optional[str] = None
    reward_token: str = ZERO_ADDRESS
    stake_token: str = ZERO_ADDRESS
    internal_bribe: str = ZERO_ADDRESS
    external_bribe: str = ZERO_ADDRESS
    is_for_pair: bool = False
    emergency: bool = False

    total_staked: int = 0
    total_rewards_distributed: int = 0
    total_rewards_claimed: int = 0
    reward_rate: int = 0
    period_finish: int = 0
    last_update_time: int = 0

    fees_claimed0: int = 0
    fees_claimed1: int = 0


class GaugePosition(Entity):
    """Staked LP balance of one user in one gauge, keyed by `{gauge}-{user}`."""

    KIND: ClassVar[EntityKind] = EntityKind.GAUGE_POSITION

    gauge: str
    user: str
    staked_balance: int = 0
    total_deposited: int = 0
    total_withdrawn: int = 0
    total_rewards_claimed: int = 0
    last_deposit_time: int = 0
    last_withdraw_time: int = 0
    last_harvest_time: int = 0


class GaugeEpochData(EpochBucket):
    KIND: ClassVar[EntityKind] = EntityKind.GAUGE_EPOCH_DATA

    gauge: str
    rewards: int = 0
    deposits: int = 0
    withdrawals: int = 0


# =============================================================================
# Bribes
# =============================================================================

class Bribe(Entity):
    KIND: ClassVar[EntityKind] = EntityKind.BRIBE

    type: Optional[BribeType] = None
    gauge: Optional[str] = None
    pair: Optional[str] = None
    owner: str = ZERO_ADDRESS
    total_voting_power: int = 0
    reward_token_count: int = 0


class BribeRewardToken(Entity):
    """Reward token registered on a bribe, keyed by `{bribe}-{token}`."""

    KIND: ClassVar[EntityKind] = EntityKind.BRIBE_REWARD_TOKEN

    bribe: str
    token: str
    total_rewards: int = 0
    epoch_count: int = 0
    is_active: bool = True


class BribeEpochReward(EpochBucket):
    """Rewards deposited for one epoch, keyed by `{bribe}-{token}-{epoch}`."""

    KIND: ClassVar[EntityKind] = EntityKind.BRIBE_EPOCH_REWARD

    bribe: str
    reward_token: str
    reward: int = 0


class BribeEpochStake(EpochBucket):
    """Total vote weight staked in a bribe for one epoch."""

    KIND: ClassVar[EntityKind] = EntityKind.BRIBE_EPOCH_STAKE

    bribe: str
    total_weight: int = 0


class BribeEpochVeStake(EpochBucket):
    """Vote weight of one veNFT in a bribe for one epoch, keyed by `{bribe}-{epoch}-{ve_nft}`."""

    KIND: ClassVar[EntityKind] = EntityKind.BRIBE_EPOCH_VE_STAKE

    bribe: str
    epoch_stake: str
    ve_nft: str
    weight: int = 0


class BribeStake(EventRecord):
    KIND: ClassVar[EntityKind] = EntityKind.BRIBE_STAKE

    bribe: str
    ve_nft: str
    amount: int
    epoch: int
    epoch_stake: Optional[str] = None


class BribeWithdraw(EventRecord):
    KIND: ClassVar[EntityKind] = EntityKind.BRIBE_WITHDRAW

    bribe: str
    ve_nft: str
    amount: int
    epoch: int


class BribeRewardAdded(EventRecord):
    KIND: ClassVar[EntityKind] = EntityKind.BRIBE_REWARD_ADDED

    bribe: str
    reward_token: str
    reward_token_address: str
    reward: int
    start_timestamp: int
    epoch: int


class BribeRewardPaid(EventRecord):
    KIND: ClassVar[EntityKind] = EntityKind.BRIBE_REWARD_PAID

    bribe: str
    user: str
    reward_token_address: str
    reward: int


class PairBribeEpochReward(EpochBucket):
    """Bribe rewards for a pair's voters, keyed by `{pair}-{epoch}-{token}`."""

    KIND: ClassVar[EntityKind] = EntityKind.PAIR_BRIBE_EPOCH_REWARD

    pair: str
    bribe: str
    gauge: Optional[str] = None
    reward_token: str
    is_internal: bool = False
    reward: int = 0


# =============================================================================
# Voting
# =============================================================================

class Voter(Entity):
    KIND: ClassVar[EntityKind] = EntityKind.VOTER

    total_gauges_created: int = 0
    total_pools_with_gauges: int = 0
    total_votes_cast: int = 0


class PoolGauge(Entity):
    """Pool address to gauge address lookup, keyed by pool."""

    KIND: ClassVar[EntityKind] = EntityKind.POOL_GAUGE

    gauge: str


class GaugeEpochVote(EpochBucket):
    """Authoritative total vote weight on a gauge for one epoch."""

    KIND: ClassVar[EntityKind] = EntityKind.GAUGE_EPOCH_VOTE

    gauge: str
    pool: str
    total_weight: int = 0


class TokenGaugeVote(EpochBucket):
    """One veNFT's weight on one pool for one epoch, keyed by `{token_id}-{epoch}-{pool}`."""

    KIND: ClassVar[EntityKind] = EntityKind.TOKEN_GAUGE_VOTE

    token_id: str
    pool: str
    gauge: str
    weight: int = 0

    @staticmethod
    def vote_id(token_id: str, epoch: int, pool: str) -> str:
        return f"{token_id}-{epoch}-{pool}"


class TokenEpochVoteSet(EpochBucket):
    """Pools a veNFT voted for in one epoch, keyed by `{token_id}-{epoch}`."""

    KIND: ClassVar[EntityKind] = EntityKind.TOKEN_EPOCH_VOTE_SET

    token_id: str
    pools: list[str] = Field(default_factory=list)


class VoteCast(EventRecord):
    KIND: ClassVar[EntityKind] = EntityKind.VOTE_CAST

    token_id: str
    voter: Optional[str] = None
    action: VoteAction
    epoch: int
    weight: int = 0
    pool_count: int = 0


# =============================================================================
# Voting Escrow & Emissions
# =============================================================================

class VotingEscrow(Entity):
    KIND: ClassVar[EntityKind] = EntityKind.VOTING_ESCROW

    total_supply: int = 0
    total_locked: int = 0
    total_nfts: int = 0


class VeNFT(Entity):
    KIND: ClassVar[EntityKind] = EntityKind.VE_NFT

    token_id: int
    voting_escrow: str
    owner: str = ZERO_ADDRESS
    value: int = 0
    lock_end: int = 0
    lock_duration: int = 0
    delegated_to: Optional[str] = None
    created_at: int = 0
    updated_at: int = 0
    is_active: bool = True


class Minter(Entity):
    KIND: ClassVar[EntityKind] = EntityKind.MINTER

    total_emissions: int = 0
    current_weekly_emission: int = 0
    mint_count: int = 0
    active_period: int = 0
    emission_rate: int = 10        # per mille
    tail_emission_rate: int = 2    # per mille
    team_rate: int = 0
    last_mint_timestamp: int = 0


class MinterEmission(EventRecord):
    KIND: ClassVar[EntityKind] = EntityKind.MINTER_EMISSION

    minter: str
    sender: str
    weekly_emission: int
    circulating_supply: int
    circulating_emission: int
    period: int


# =============================================================================
# Engine Bookkeeping
# =============================================================================

class DataSource(Entity):
    """Contract address the engine routes events for."""

    KIND: ClassVar[EntityKind] = EntityKind.DATA_SOURCE

    kind: SourceKind
    created_at_block_number: int = 0


class IndexerCursor(Entity):
    """Position of the last processed event."""

    KIND: ClassVar[EntityKind] = EntityKind.INDEXER_CURSOR

    block_number: int = -1
    log_index: int = -1
    events_processed: int = 0

    @property
    def position(self) -> tuple[int, int]:
        return (self.block_number, self.log_index)


ENTITY_TYPES: dict[EntityKind, type[Entity]] = {
    cls.KIND: cls
    for cls in (
        Factory, Bundle, Token, Pair, PairEpochData, User, LiquidityPosition,
        Mint, Burn, Swap, CLPool, CLPoolEpochData, Gauge, GaugePosition,
        GaugeEpochData, Bribe, BribeRewardToken, BribeEpochReward,
        BribeEpochStake, BribeEpochVeStake, BribeStake, BribeWithdraw,
        BribeRewardAdded, BribeRewardPaid, PairBribeEpochReward, Voter,
        PoolGauge, GaugeEpochVote, TokenGaugeVote, TokenEpochVoteSet, VoteCast,
        VotingEscrow, VeNFT, Minter, MinterEmission, DataSource, IndexerCursor,
    )
}
