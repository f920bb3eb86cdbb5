"""
Bribe Reward Reports

Expected next-epoch bribe rewards for a veNFT, computed from the voting
ledger, and claimable rewards read live from the bribe contracts.

A veNFT's expected share of a reward deposited for an epoch is

    amount = reward * ve_weight // total_weight

using the ledger's per-epoch stake rows. Amounts are valued in a reference
unit through the conversion graph; tokens the graph cannot price are listed
and excluded from the valued total.
"""

import logging
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from ..connectors.base import REVERTED, ChainReader
from ..core.constants import DEFAULT_TOKEN_DECIMALS, REFERENCE_QUOTE_SYMBOL, REPORT_TOKEN_SYMBOL
from ..core.entities import (
    Bribe,
    BribeEpochReward,
    BribeEpochStake,
    BribeEpochVeStake,
    BribeRewardToken,
    Token,
)
from ..core.epoch import next_epoch_start
from ..core.price_graph import PriceConversionGraph
from ..core.pricing import convert_token_to_decimal
from ..core.types import BribeType, to_camel
from ..persistence.store import EntityStore

logger = logging.getLogger(__name__)


class ExpectedBribeRow(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    bribe: str
    type: Optional[BribeType] = None
    token: str
    symbol: str
    decimals: int
    amount: int = Field(..., description="Raw token units")
    amount_formatted: Decimal
    value: Optional[float] = Field(None, description="Value in the report's quote unit")


class TokenTotal(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    token: str
    symbol: str
    decimals: int
    amount: int
    amount_formatted: Decimal
    value: Optional[float] = None


class ExpectedBribesReport(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ve_nft: str
    epoch_start: int
    quote: str
    rewards: list[ExpectedBribeRow] = Field(default_factory=list)
    totals: list[TokenTotal] = Field(default_factory=list)
    total_value: float = 0.0
    unpriced: list[str] = Field(default_factory=list)

    @computed_field
    @property
    def partial(self) -> bool:
        return bool(self.unpriced)


def _token_meta(store: EntityStore, address: str) -> tuple[str, int]:
    token = store.load(Token, address)
    if token is None:
        return REPORT_TOKEN_SYMBOL, DEFAULT_TOKEN_DECIMALS
    return token.symbol, token.decimals


def expected_bribes(
    store: EntityStore,
    graph: PriceConversionGraph,
    ve_nft: str,
    now: int,
    epoch: Optional[int] = None,
    quote_symbol: str = REFERENCE_QUOTE_SYMBOL,
) -> ExpectedBribesReport:
    """
    Rewards a veNFT can expect when `epoch` (default: the next epoch) flips.

    Never raises for missing prices: unpriced tokens are reported alongside
    a partial valued total.
    """
    target = epoch if epoch is not None else next_epoch_start(now)
    report = ExpectedBribesReport(
        ve_nft=ve_nft,
        epoch_start=target,
        quote=graph.normalize_symbol(quote_symbol),
    )

    stakes = [
        stake for stake in store.all(BribeEpochVeStake)
        if stake.ve_nft == ve_nft and stake.epoch == target and stake.weight > 0
    ]
    rewards_by_bribe: dict[str, list[BribeEpochReward]] = {}
    for reward in store.all(BribeEpochReward):
        if reward.epoch == target and reward.reward > 0:
            rewards_by_bribe.setdefault(reward.bribe, []).append(reward)

    totals: dict[str, TokenTotal] = {}
    unpriced: list[str] = []

    for stake in sorted(stakes, key=lambda s: s.bribe):
        epoch_stake = store.load(BribeEpochStake, BribeEpochStake.bucket_id(stake.bribe, target))
        total_weight = epoch_stake.total_weight if epoch_stake is not None else 0
        if total_weight <= 0:
            continue
        bribe = store.load(Bribe, stake.bribe)

        for reward in rewards_by_bribe.get(stake.bribe, []):
            amount = reward.reward * stake.weight // total_weight
            if amount == 0:
                continue

            entry = store.load(BribeRewardToken, reward.reward_token)
            token_address = entry.token if entry is not None else reward.reward_token
            symbol, decimals = _token_meta(store, token_address)
            formatted = convert_token_to_decimal(amount, decimals)

            key = graph.resolve_token_key(token_address, symbol)
            value = graph.convert(float(formatted), key, quote_symbol)
            if value is None and key not in unpriced:
                unpriced.append(key)

            report.rewards.append(ExpectedBribeRow(
                bribe=stake.bribe,
                type=bribe.type if bribe is not None else None,
                token=token_address,
                symbol=symbol,
                decimals=decimals,
                amount=amount,
                amount_formatted=formatted,
                value=value,
            ))

            total = totals.setdefault(token_address, TokenTotal(
                token=token_address,
                symbol=symbol,
                decimals=decimals,
                amount=0,
                amount_formatted=Decimal(0),
                value=None if value is None else 0.0,
            ))
            total.amount += amount
            total.amount_formatted = convert_token_to_decimal(total.amount, decimals)
            if value is not None and total.value is not None:
                total.value += value

    report.totals = list(totals.values())
    report.total_value = sum(total.value for total in report.totals if total.value is not None)
    report.unpriced = unpriced
    if unpriced:
        logger.info(f"Expected bribes for veNFT {ve_nft} partial, unpriced: {', '.join(unpriced)}")
    return report


# =============================================================================
# On-chain claimables
# =============================================================================

class ClaimableReward(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    token: str
    symbol: str
    decimals: int
    amount: int
    amount_formatted: Decimal


class BribeClaimables(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    bribe: str
    type: Optional[BribeType] = None
    gauge: Optional[str] = None
    pair: Optional[str] = None
    rewards: list[ClaimableReward] = Field(default_factory=list)


def _read_token_meta(reader: ChainReader, token: str) -> tuple[str, int]:
    symbol = reader.try_read(token, "symbol", default=REPORT_TOKEN_SYMBOL)
    decimals = reader.try_read(token, "decimals", default=DEFAULT_TOKEN_DECIMALS)
    try:
        return str(symbol), int(decimals)
    except (TypeError, ValueError):
        return str(symbol), DEFAULT_TOKEN_DECIMALS


def onchain_claimables(
    store: EntityStore,
    reader: ChainReader,
    ve_nft: int,
) -> list[BribeClaimables]:
    """
    Rewards a veNFT can claim right now, read from every known bribe.

    Bribes whose reward list cannot be read are skipped; individual reward
    tokens whose `earned` read reverts are skipped.
    """
    results = []
    for bribe in sorted(store.all(Bribe), key=lambda b: b.id):
        length = reader.read(bribe.id, "rewardsListLength")
        if length is REVERTED:
            logger.debug(f"rewardsListLength reverted on bribe {bribe.id}")
            continue

        rewards = []
        for index in range(int(length)):
            token = reader.read(bribe.id, "rewardTokens", index)
            if token is REVERTED:
                continue
            token = str(token).lower()
            earned = reader.read(bribe.id, "earned", ve_nft, token)
            if earned is REVERTED or int(earned) == 0:
                continue
            symbol, decimals = _read_token_meta(reader, token)
            rewards.append(ClaimableReward(
                token=token,
                symbol=symbol,
                decimals=decimals,
                amount=int(earned),
                amount_formatted=convert_token_to_decimal(int(earned), decimals),
            ))

        if rewards:
            results.append(BribeClaimables(
                bribe=bribe.id,
                type=bribe.type,
                gauge=bribe.gauge,
                pair=bribe.pair,
                rewards=rewards,
            ))
    return results
