"""
Gauge APR Report

APR of a gauge's emissions against the value of the LP it holds, in the
emission token's own unit and, when the conversion graph can price every leg,
in the reference quote unit.

    lp_price   = reserve0 / supply * price0 + reserve1 / supply * price1
    staked_tvl = staked_lp * lp_price
    apr        = reward_rate * SECONDS_PER_YEAR / staked_tvl

Emissions are always the governance token, whatever the gauge's rewardToken()
returned. A leg the graph cannot price falls back to the pair's own reserve
ratio when the other leg is the emission token. Legs that still cannot be
priced are listed rather than raising; the report is then partial.
"""

import logging
import math
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..core.constants import (
    EMISSION_SYMBOL,
    LP_TOKEN_DECIMALS,
    REFERENCE_QUOTE_SYMBOL,
    SECONDS_PER_YEAR,
)
from ..core.entities import Gauge, Pair, Token
from ..core.errors import EntityNotFoundError
from ..core.price_graph import PriceConversionGraph
from ..core.types import to_camel
from ..persistence.store import EntityStore

logger = logging.getLogger(__name__)

REWARD_DECIMALS = 18


def pct(value: Optional[float]) -> str:
    """Format a ratio as a percentage string; unknown or non-finite is 0%."""
    if value is None or not math.isfinite(value):
        return "0%"
    return f"{value * 100:.2f}%"


class TokenLeg(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    symbol: str
    key: str = Field(..., description="Conversion graph key")
    per_lp: float = Field(..., description="Token amount backing one LP token")
    price_in_reward: Optional[float] = None


class QuoteProjection(BaseModel):
    """APR figures re-expressed in the reference quote unit."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    quote: str
    reward_price: float
    lp_price: float
    staked_tvl: float
    rewards_per_year: float
    apr: float
    apr_pct: str


class GaugeAprReport(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    gauge_id: str
    pair_id: str
    reward_symbol: str = EMISSION_SYMBOL
    stable: bool = False
    period_finish: int = 0

    token0: Optional[TokenLeg] = None
    token1: Optional[TokenLeg] = None

    reward_rate_per_second: float = 0.0
    rewards_per_year: float = 0.0
    staked_lp: float = 0.0
    lp_price: Optional[float] = None
    staked_tvl: Optional[float] = None
    apr: Optional[float] = None
    apr_pct: str = "0%"

    quote: Optional[QuoteProjection] = None
    unpriced: list[str] = Field(default_factory=list, description="Graph keys that could not be priced")
    reason: Optional[str] = None


def _price_in_reward(
    graph: PriceConversionGraph,
    key: str,
    is_reward: bool,
    reserve_self: float,
    reserve_other: float,
    other_is_reward: bool,
) -> Optional[float]:
    if is_reward:
        return 1.0
    price = graph.resolve(key, EMISSION_SYMBOL)
    if price is None and other_is_reward and reserve_self > 0 and reserve_other > 0:
        price = reserve_other / reserve_self
    return price


def gauge_apr(
    store: EntityStore,
    graph: PriceConversionGraph,
    gauge_id: str,
    now: int,
    quote_symbol: str = REFERENCE_QUOTE_SYMBOL,
) -> GaugeAprReport:
    """
    Build the APR report for a gauge.

    Raises:
        EntityNotFoundError: gauge, its pair or a pair token is unknown
    """
    gauge_id = gauge_id.lower()
    gauge = store.load(Gauge, gauge_id)
    if gauge is None:
        raise EntityNotFoundError("gauge", gauge_id)
    pair_id = gauge.pair or gauge.pool
    pair = store.load(Pair, pair_id)
    if pair is None:
        raise EntityNotFoundError("pair", pair_id)
    token0 = store.load(Token, pair.token0)
    token1 = store.load(Token, pair.token1)
    if token0 is None or token1 is None:
        raise EntityNotFoundError("token", pair.token0 if token0 is None else pair.token1)

    report = GaugeAprReport(
        gauge_id=gauge.id,
        pair_id=pair.id,
        stable=pair.stable,
        period_finish=gauge.period_finish,
    )

    if gauge.period_finish and now > gauge.period_finish:
        report.apr = 0.0
        report.reason = "reward period finished"
        return report

    reserve0 = float(pair.reserve0)
    reserve1 = float(pair.reserve1)
    supply = float(pair.total_supply)
    if supply <= 0:
        report.reason = "pair has no LP supply"
        return report

    key0 = graph.resolve_token_key(token0.id, token0.symbol)
    key1 = graph.resolve_token_key(token1.id, token1.symbol)
    reward0 = key0 == EMISSION_SYMBOL
    reward1 = key1 == EMISSION_SYMBOL

    price0 = _price_in_reward(graph, key0, reward0, reserve0, reserve1, reward1)
    price1 = _price_in_reward(graph, key1, reward1, reserve1, reserve0, reward0)

    report.token0 = TokenLeg(id=token0.id, symbol=token0.symbol, key=key0,
                             per_lp=reserve0 / supply, price_in_reward=price0)
    report.token1 = TokenLeg(id=token1.id, symbol=token1.symbol, key=key1,
                             per_lp=reserve1 / supply, price_in_reward=price1)

    report.reward_rate_per_second = gauge.reward_rate / 10 ** REWARD_DECIMALS
    report.rewards_per_year = report.reward_rate_per_second * SECONDS_PER_YEAR
    report.staked_lp = gauge.total_staked / 10 ** LP_TOKEN_DECIMALS

    report.unpriced = [key for key, price in ((key0, price0), (key1, price1)) if price is None]
    if report.unpriced:
        report.reason = f"unable to price in {EMISSION_SYMBOL}: {', '.join(report.unpriced)}"
        logger.info(f"Gauge {gauge.id} APR partial: {report.reason}")
        return report

    report.lp_price = report.token0.per_lp * price0 + report.token1.per_lp * price1
    report.staked_tvl = report.staked_lp * report.lp_price
    report.apr = report.rewards_per_year / report.staked_tvl if report.staked_tvl > 0 else 0.0
    report.apr_pct = pct(report.apr)

    report.quote = _quote_projection(graph, report, key0, key1, quote_symbol)
    return report


def _quote_projection(
    graph: PriceConversionGraph,
    report: GaugeAprReport,
    key0: str,
    key1: str,
    quote_symbol: str,
) -> Optional[QuoteProjection]:
    quote0 = graph.resolve(key0, quote_symbol)
    quote1 = graph.resolve(key1, quote_symbol)
    reward_price = graph.resolve(EMISSION_SYMBOL, quote_symbol)
    if quote0 is None or quote1 is None or reward_price is None:
        return None

    lp_price = report.token0.per_lp * quote0 + report.token1.per_lp * quote1
    staked_tvl = report.staked_lp * lp_price
    rewards_per_year = report.rewards_per_year * reward_price
    apr = rewards_per_year / staked_tvl if staked_tvl > 0 else 0.0
    return QuoteProjection(
        quote=graph.normalize_symbol(quote_symbol),
        reward_price=reward_price,
        lp_price=lp_price,
        staked_tvl=staked_tvl,
        rewards_per_year=rewards_per_year,
        apr=apr,
        apr_pct=pct(apr),
    )
