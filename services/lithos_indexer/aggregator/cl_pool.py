"""
Concentrated Liquidity Pool Aggregator

Initialize, Mint, Burn and Swap on CL pools.

Pool state (liquidity, sqrt price, tick) comes from the event where it carries
it and from chain reads otherwise. Fees accrue from the growth of the
pool's global fee counters between events:

    fee_raw = (feeGrowthGlobalX128_now - feeGrowthGlobalX128_last) * liquidity / 2**128
"""

import logging
from decimal import Decimal

from ..connectors.base import REVERTED
from ..core.constants import Q128, ZERO_BD
from ..core.entities import CLPool, CLPoolEpochData, Token
from ..core.epoch import epoch_start
from ..core.pricing import (
    convert_token_to_decimal,
    sqrt_price_to_prices,
    tracked_volume_usd,
)
from ..core.types import ChainEvent, SourceKind
from .base import BaseAggregator

logger = logging.getLogger(__name__)


def accrued_fee(growth_delta: int, liquidity: int, decimals: int) -> Decimal:
    """Decimal token amount earned by in-range liquidity for a fee-growth delta."""
    if growth_delta <= 0 or liquidity <= 0:
        return ZERO_BD
    raw = Decimal(growth_delta * liquidity) / Decimal(Q128)
    return raw / (Decimal(10) ** decimals)


class CLPoolAggregator(BaseAggregator):
    """Handles state, liquidity and swap events on CL pools."""

    SOURCE_KIND = SourceKind.CL_POOL
    EVENTS = {
        "Initialize": "handle_initialize",
        "Mint": "handle_liquidity",
        "Burn": "handle_liquidity",
        "Swap": "handle_swap",
    }

    def _load(self, event: ChainEvent):
        pool = self.store.load(CLPool, event.contract_address)
        if pool is None:
            return None
        token0 = self.store.load(Token, pool.token0)
        token1 = self.store.load(Token, pool.token1)
        if token0 is None or token1 is None:
            return None
        return pool, token0, token1

    def _epoch_bucket(self, pool: CLPool, timestamp: int) -> CLPoolEpochData:
        epoch = epoch_start(timestamp)
        bucket_id = CLPoolEpochData.bucket_id(pool.id, epoch)
        return self.store.ensure_exists(
            CLPoolEpochData,
            bucket_id,
            lambda: CLPoolEpochData(
                id=bucket_id,
                pool=pool.id,
                token0=pool.token0,
                token1=pool.token1,
                **CLPoolEpochData.epoch_fields(epoch),
            ),
        )

    def _update_prices(self, pool: CLPool, token0: Token, token1: Token) -> None:
        pool.token0_price, pool.token1_price = sqrt_price_to_prices(
            pool.sqrt_price_x96, token0.decimals, token1.decimals
        )

    def _accrue_fees(self, event: ChainEvent, pool: CLPool, token0: Token, token1: Token) -> None:
        growth0 = self.reader.read(pool.id, "feeGrowthGlobal0X128")
        growth1 = self.reader.read(pool.id, "feeGrowthGlobal1X128")
        if growth0 is REVERTED or growth1 is REVERTED:
            return
        growth0, growth1 = int(growth0), int(growth1)

        delta0 = growth0 - pool.fee_growth_global0_x128
        delta1 = growth1 - pool.fee_growth_global1_x128

        if (delta0 > 0 or delta1 > 0) and pool.liquidity > 0:
            fee0 = accrued_fee(delta0, pool.liquidity, token0.decimals)
            fee1 = accrued_fee(delta1, pool.liquidity, token1.decimals)

            eth_price = self.eth_price()
            fee_usd = tracked_volume_usd(
                fee0, self.price_usd(token0, eth_price), fee1, self.price_usd(token1, eth_price)
            )
            pool.fees_token0 += fee0
            pool.fees_token1 += fee1
            pool.fees_usd += fee_usd

            bucket = self._epoch_bucket(pool, event.block_timestamp)
            bucket.fees_token0 += fee0
            bucket.fees_token1 += fee1
            bucket.fees_usd += fee_usd
            bucket.touch(event.block_timestamp, event.block_number)
            self.store.upsert(bucket)

        pool.fee_growth_global0_x128 = growth0
        pool.fee_growth_global1_x128 = growth1

    def _finish(self, event: ChainEvent, pool: CLPool) -> None:
        pool.last_update_timestamp = event.block_timestamp
        pool.last_update_block_number = event.block_number
        self.store.upsert(pool)

    def handle_initialize(self, event: ChainEvent) -> bool:
        loaded = self._load(event)
        if loaded is None:
            return False
        pool, token0, token1 = loaded

        pool.sqrt_price_x96 = event.int_param("sqrtPriceX96", event.int_param("price"))
        pool.tick = event.int_param("tick")
        self._accrue_fees(event, pool, token0, token1)
        self._update_prices(pool, token0, token1)
        self._finish(event, pool)
        return True

    def handle_liquidity(self, event: ChainEvent) -> bool:
        loaded = self._load(event)
        if loaded is None:
            return False
        pool, token0, token1 = loaded

        liquidity = self.reader.read(pool.id, "liquidity")
        if liquidity is not REVERTED:
            pool.liquidity = int(liquidity)
        slot0 = self.reader.read(pool.id, "slot0")
        if slot0 is not REVERTED:
            pool.sqrt_price_x96 = int(slot0[0])
            pool.tick = int(slot0[1])

        self._accrue_fees(event, pool, token0, token1)
        self._update_prices(pool, token0, token1)
        self._finish(event, pool)
        return True

    def handle_swap(self, event: ChainEvent) -> bool:
        loaded = self._load(event)
        if loaded is None:
            return False
        pool, token0, token1 = loaded

        # Signed amounts: positive into the pool, negative out of it
        amount0 = convert_token_to_decimal(abs(event.int_param("amount0")), token0.decimals)
        amount1 = convert_token_to_decimal(abs(event.int_param("amount1")), token1.decimals)

        eth_price = self.eth_price()
        volume_usd = tracked_volume_usd(
            amount0, self.price_usd(token0, eth_price), amount1, self.price_usd(token1, eth_price)
        )

        pool.volume_token0 += amount0
        pool.volume_token1 += amount1
        pool.volume_usd += volume_usd
        pool.tx_count += 1

        bucket = self._epoch_bucket(pool, event.block_timestamp)
        bucket.volume_token0 += amount0
        bucket.volume_token1 += amount1
        bucket.volume_usd += volume_usd
        bucket.touch(event.block_timestamp, event.block_number)
        self.store.upsert(bucket)

        pool.sqrt_price_x96 = event.int_param("sqrtPriceX96", event.int_param("price", pool.sqrt_price_x96))
        pool.tick = event.int_param("tick", pool.tick)
        pool.liquidity = event.int_param("liquidity", pool.liquidity)

        self._accrue_fees(event, pool, token0, token1)
        self._update_prices(pool, token0, token1)
        self._finish(event, pool)
        return True
