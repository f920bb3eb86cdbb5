"""
Pair Aggregator

Swap and liquidity events on volatile/stable pairs:
- Sync: reserves, guarded prices, tracked liquidity USD, reference prices
- Mint / Burn: liquidity events, LP total supply, transaction counters
- Swap: tracked USD volume into pair, token, factory, epoch and user totals
- Transfer: LP token balances per holder
- Claim: resets a holder's claimable fees

Events for a pair that was never created are skipped.
"""

import logging
from decimal import Decimal
from typing import Optional

from ..connectors.base import REVERTED
from ..core.constants import LP_TOKEN_DECIMALS, ONE_BD, ZERO_ADDRESS, ZERO_BD
from ..core.entities import (
    Bundle,
    Burn,
    LiquidityPosition,
    Mint,
    Pair,
    PairEpochData,
    Swap,
    Token,
)
from ..core.epoch import epoch_start
from ..core.pricing import (
    convert_token_to_decimal,
    safe_div,
    tracked_liquidity_usd,
    tracked_volume_usd,
)
from ..core.types import ChainEvent, SourceKind
from ..persistence.store import EntityStore
from .base import BaseAggregator

logger = logging.getLogger(__name__)


def pair_epoch_bucket(store: EntityStore, pair: Pair, timestamp: int) -> PairEpochData:
    """Load or lazily create the pair's bucket for the epoch containing `timestamp`."""
    epoch = epoch_start(timestamp)
    bucket_id = PairEpochData.bucket_id(pair.id, epoch)
    return store.ensure_exists(
        PairEpochData,
        bucket_id,
        lambda: PairEpochData(
            id=bucket_id,
            pair=pair.id,
            token0=pair.token0,
            token1=pair.token1,
            **PairEpochData.epoch_fields(epoch),
        ),
    )


def liquidity_position_id(user: str, pair: str) -> str:
    return f"{user}-{pair}"


class PairAggregator(BaseAggregator):
    """Handles reserve, liquidity, swap and LP token events on pairs."""

    SOURCE_KIND = SourceKind.PAIR
    EVENTS = {
        "Sync": "handle_sync",
        "Mint": "handle_mint",
        "Burn": "handle_burn",
        "Swap": "handle_swap",
        "Transfer": "handle_transfer",
        "Claim": "handle_claim",
    }

    def _load_pair_tokens(self, event: ChainEvent) -> Optional[tuple[Pair, Token, Token]]:
        pair = self.store.load(Pair, event.contract_address)
        if pair is None:
            logger.debug(f"{event.event_name} for unknown pair {event.contract_address}")
            return None
        token0 = self.store.load(Token, pair.token0)
        token1 = self.store.load(Token, pair.token1)
        if token0 is None or token1 is None:
            logger.debug(f"{event.event_name} for pair {pair.id} with missing tokens")
            return None
        return pair, token0, token1

    # -------------------------------------------------------------------------
    # Sync
    # -------------------------------------------------------------------------

    def handle_sync(self, event: ChainEvent) -> bool:
        loaded = self._load_pair_tokens(event)
        if loaded is None:
            return False
        pair, token0, token1 = loaded

        previous_reserve0 = pair.reserve0
        previous_reserve1 = pair.reserve1
        previous_reserve_usd = pair.reserve_usd

        pair.reserve0 = convert_token_to_decimal(event.int_param("reserve0"), token0.decimals)
        pair.reserve1 = convert_token_to_decimal(event.int_param("reserve1"), token1.decimals)

        # Prior price is kept when the denominator is zero
        if pair.reserve0 != ZERO_BD:
            pair.token0_price = pair.reserve1 / pair.reserve0
        if pair.reserve1 != ZERO_BD:
            pair.token1_price = pair.reserve0 / pair.reserve1

        bundle = self.load_bundle()
        if bundle is not None:
            self._update_reference_prices(pair, token0, token1, bundle)
        eth_price = bundle.eth_price if bundle is not None else ZERO_BD

        pair.reserve_usd = tracked_liquidity_usd(
            pair.reserve0,
            self.price_usd(token0, eth_price),
            pair.reserve1,
            self.price_usd(token1, eth_price),
        )
        pair.reserve_eth = safe_div(pair.reserve_usd, eth_price)
        pair.last_update_timestamp = event.block_timestamp
        pair.last_update_block_number = event.block_number

        token0.total_liquidity += pair.reserve0 - previous_reserve0
        token1.total_liquidity += pair.reserve1 - previous_reserve1

        factory = self.load_factory()
        if factory is not None:
            factory.total_liquidity_usd += pair.reserve_usd - previous_reserve_usd
            factory.total_liquidity_eth = safe_div(factory.total_liquidity_usd, eth_price)
            self.store.upsert(factory)

        if bundle is not None:
            self.store.upsert(bundle)
        self.store.upsert(pair)
        self.store.upsert(token0)
        self.store.upsert(token1)
        return True

    def _update_reference_prices(self, pair: Pair, token0: Token, token1: Token, bundle: Bundle) -> None:
        """
        Refresh the native USD price and token native-denominated prices from
        pairs against the wrapped native token.
        """
        native = self.config.wrapped_native_address
        stables = set(self.config.stablecoin_addresses)
        if not native:
            return

        if token0.id == native:
            token0.derived_eth = ONE_BD
            if token1.id in stables and pair.token0_price != ZERO_BD:
                bundle.eth_price = pair.token0_price
            elif pair.token1_price != ZERO_BD:
                token1.derived_eth = pair.token1_price
        elif token1.id == native:
            token1.derived_eth = ONE_BD
            if token0.id in stables and pair.token1_price != ZERO_BD:
                bundle.eth_price = pair.token1_price
            elif pair.token0_price != ZERO_BD:
                token0.derived_eth = pair.token0_price

        for token in (token0, token1):
            if token.id in stables:
                token.derived_eth = safe_div(ONE_BD, bundle.eth_price)

    # -------------------------------------------------------------------------
    # Mint / Burn
    # -------------------------------------------------------------------------

    def _read_total_supply(self, pair: Pair) -> Optional[Decimal]:
        raw = self.reader.read(pair.id, "totalSupply")
        if raw is REVERTED:
            logger.debug(f"totalSupply read for {pair.id} reverted, keeping {pair.total_supply}")
            return None
        return convert_token_to_decimal(int(raw), LP_TOKEN_DECIMALS)

    def _count_liquidity_event(self, event: ChainEvent, pair: Pair, token0: Token, token1: Token) -> None:
        token0.tx_count += 1
        token1.tx_count += 1
        pair.tx_count += 1

        factory = self.load_factory()
        if factory is not None:
            factory.tx_count += 1
            self.store.upsert(factory)

        bucket = pair_epoch_bucket(self.store, pair, event.block_timestamp)
        bucket.tx_count += 1
        bucket.touch(event.block_timestamp, event.block_number)
        self.store.upsert(bucket)

    def handle_mint(self, event: ChainEvent) -> bool:
        loaded = self._load_pair_tokens(event)
        if loaded is None:
            return False
        pair, token0, token1 = loaded

        amount0 = convert_token_to_decimal(event.int_param("amount0"), token0.decimals)
        amount1 = convert_token_to_decimal(event.int_param("amount1"), token1.decimals)
        eth_price = self.eth_price()
        amount_usd = tracked_volume_usd(
            amount0, self.price_usd(token0, eth_price), amount1, self.price_usd(token1, eth_price)
        )

        liquidity = ZERO_BD
        total_supply = self._read_total_supply(pair)
        if total_supply is not None:
            liquidity = total_supply - pair.total_supply
            pair.total_supply = total_supply

        self._count_liquidity_event(event, pair, token0, token1)

        self.store.upsert(Mint(
            id=event.event_id,
            transaction=event.tx_hash,
            timestamp=event.block_timestamp,
            block_number=event.block_number,
            log_index=event.log_index,
            pair=pair.id,
            sender=event.address_param("sender"),
            to=event.tx_from,
            amount0=amount0,
            amount1=amount1,
            liquidity=liquidity,
            amount_usd=amount_usd,
        ))
        self.store.upsert(pair)
        self.store.upsert(token0)
        self.store.upsert(token1)
        return True

    def handle_burn(self, event: ChainEvent) -> bool:
        loaded = self._load_pair_tokens(event)
        if loaded is None:
            return False
        pair, token0, token1 = loaded

        amount0 = convert_token_to_decimal(event.int_param("amount0"), token0.decimals)
        amount1 = convert_token_to_decimal(event.int_param("amount1"), token1.decimals)
        eth_price = self.eth_price()
        amount_usd = tracked_volume_usd(
            amount0, self.price_usd(token0, eth_price), amount1, self.price_usd(token1, eth_price)
        )

        liquidity = ZERO_BD
        total_supply = self._read_total_supply(pair)
        if total_supply is not None:
            liquidity = pair.total_supply - total_supply
            pair.total_supply = total_supply

        self._count_liquidity_event(event, pair, token0, token1)

        self.store.upsert(Burn(
            id=event.event_id,
            transaction=event.tx_hash,
            timestamp=event.block_timestamp,
            block_number=event.block_number,
            log_index=event.log_index,
            pair=pair.id,
            sender=event.address_param("sender"),
            to=event.address_param("to"),
            amount0=amount0,
            amount1=amount1,
            liquidity=liquidity,
            amount_usd=amount_usd,
        ))
        self.store.upsert(pair)
        self.store.upsert(token0)
        self.store.upsert(token1)
        return True

    # -------------------------------------------------------------------------
    # Swap
    # -------------------------------------------------------------------------

    def handle_swap(self, event: ChainEvent) -> bool:
        loaded = self._load_pair_tokens(event)
        if loaded is None:
            return False
        pair, token0, token1 = loaded

        amount0_in = convert_token_to_decimal(event.int_param("amount0In"), token0.decimals)
        amount1_in = convert_token_to_decimal(event.int_param("amount1In"), token1.decimals)
        amount0_out = convert_token_to_decimal(event.int_param("amount0Out"), token0.decimals)
        amount1_out = convert_token_to_decimal(event.int_param("amount1Out"), token1.decimals)

        amount0_total = amount0_in + amount0_out
        amount1_total = amount1_in + amount1_out

        eth_price = self.eth_price()
        price0 = self.price_usd(token0, eth_price)
        price1 = self.price_usd(token1, eth_price)
        amount_usd = tracked_volume_usd(amount0_total, price0, amount1_total, price1)

        token0.trade_volume += amount0_total
        token0.trade_volume_usd += amount_usd
        token0.tx_count += 1
        token1.trade_volume += amount1_total
        token1.trade_volume_usd += amount_usd
        token1.tx_count += 1

        pair.volume_token0 += amount0_total
        pair.volume_token1 += amount1_total
        pair.volume_usd += amount_usd
        pair.tx_count += 1

        factory = self.load_factory()
        if factory is not None:
            factory.total_volume_usd += amount_usd
            factory.total_volume_eth += safe_div(amount_usd, eth_price)
            factory.tx_count += 1
            self.store.upsert(factory)

        bucket = pair_epoch_bucket(self.store, pair, event.block_timestamp)
        bucket.volume_token0 += amount0_total
        bucket.volume_token1 += amount1_total
        bucket.volume_usd += amount_usd
        bucket.tx_count += 1
        bucket.touch(event.block_timestamp, event.block_number)
        self.store.upsert(bucket)

        self.store.upsert(Swap(
            id=event.event_id,
            transaction=event.tx_hash,
            timestamp=event.block_timestamp,
            block_number=event.block_number,
            log_index=event.log_index,
            pair=pair.id,
            sender=event.address_param("sender"),
            to=event.address_param("to"),
            amount0_in=amount0_in,
            amount1_in=amount1_in,
            amount0_out=amount0_out,
            amount1_out=amount1_out,
            amount_usd=amount_usd,
            token0_price_usd=price0,
            token1_price_usd=price1,
        ))

        if event.tx_from:
            user = self.ensure_user(event.tx_from)
            user.usd_swapped += amount_usd
            self.store.upsert(user)

        self.store.upsert(pair)
        self.store.upsert(token0)
        self.store.upsert(token1)
        return True

    # -------------------------------------------------------------------------
    # LP token
    # -------------------------------------------------------------------------

    def _ensure_position(self, user: str, pair: str) -> LiquidityPosition:
        self.ensure_user(user)
        position_id = liquidity_position_id(user, pair)
        return self.store.ensure_exists(
            LiquidityPosition,
            position_id,
            lambda: LiquidityPosition(id=position_id, user=user, pair=pair),
        )

    def handle_transfer(self, event: ChainEvent) -> bool:
        pair = self.store.load(Pair, event.contract_address)
        if pair is None:
            return False

        value = convert_token_to_decimal(
            event.int_param("amount", event.int_param("value")), LP_TOKEN_DECIMALS
        )
        sender = event.address_param("from")
        recipient = event.address_param("to")

        if sender not in (ZERO_ADDRESS, pair.id):
            position = self._ensure_position(sender, pair.id)
            position.liquidity_token_balance = self.clamp_subtract(
                position.liquidity_token_balance, value, "liquidity_position", position.id
            )
            self.store.upsert(position)

        if recipient not in (ZERO_ADDRESS, pair.id):
            position = self._ensure_position(recipient, pair.id)
            position.liquidity_token_balance += value
            self.store.upsert(position)

        return True

    def handle_claim(self, event: ChainEvent) -> bool:
        pair = self.store.load(Pair, event.contract_address)
        if pair is None:
            return False

        position = self._ensure_position(event.address_param("sender"), pair.id)
        position.claimable0 = ZERO_BD
        position.claimable1 = ZERO_BD
        self.store.upsert(position)
        return True
