"""
Fee Split Aggregator

Splits each pair `Fees(amount0, amount1)` event into referral, staking and LP
shares using the factory's fee policy, and adds every share to the pair's
cumulative totals and to its current epoch bucket.

The split runs on raw token units (see core.fees) and is converted to decimal
afterwards, so the three decimal shares also reconcile with the gross fee.
USD values use the tracked-USD rule per share.
"""

import logging
from decimal import Decimal

from ..core.entities import Pair, Token
from ..core.fees import FeeSplit, split_fee
from ..core.pricing import convert_token_to_decimal, tracked_volume_usd
from ..core.types import ChainEvent, SourceKind
from .base import BaseAggregator
from .pair import pair_epoch_bucket

logger = logging.getLogger(__name__)


class FeeSplitAggregator(BaseAggregator):
    """Handles Fees events on pairs."""

    SOURCE_KIND = SourceKind.PAIR
    EVENTS = {"Fees": "handle_fees"}

    def handle_fees(self, event: ChainEvent) -> bool:
        pair = self.store.load(Pair, event.contract_address)
        factory = self.load_factory()
        if pair is None or factory is None:
            logger.debug(f"Fees for unknown pair {event.contract_address}")
            return False
        token0 = self.store.load(Token, pair.token0)
        token1 = self.store.load(Token, pair.token1)
        if token0 is None or token1 is None:
            return False

        split0 = split_fee(event.int_param("amount0"), factory.referral_fee_bps, factory.staking_fee_bps)
        split1 = split_fee(event.int_param("amount1"), factory.referral_fee_bps, factory.staking_fee_bps)

        def to_decimal(split: FeeSplit, decimals: int) -> tuple[Decimal, Decimal, Decimal]:
            return (
                convert_token_to_decimal(split.lp, decimals),
                convert_token_to_decimal(split.referral, decimals),
                convert_token_to_decimal(split.staking, decimals),
            )

        lp0, referral0, staking0 = to_decimal(split0, token0.decimals)
        lp1, referral1, staking1 = to_decimal(split1, token1.decimals)

        eth_price = self.eth_price()
        price0 = self.price_usd(token0, eth_price)
        price1 = self.price_usd(token1, eth_price)
        lp_usd = tracked_volume_usd(lp0, price0, lp1, price1)
        referral_usd = tracked_volume_usd(referral0, price0, referral1, price1)
        staking_usd = tracked_volume_usd(staking0, price0, staking1, price1)

        bucket = pair_epoch_bucket(self.store, pair, event.block_timestamp)
        for target in (pair, bucket):
            target.fees_token0 += lp0
            target.fees_token1 += lp1
            target.fees_usd += lp_usd
            target.referral_fees_token0 += referral0
            target.referral_fees_token1 += referral1
            target.referral_fees_usd += referral_usd
            target.staking_fees_token0 += staking0
            target.staking_fees_token1 += staking1
            target.staking_fees_usd += staking_usd

        bucket.touch(event.block_timestamp, event.block_number)
        self.store.upsert(bucket)
        self.store.upsert(pair)
        return True
