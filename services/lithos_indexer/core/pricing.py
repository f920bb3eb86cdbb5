"""
Pricing Helpers

Decimal conversion and the tracked-USD valuation rules used by the pair and
fee aggregators.

A price of None or zero counts as unknown. Valuations never raise on missing
prices; they degrade to the legs that are known, or to zero.
"""

from decimal import Decimal
from typing import Optional

from .constants import ONE_BD, Q192, TWO_BD, ZERO_BD


def exponent_to_decimal(decimals: int) -> Decimal:
    """10 ** decimals as a Decimal."""
    return Decimal(10) ** decimals


def convert_token_to_decimal(amount: int, decimals: int) -> Decimal:
    """Convert a raw token amount to its decimal-normalized value."""
    if decimals == 0:
        return Decimal(amount)
    return Decimal(amount) / exponent_to_decimal(decimals)


def safe_div(numerator: Decimal, denominator: Decimal) -> Decimal:
    """Divide, returning zero when the denominator is zero."""
    if denominator == ZERO_BD:
        return ZERO_BD
    return numerator / denominator


def _known(price: Optional[Decimal]) -> bool:
    return price is not None and price != ZERO_BD


def tracked_volume_usd(
    amount0: Decimal,
    price0: Optional[Decimal],
    amount1: Decimal,
    price1: Optional[Decimal],
) -> Decimal:
    """
    USD value of a two-sided amount (swap volume, fees).

    Both prices known: average of the two legs, since each leg prices the same
    trade. Exactly one known: that leg alone. Neither known: zero.
    """
    known0 = _known(price0)
    known1 = _known(price1)

    if known0 and known1:
        return (amount0 * price0 + amount1 * price1) / TWO_BD
    if known0:
        return amount0 * price0
    if known1:
        return amount1 * price1
    return ZERO_BD


def tracked_liquidity_usd(
    amount0: Decimal,
    price0: Optional[Decimal],
    amount1: Decimal,
    price1: Optional[Decimal],
) -> Decimal:
    """
    USD value of pooled reserves.

    Both prices known: sum of both legs. Exactly one known: double that leg,
    since reserves are balanced by value. Neither known: zero.
    """
    known0 = _known(price0)
    known1 = _known(price1)

    if known0 and known1:
        return amount0 * price0 + amount1 * price1
    if known0:
        return amount0 * price0 * TWO_BD
    if known1:
        return amount1 * price1 * TWO_BD
    return ZERO_BD


def token_price_usd(derived_eth: Decimal, eth_price: Decimal) -> Optional[Decimal]:
    """Reference USD price from the token's native-denominated price, or None."""
    if derived_eth == ZERO_BD or eth_price == ZERO_BD:
        return None
    return derived_eth * eth_price


def sqrt_price_to_prices(
    sqrt_price_x96: int,
    decimals0: int,
    decimals1: int,
) -> tuple[Decimal, Decimal]:
    """
    Derive (price of token0 in token1, price of token1 in token0) from a
    Q64.96 square-root price.
    """
    if sqrt_price_x96 <= 0:
        return ZERO_BD, ZERO_BD

    raw = Decimal(sqrt_price_x96 * sqrt_price_x96) / Decimal(Q192)
    price0 = raw * exponent_to_decimal(decimals0) / exponent_to_decimal(decimals1)
    price1 = safe_div(ONE_BD, price0)
    return price0, price1
