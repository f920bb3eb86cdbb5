"""
Fee Split

Splits a pair's gross swap fee into referral, staking and LP shares.

The split runs on raw integer token units so the three shares always add back
up to the gross amount. Integer division truncates toward zero; the LP share
absorbs whatever is left.

    referral = amount * referral_bps // 10000
    after    = max(amount - referral, 0)
    staking  = after * staking_bps // 10000
    lp       = max(after - staking, 0)
"""

from dataclasses import dataclass

from .constants import FEE_DENOMINATOR


@dataclass(frozen=True)
class FeeSplit:
    """Result of splitting one gross fee amount."""

    referral: int
    staking: int
    lp: int

    @property
    def total(self) -> int:
        return self.referral + self.staking + self.lp


def split_fee(amount: int, referral_bps: int, staking_bps: int) -> FeeSplit:
    """
    Split a gross fee amount.

    Args:
        amount: Gross fee in raw token units
        referral_bps: Referral share of the gross fee, out of 10000
        staking_bps: Staking share of the post-referral fee, out of 10000

    Returns:
        FeeSplit whose shares sum to `amount` for any non-negative input
    """
    if amount <= 0:
        return FeeSplit(referral=0, staking=0, lp=0)

    referral_bps = min(max(referral_bps, 0), FEE_DENOMINATOR)
    staking_bps = min(max(staking_bps, 0), FEE_DENOMINATOR)

    referral = amount * referral_bps // FEE_DENOMINATOR
    after_referral = max(amount - referral, 0)
    staking = after_referral * staking_bps // FEE_DENOMINATOR
    lp = max(after_referral - staking, 0)

    return FeeSplit(referral=referral, staking=staking, lp=lp)
