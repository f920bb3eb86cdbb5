"""
Lithos Indexer Constants

Protocol-level constants shared by every aggregator.

Values mirror the deployed contracts (epoch length, fee denominators) and the
defaults the subgraph used before chain reads were available. Fee policy and
reference prices can be overridden through settings; the values here are only
the fallbacks used when a chain read reverts.
"""

from decimal import Decimal


# =============================================================================
# Epoch Calendar
# =============================================================================

# One epoch is exactly one week; every bucketed entity uses this length.
DAY_SECONDS: int = 86_400
WEEK: int = 7 * DAY_SECONDS

SECONDS_PER_YEAR: int = 31_536_000


# =============================================================================
# Addresses & Identifiers
# =============================================================================

ZERO_ADDRESS: str = "0x0000000000000000000000000000000000000000"

# Fixed ids for singleton rows materialized by the bootstrap step
FACTORY_ID: str = "1"
BUNDLE_ID: str = "1"
CURSOR_ID: str = "cursor"


# =============================================================================
# Token Metadata Fallbacks
# =============================================================================

DEFAULT_TOKEN_SYMBOL: str = "UNKNOWN"
DEFAULT_TOKEN_NAME: str = "Unknown Token"
DEFAULT_TOKEN_DECIMALS: int = 18

# Claimable-reward reports label reverted symbol reads differently from the
# registry so the two sources can be told apart in output.
REPORT_TOKEN_SYMBOL: str = "TOKEN"

# LP tokens and veNFT balances are always 18 decimals
LP_TOKEN_DECIMALS: int = 18


# =============================================================================
# Fee Policy (out of FEE_DENOMINATOR)
# =============================================================================

FEE_DENOMINATOR: int = 10_000

DEFAULT_STABLE_FEE: int = 4           # 0.04%
DEFAULT_VOLATILE_FEE: int = 18        # 0.18%
DEFAULT_STAKING_FEE_BPS: int = 3_000  # 30% of the post-referral fee
DEFAULT_REFERRAL_FEE_BPS: int = 1_200  # 12% of the gross fee


# =============================================================================
# Numeric Helpers
# =============================================================================

ZERO_BD: Decimal = Decimal("0")
ONE_BD: Decimal = Decimal("1")
TWO_BD: Decimal = Decimal("2")

# Reference native price used until a native/stable pair syncs
DEFAULT_NATIVE_PRICE_USD: Decimal = Decimal("2000")

# Concentrated-liquidity fixed point scales
Q128: int = 2 ** 128
Q192: int = 2 ** 192


# =============================================================================
# Price Conversion Graph
# =============================================================================

# Symbol aliases applied after upper-casing. Wrapped native resolves to the
# canonical native symbol.
TOKEN_SYMBOL_ALIASES: dict[str, str] = {
    "LITH": "LITH",
    "XPL": "XPL",
    "WXPL": "XPL",
    "USDT": "USDT",
}

# Manual quotes (BASE/QUOTE = price) used when no quote table is configured.
DEFAULT_MANUAL_QUOTES: list[tuple[str, str, float]] = [
    ("LITH", "XPL", 0.2),
    ("LITH", "USDT", 0.096),
    ("XPL", "USDT", 0.48),
]

# Gauge emissions are paid in the governance token regardless of what the
# gauge's rewardToken() returns.
EMISSION_SYMBOL: str = "LITH"
REFERENCE_QUOTE_SYMBOL: str = "USDT"

# Governance token; always keyed as EMISSION_SYMBOL in the conversion graph
LITH_ADDRESS: str = "0xabb48792a3161e81b47ca084c0b7a22a50324a44"
