# Lithos Indexer Core Modules
"""
Core domain logic for protocol event aggregation.

Modules:
- types: Event input, enums and protocol configuration (Pydantic models)
- entities: Derived analytics entities
- constants: Protocol constants and fallbacks
- epoch: Weekly epoch calendar
- fees: Three-way swap fee split
- pricing: Decimal conversion and tracked-USD valuation
- price_graph: Multi-hop symbol conversion graph
- errors: Domain exceptions
"""

from .types import (
    BribeType,
    ChainEvent,
    ProtocolConfig,
    SkipReason,
    SourceKind,
    VoteAction,
)

from .epoch import (
    epoch_bounds,
    epoch_end,
    epoch_start,
    next_epoch_start,
)

from .fees import FeeSplit, split_fee

from .pricing import (
    convert_token_to_decimal,
    safe_div,
    tracked_liquidity_usd,
    tracked_volume_usd,
)

from .price_graph import (
    PriceConversionGraph,
    PriceQuote,
    default_quotes,
    parse_quotes,
)

from .errors import (
    EntityNotFoundError,
    IndexerError,
    InvalidEventError,
    OutOfOrderEventError,
)

__all__ = [
    # Types
    "BribeType",
    "ChainEvent",
    "ProtocolConfig",
    "SkipReason",
    "SourceKind",
    "VoteAction",
    # Epochs
    "epoch_bounds",
    "epoch_end",
    "epoch_start",
    "next_epoch_start",
    # Fees
    "FeeSplit",
    "split_fee",
    # Pricing
    "convert_token_to_decimal",
    "safe_div",
    "tracked_liquidity_usd",
    "tracked_volume_usd",
    # Price Graph
    "PriceConversionGraph",
    "PriceQuote",
    "default_quotes",
    "parse_quotes",
    # Errors
    "EntityNotFoundError",
    "IndexerError",
    "InvalidEventError",
    "OutOfOrderEventError",
]
