"""
Lithos Indexer Core Types

Value types shared across the aggregation engine: the decoded event shape,
closed enumerations and the protocol configuration handed to aggregators.

SERIALIZATION CONTRACT:
    Internal Python code uses snake_case (Pythonic convention).
    API responses use camelCase to match the subgraph-style GraphQL schema
    consumers already query. This is achieved via Pydantic's
    `alias_generator` and `populate_by_name`.

    Example:
        Internal: event.block_timestamp
        API JSON: {"blockTimestamp": 1735689600}
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import (
    DEFAULT_NATIVE_PRICE_USD,
    DEFAULT_REFERRAL_FEE_BPS,
    DEFAULT_STABLE_FEE,
    DEFAULT_STAKING_FEE_BPS,
    DEFAULT_VOLATILE_FEE,
    ZERO_ADDRESS,
)


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase for API serialization."""
    components = string.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


# =============================================================================
# Core Enums
# =============================================================================

class SourceKind(str, Enum):
    """Contract roles the engine routes events for."""
    FACTORY = "factory"
    PAIR = "pair"
    CL_FACTORY = "cl_factory"
    CL_POOL = "cl_pool"
    GAUGE = "gauge"
    BRIBE = "bribe"
    VOTER = "voter"
    VOTING_ESCROW = "voting_escrow"
    MINTER = "minter"


class BribeType(str, Enum):
    """
    Bribe variant.

    - INTERNAL: protocol fee rebate paid to voters of the pool
    - EXTERNAL: third-party incentive deposited for voters of the pool
    """
    INTERNAL = "internal"
    EXTERNAL = "external"


class VoteAction(str, Enum):
    """Voter contract action that triggered a vote resync."""
    VOTED = "voted"
    ABSTAINED = "abstained"


class SkipReason(str, Enum):
    """Why an event produced no entity changes."""
    UNROUTED = "unrouted"            # contract address not a known data source
    UNHANDLED = "unhandled"          # known source, event name not handled
    MISSING_ENTITY = "missing_entity"  # referenced entity not created yet
    READ_REVERTED = "read_reverted"    # required chain read failed, state kept


# =============================================================================
# Event Input
# =============================================================================

class ChainEvent(BaseModel):
    """
    A decoded contract log.

    `(tx_hash, log_index)` is the natural unique id of anything derived from
    the event. Addresses are normalized to lowercase so they can be used as
    entity ids directly.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    contract_address: str = Field(..., description="Emitting contract")
    block_number: int = Field(..., ge=0)
    block_timestamp: int = Field(..., ge=0, description="Block time (unix seconds)")
    tx_hash: str
    log_index: int = Field(..., ge=0)
    event_name: str
    params: dict[str, Any] = Field(default_factory=dict)
    tx_from: Optional[str] = Field(None, description="Transaction sender, if known")

    @field_validator("contract_address", "tx_hash", "tx_from")
    @classmethod
    def _lowercase(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if isinstance(value, str) else value

    @property
    def event_id(self) -> str:
        """Unique id for entities derived from this event."""
        return f"{self.tx_hash}-{self.log_index}"

    @property
    def position(self) -> tuple[int, int]:
        """Ordering key within the chain."""
        return (self.block_number, self.log_index)

    def address_param(self, name: str) -> str:
        """Read an address parameter, normalized to lowercase."""
        value = self.params.get(name)
        if value is None:
            return ZERO_ADDRESS
        return str(value).lower()

    def int_param(self, name: str, default: int = 0) -> int:
        """Read an integer parameter (decoders may hand over strings for uint256)."""
        value = self.params.get(name)
        if value is None:
            return default
        return int(value)


# =============================================================================
# Protocol Configuration
# =============================================================================

class ProtocolConfig(BaseModel):
    """Deployment addresses and fee-policy fallbacks for one protocol instance."""

    factory_address: Optional[str] = None
    cl_factory_address: Optional[str] = None
    voter_address: Optional[str] = None
    voting_escrow_address: Optional[str] = None
    minter_address: Optional[str] = None

    wrapped_native_address: Optional[str] = None
    stablecoin_addresses: list[str] = Field(default_factory=list)

    referral_fee_bps: int = Field(default=DEFAULT_REFERRAL_FEE_BPS, ge=0, le=10_000)
    staking_fee_bps: int = Field(default=DEFAULT_STAKING_FEE_BPS, ge=0, le=10_000)
    stable_fee: int = DEFAULT_STABLE_FEE
    volatile_fee: int = DEFAULT_VOLATILE_FEE
    native_price_usd: Decimal = DEFAULT_NATIVE_PRICE_USD

    @field_validator(
        "factory_address",
        "cl_factory_address",
        "voter_address",
        "voting_escrow_address",
        "minter_address",
        "wrapped_native_address",
    )
    @classmethod
    def _lowercase_address(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else None

    @field_validator("stablecoin_addresses")
    @classmethod
    def _lowercase_addresses(cls, value: list[str]) -> list[str]:
        return [v.lower() for v in value if v]

    def static_sources(self) -> dict[str, SourceKind]:
        """Data sources known from configuration (not discovered from events)."""
        candidates = [
            (self.factory_address, SourceKind.FACTORY),
            (self.cl_factory_address, SourceKind.CL_FACTORY),
            (self.voter_address, SourceKind.VOTER),
            (self.voting_escrow_address, SourceKind.VOTING_ESCROW),
            (self.minter_address, SourceKind.MINTER),
        ]
        return {address: kind for address, kind in candidates if address}
