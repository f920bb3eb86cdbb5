"""
Lithos Indexer Configuration

Pydantic Settings for the Lithos Indexer service.
Loads from environment variables with sensible defaults.
"""

from decimal import Decimal
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings

from ..core.constants import (
    DEFAULT_NATIVE_PRICE_USD,
    DEFAULT_REFERRAL_FEE_BPS,
    DEFAULT_STABLE_FEE,
    DEFAULT_STAKING_FEE_BPS,
    DEFAULT_VOLATILE_FEE,
    EMISSION_SYMBOL,
    LITH_ADDRESS,
)
from ..core.price_graph import PriceConversionGraph, default_quotes, parse_quotes
from ..core.types import ProtocolConfig


class Settings(BaseSettings):
    """Lithos Indexer service configuration."""

    # Service identity
    service_name: str = Field(default="lithos-indexer", description="Service name for logging/metrics")
    environment: Literal["local", "staging", "production"] = Field(default="local")
    service_version: str = Field(default="0.1.0")
    log_level: str = Field(default="INFO")

    # Protocol deployment (empty = contract role not indexed)
    factory_address: str = Field(default="", description="Pair factory")
    cl_factory_address: str = Field(default="", description="Concentrated liquidity factory")
    voter_address: str = Field(default="")
    voting_escrow_address: str = Field(default="")
    minter_address: str = Field(default="")
    wrapped_native_address: str = Field(default="", description="Wrapped native token (WXPL)")
    stablecoin_addresses: str = Field(default="", description="Comma-separated stablecoin addresses")

    # Fee policy fallbacks (used when factory reads revert)
    referral_fee_bps: int = Field(default=DEFAULT_REFERRAL_FEE_BPS, ge=0, le=10_000)
    staking_fee_bps: int = Field(default=DEFAULT_STAKING_FEE_BPS, ge=0, le=10_000)
    stable_fee: int = Field(default=DEFAULT_STABLE_FEE)
    volatile_fee: int = Field(default=DEFAULT_VOLATILE_FEE)

    # Reference price bootstrap
    eth_price_usd: Decimal = Field(
        default=DEFAULT_NATIVE_PRICE_USD,
        description="Native token USD price used until a stable pair syncs",
    )

    # Valuation
    manual_quotes: str = Field(
        default="",
        description="Comma-separated BASE/QUOTE=price quotes (empty = built-in quotes)",
    )
    lith_address: str = Field(default=LITH_ADDRESS, description="Governance token address alias")

    # Chain access
    rpc_url: str = Field(default="", description="JSON-RPC endpoint (empty = every read reverts)")
    rpc_timeout_seconds: float = Field(default=10.0)

    # Database
    database_url: str = Field(default="", description="PostgreSQL connection string")
    snapshot_interval_blocks: int = Field(default=1_000, ge=1, description="Blocks between snapshots")

    # Replay on startup
    replay_file: str = Field(default="", description="JSON-lines event file to replay at startup")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Admin authentication (required for mutation endpoints)
    admin_api_key: str = Field(
        default="",
        description="API key for admin/mutation endpoints (e.g., event ingestion). Required in production."
    )

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        extra = "ignore"

    @property
    def stablecoin_list(self) -> list[str]:
        """Parse stablecoin addresses string to list."""
        return [a.strip().lower() for a in self.stablecoin_addresses.split(",") if a.strip()]

    def protocol_config(self) -> ProtocolConfig:
        """Deployment and fee policy handed to the aggregation engine."""
        return ProtocolConfig(
            factory_address=self.factory_address or None,
            cl_factory_address=self.cl_factory_address or None,
            voter_address=self.voter_address or None,
            voting_escrow_address=self.voting_escrow_address or None,
            minter_address=self.minter_address or None,
            wrapped_native_address=self.wrapped_native_address or None,
            stablecoin_addresses=self.stablecoin_list,
            referral_fee_bps=self.referral_fee_bps,
            staking_fee_bps=self.staking_fee_bps,
            stable_fee=self.stable_fee,
            volatile_fee=self.volatile_fee,
            native_price_usd=self.eth_price_usd,
        )

    def price_graph(self) -> PriceConversionGraph:
        """Conversion graph from the configured (or built-in) manual quotes."""
        quotes = parse_quotes(self.manual_quotes) if self.manual_quotes else default_quotes()
        aliases = {self.lith_address: EMISSION_SYMBOL} if self.lith_address else {}
        return PriceConversionGraph(quotes, address_aliases=aliases)


# Global settings instance
settings = Settings()
