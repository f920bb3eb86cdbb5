"""
Protocol Bootstrap

Creates the singleton rows every aggregator depends on, once, before the first
event is processed:
- Factory (fee policy read from the pair factory, config fallbacks)
- Bundle (reference native price)
- Voter, VotingEscrow and Minter rows for configured addresses
- Data sources for configured contract addresses
- Indexer cursor

Handlers only ever load these rows; they never create them. Running the
bootstrap again is a no-op for rows that already exist.
"""

import logging

from ..connectors.base import ChainReader
from ..core.constants import BUNDLE_ID, CURSOR_ID, FACTORY_ID
from ..core.entities import Bundle, Factory, IndexerCursor, Minter, Voter, VotingEscrow
from ..core.types import ProtocolConfig
from ..persistence.store import EntityStore
from .sources import DataSourceRegistry

logger = logging.getLogger(__name__)


def _read_fee(reader: ChainReader, address: str, method: str, default: int) -> int:
    value = reader.try_read(address, method, default=default)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _build_factory(reader: ChainReader, config: ProtocolConfig) -> Factory:
    factory = Factory(
        id=FACTORY_ID,
        stable_fee=config.stable_fee,
        volatile_fee=config.volatile_fee,
        referral_fee_bps=config.referral_fee_bps,
        staking_fee_bps=config.staking_fee_bps,
    )
    address = config.factory_address
    if address:
        factory.stable_fee = _read_fee(reader, address, "stableFee", config.stable_fee)
        factory.volatile_fee = _read_fee(reader, address, "volatileFee", config.volatile_fee)
        factory.staking_fee_bps = _read_fee(reader, address, "stakingNFTFee", config.staking_fee_bps)
        factory.referral_fee_bps = _read_fee(reader, address, "MAX_REFERRAL_FEE", config.referral_fee_bps)
    logger.info(
        f"Fee policy: referral={factory.referral_fee_bps}bps staking={factory.staking_fee_bps}bps "
        f"stable={factory.stable_fee} volatile={factory.volatile_fee}"
    )
    return factory


def _build_minter(reader: ChainReader, address: str) -> Minter:
    minter = Minter(id=address)
    minter.emission_rate = int(reader.try_read(address, "EMISSION", default=minter.emission_rate))
    minter.tail_emission_rate = int(reader.try_read(address, "TAIL_EMISSION", default=minter.tail_emission_rate))
    minter.team_rate = int(reader.try_read(address, "teamRate", default=minter.team_rate))
    return minter


def initialize_protocol(
    store: EntityStore,
    reader: ChainReader,
    config: ProtocolConfig,
    sources: DataSourceRegistry,
) -> Factory:
    """
    Materialize protocol singletons and static data sources.

    Returns:
        The Factory row (existing or newly created)
    """
    factory = store.ensure_exists(Factory, FACTORY_ID, lambda: _build_factory(reader, config))
    store.ensure_exists(Bundle, BUNDLE_ID, lambda: Bundle(id=BUNDLE_ID, eth_price=config.native_price_usd))
    store.ensure_exists(IndexerCursor, CURSOR_ID, lambda: IndexerCursor(id=CURSOR_ID))

    if config.voter_address:
        address = config.voter_address
        store.ensure_exists(Voter, address, lambda: Voter(id=address))
    if config.voting_escrow_address:
        address = config.voting_escrow_address
        store.ensure_exists(VotingEscrow, address, lambda: VotingEscrow(id=address))
    if config.minter_address:
        address = config.minter_address
        store.ensure_exists(Minter, address, lambda: _build_minter(reader, address))

    for address, kind in config.static_sources().items():
        sources.register(address, kind)

    logger.info(f"Protocol initialized with {len(config.static_sources())} static data sources")
    return factory
