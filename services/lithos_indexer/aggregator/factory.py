"""
Factory Aggregators

Pair and concentrated-liquidity pool creation. Each creation event registers
the new contract as a data source so its own events get routed.
"""

import logging

from ..core.entities import CLPool, Pair
from ..core.types import ChainEvent, SourceKind
from .base import BaseAggregator

logger = logging.getLogger(__name__)


class PairFactoryAggregator(BaseAggregator):
    """Handles PairCreated on the pair factory."""

    SOURCE_KIND = SourceKind.FACTORY
    EVENTS = {"PairCreated": "handle_pair_created"}

    def handle_pair_created(self, event: ChainEvent) -> bool:
        factory = self.load_factory()
        if factory is None:
            logger.debug("Factory not initialized, skipping PairCreated")
            return False

        pair_id = event.address_param("pair")
        if self.store.exists(Pair, pair_id):
            logger.debug(f"Pair {pair_id} already exists")
            return True

        token0 = self.tokens.get_or_create(event.address_param("token0"))
        token1 = self.tokens.get_or_create(event.address_param("token1"))

        pair = Pair(
            id=pair_id,
            token0=token0.id,
            token1=token1.id,
            stable=bool(event.params.get("stable", False)),
            created_at_timestamp=event.block_timestamp,
            created_at_block_number=event.block_number,
            last_update_timestamp=event.block_timestamp,
            last_update_block_number=event.block_number,
        )
        self.store.upsert(pair)

        factory.pair_count += 1
        self.store.upsert(factory)

        self.sources.register(pair_id, SourceKind.PAIR, event.block_number)
        logger.info(f"Pair {pair_id} created ({token0.symbol}/{token1.symbol}, stable={pair.stable})")
        return True


class CLFactoryAggregator(BaseAggregator):
    """Handles Pool creation on the concentrated-liquidity factory."""

    SOURCE_KIND = SourceKind.CL_FACTORY
    EVENTS = {"Pool": "handle_pool_created"}

    def handle_pool_created(self, event: ChainEvent) -> bool:
        pool_id = event.address_param("pool")
        if self.store.exists(CLPool, pool_id):
            return True

        token0 = self.tokens.get_or_create(event.address_param("token0"))
        token1 = self.tokens.get_or_create(event.address_param("token1"))

        self.store.upsert(CLPool(
            id=pool_id,
            factory=event.contract_address,
            token0=token0.id,
            token1=token1.id,
            created_at_timestamp=event.block_timestamp,
            created_at_block_number=event.block_number,
            last_update_timestamp=event.block_timestamp,
            last_update_block_number=event.block_number,
        ))

        self.sources.register(pool_id, SourceKind.CL_POOL, event.block_number)
        logger.info(f"CL pool {pool_id} created ({token0.symbol}/{token1.symbol})")
        return True
