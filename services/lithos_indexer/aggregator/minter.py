"""Weekly emission events on the minter."""

import logging

from ..core.entities import Minter, MinterEmission
from ..core.epoch import epoch_start
from ..core.types import ChainEvent, SourceKind
from .base import BaseAggregator

logger = logging.getLogger(__name__)


class MinterAggregator(BaseAggregator):
    SOURCE_KIND = SourceKind.MINTER
    EVENTS = {"Mint": "handle_mint"}

    def handle_mint(self, event: ChainEvent) -> bool:
        minter = self.store.load(Minter, event.contract_address)
        if minter is None:
            logger.debug(f"Mint on uninitialized minter {event.contract_address}")
            return False

        sender = self.ensure_user(event.address_param("sender"))
        weekly = event.int_param("weekly")
        period = epoch_start(event.block_timestamp)

        self.store.upsert(MinterEmission(
            id=event.event_id,
            transaction=event.tx_hash,
            timestamp=event.block_timestamp,
            block_number=event.block_number,
            log_index=event.log_index,
            minter=minter.id,
            sender=sender.id,
            weekly_emission=weekly,
            circulating_supply=event.int_param("circulating_supply"),
            circulating_emission=event.int_param("circulating_emission"),
            period=period,
        ))

        minter.total_emissions += weekly
        minter.current_weekly_emission = weekly
        minter.mint_count += 1
        minter.active_period = period
        minter.last_mint_timestamp = event.block_timestamp
        minter.emission_rate = int(self.reader.try_read(minter.id, "EMISSION", default=minter.emission_rate))
        minter.tail_emission_rate = int(
            self.reader.try_read(minter.id, "TAIL_EMISSION", default=minter.tail_emission_rate)
        )
        minter.team_rate = int(self.reader.try_read(minter.id, "teamRate", default=minter.team_rate))
        self.store.upsert(minter)

        logger.info(f"Minter emitted {weekly} for period {period}")
        return True
