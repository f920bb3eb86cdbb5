"""
Voting Escrow Aggregator

Lock, withdraw, supply, ownership and delegation events on the vote-escrow
NFT contract. Locked values are raw 18-decimal token units on the escrow and
the NFT; user totals are decimal-normalized.
"""

import logging

from ..core.constants import DEFAULT_TOKEN_DECIMALS, ZERO_ADDRESS
from ..core.entities import VeNFT, VotingEscrow
from ..core.pricing import convert_token_to_decimal
from ..core.types import ChainEvent, SourceKind
from .base import BaseAggregator

logger = logging.getLogger(__name__)


class VotingEscrowAggregator(BaseAggregator):
    """Handles veNFT lifecycle events."""

    SOURCE_KIND = SourceKind.VOTING_ESCROW
    EVENTS = {
        "Deposit": "handle_deposit",
        "Withdraw": "handle_withdraw",
        "Supply": "handle_supply",
        "Transfer": "handle_transfer",
        "DelegateChanged": "handle_delegate_changed",
        "DelegateVotesChanged": "handle_delegate_votes_changed",
    }

    def _load_escrow(self, event: ChainEvent):
        escrow = self.store.load(VotingEscrow, event.contract_address)
        if escrow is None:
            logger.debug(f"{event.event_name} on uninitialized voting escrow {event.contract_address}")
        return escrow

    def _ve_nft(self, event: ChainEvent) -> VeNFT:
        token_id = event.int_param("tokenId")
        return self.store.ensure_exists(
            VeNFT,
            str(token_id),
            lambda: VeNFT(id=str(token_id), token_id=token_id, voting_escrow=event.contract_address),
        )

    def handle_deposit(self, event: ChainEvent) -> bool:
        escrow = self._load_escrow(event)
        if escrow is None:
            return False

        value = event.int_param("value")
        locktime = event.int_param("locktime")
        self.ensure_user(event.address_param("provider"))

        nft = self._ve_nft(event)
        # increase_unlock_time deposits carry no value
        if value > 0:
            nft.value += value
        nft.lock_end = locktime
        nft.lock_duration = max(locktime - event.block_timestamp, 0)
        nft.updated_at = event.block_timestamp
        if nft.created_at == 0:
            nft.created_at = event.block_timestamp
            escrow.total_nfts += 1
        self.store.upsert(nft)

        if value > 0 and nft.owner != ZERO_ADDRESS:
            owner = self.ensure_user(nft.owner)
            owner.total_locked += convert_token_to_decimal(value, DEFAULT_TOKEN_DECIMALS)
            self.store.upsert(owner)

        escrow.total_locked += value
        self.store.upsert(escrow)
        return True

    def handle_withdraw(self, event: ChainEvent) -> bool:
        escrow = self._load_escrow(event)
        if escrow is None:
            return False

        value = event.int_param("value")
        self.ensure_user(event.address_param("provider"))

        nft = self.store.load(VeNFT, str(event.int_param("tokenId")))
        if nft is not None:
            nft.value = 0
            nft.lock_end = 0
            nft.lock_duration = 0
            nft.is_active = False
            nft.updated_at = event.block_timestamp
            self.store.upsert(nft)

        escrow.total_locked = self.clamp_subtract(escrow.total_locked, value, "voting_escrow", escrow.id)
        self.store.upsert(escrow)
        return True

    def handle_supply(self, event: ChainEvent) -> bool:
        escrow = self._load_escrow(event)
        if escrow is None:
            return False
        escrow.total_supply = event.int_param("supply")
        self.store.upsert(escrow)
        return True

    def handle_transfer(self, event: ChainEvent) -> bool:
        if self._load_escrow(event) is None:
            return False

        sender = event.address_param("from")
        receiver = event.address_param("to")
        nft = self._ve_nft(event)
        locked = convert_token_to_decimal(nft.value, DEFAULT_TOKEN_DECIMALS)

        if sender != ZERO_ADDRESS:
            user = self.ensure_user(sender)
            user.ve_nft_count = self.clamp_subtract(user.ve_nft_count, 1, "user_ve_nft_count", user.id)
            user.total_locked = self.clamp_subtract(user.total_locked, locked, "user_total_locked", user.id)
            self.store.upsert(user)
        if receiver != ZERO_ADDRESS:
            user = self.ensure_user(receiver)
            user.ve_nft_count += 1
            user.total_locked += locked
            self.store.upsert(user)

        nft.owner = receiver
        nft.updated_at = event.block_timestamp
        self.store.upsert(nft)
        return True

    def handle_delegate_changed(self, event: ChainEvent) -> bool:
        delegator = self.ensure_user(event.address_param("delegator"))
        delegate = event.address_param("toDelegate")
        if delegate != ZERO_ADDRESS:
            self.ensure_user(delegate)
            delegator.delegated_to = delegate
        else:
            delegator.delegated_to = None
        self.store.upsert(delegator)
        return True

    def handle_delegate_votes_changed(self, event: ChainEvent) -> bool:
        delegate = self.ensure_user(event.address_param("delegate"))
        delegate.delegated_voting_power = event.int_param("newVotes")
        self.store.upsert(delegate)
        return True
