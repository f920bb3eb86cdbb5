"""
Token Registry

Get-or-create for token metadata.

Symbol, name and decimals come from chain reads; any read that reverts falls
back to "UNKNOWN", "Unknown Token" and 18. The zero address is never read.
"""

import logging

from ..connectors.base import ChainReader
from ..core.constants import (
    DEFAULT_TOKEN_DECIMALS,
    DEFAULT_TOKEN_NAME,
    DEFAULT_TOKEN_SYMBOL,
    ZERO_ADDRESS,
)
from ..core.entities import Token
from ..persistence.store import EntityStore

logger = logging.getLogger(__name__)

MAX_DECIMALS = 255


class TokenRegistry:
    """
    Creates Token rows on first reference.

    Usage:
        tokens = TokenRegistry(store, reader)
        token = tokens.get_or_create("0xabc...")
    """

    def __init__(self, store: EntityStore, reader: ChainReader):
        self.store = store
        self.reader = reader

    def get_or_create(self, address: str) -> Token:
        address = address.lower()
        return self.store.ensure_exists(Token, address, lambda: self._build(address))

    def _build(self, address: str) -> Token:
        if address == ZERO_ADDRESS:
            return Token(id=address)

        symbol = self.reader.try_read(address, "symbol", default=DEFAULT_TOKEN_SYMBOL)
        name = self.reader.try_read(address, "name", default=DEFAULT_TOKEN_NAME)
        decimals = self.reader.try_read(address, "decimals", default=DEFAULT_TOKEN_DECIMALS)

        if not isinstance(symbol, str) or not symbol:
            symbol = DEFAULT_TOKEN_SYMBOL
        if not isinstance(name, str) or not name:
            name = DEFAULT_TOKEN_NAME
        try:
            decimals = int(decimals)
        except (TypeError, ValueError):
            decimals = DEFAULT_TOKEN_DECIMALS
        if not 0 <= decimals <= MAX_DECIMALS:
            logger.warning(f"Token {address} reported decimals={decimals}, using default")
            decimals = DEFAULT_TOKEN_DECIMALS

        logger.info(f"Registered token {address} ({symbol}, {decimals} decimals)")
        return Token(id=address, symbol=symbol, name=name, decimals=decimals)
