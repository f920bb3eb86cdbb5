"""
Price Conversion Graph

Sparse multi-hop conversion between token symbols, built from a small table
of manual quotes.

Each quote `BASE/QUOTE = price` adds two directed edges:
    BASE  -> QUOTE  factor price
    QUOTE -> BASE   factor 1 / price

`resolve(from, to)` walks the graph breadth-first in edge insertion order and
returns the product of factors along the first path that reaches `to`. The
graph is immutable once built and safe to share across threads.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from .constants import DEFAULT_MANUAL_QUOTES, TOKEN_SYMBOL_ALIASES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceQuote:
    """One manual quote: 1 `base` is worth `price` units of `quote`."""

    base: str
    quote: str
    price: float

    @property
    def is_valid(self) -> bool:
        return (
            bool(self.base)
            and bool(self.quote)
            and math.isfinite(self.price)
            and self.price > 0
        )


@dataclass(frozen=True)
class PriceEdge:
    """Directed conversion edge."""

    to: str
    factor: float


def parse_quotes(raw: str) -> list[PriceQuote]:
    """
    Parse a quote table string of the form "LITH/XPL=0.2,XPL/USDT=0.48".

    Malformed entries are logged and skipped.
    """
    quotes: list[PriceQuote] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        try:
            pair, price = entry.split("=", 1)
            base, quote = pair.split("/", 1)
            quotes.append(PriceQuote(base=base.strip(), quote=quote.strip(), price=float(price)))
        except ValueError:
            logger.warning(f"Ignoring malformed price quote: {entry!r}")
    return quotes


def default_quotes() -> list[PriceQuote]:
    """Built-in manual quotes."""
    return [PriceQuote(base, quote, price) for base, quote, price in DEFAULT_MANUAL_QUOTES]


class PriceConversionGraph:
    """
    Immutable symbol conversion graph.

    Usage:
        graph = PriceConversionGraph(default_quotes())
        graph.resolve("LITH", "USDT")   # 0.096
        graph.resolve("USDT", "LITH")   # 1 / 0.096
        graph.resolve("FOO", "USDT")    # None
    """

    def __init__(
        self,
        quotes: Iterable[PriceQuote],
        symbol_aliases: Optional[Mapping[str, str]] = None,
        address_aliases: Optional[Mapping[str, str]] = None,
    ):
        self._symbol_aliases = MappingProxyType(
            {k.upper(): v.upper() for k, v in (symbol_aliases or TOKEN_SYMBOL_ALIASES).items()}
        )
        self._address_aliases = MappingProxyType(
            {k.lower(): self.normalize_symbol(v) for k, v in (address_aliases or {}).items()}
        )

        adjacency: dict[str, list[PriceEdge]] = {}
        accepted: list[PriceQuote] = []
        for quote in quotes:
            if not quote.is_valid:
                logger.debug(f"Dropping invalid quote {quote.base}/{quote.quote}={quote.price}")
                continue
            base = self.normalize_symbol(quote.base)
            counter = self.normalize_symbol(quote.quote)
            adjacency.setdefault(base, []).append(PriceEdge(counter, quote.price))
            adjacency.setdefault(counter, []).append(PriceEdge(base, 1 / quote.price))
            accepted.append(quote)

        self._edges: Mapping[str, tuple[PriceEdge, ...]] = MappingProxyType(
            {token: tuple(edges) for token, edges in adjacency.items()}
        )
        self._quotes = tuple(accepted)

    @property
    def quotes(self) -> tuple[PriceQuote, ...]:
        """Quotes that made it into the graph, in input order."""
        return self._quotes

    @property
    def symbols(self) -> frozenset[str]:
        return frozenset(self._edges)

    def edges(self, symbol: str) -> tuple[PriceEdge, ...]:
        """Outgoing edges for a symbol, in insertion order."""
        return self._edges.get(self.normalize_symbol(symbol), ())

    def normalize_symbol(self, symbol: Optional[str]) -> str:
        """Upper-case a symbol and apply the alias table."""
        upper = (symbol or "").upper()
        return self._symbol_aliases.get(upper, upper)

    def resolve_token_key(self, address: Optional[str], symbol: Optional[str]) -> str:
        """Graph key for a token: address alias first, then normalized symbol."""
        if address:
            key = self._address_aliases.get(address.lower())
            if key:
                return key
        return self.normalize_symbol(symbol)

    def resolve(self, from_symbol: str, to_symbol: str) -> Optional[float]:
        """
        Conversion factor from one symbol to another.

        Returns:
            1.0 for identical symbols, the product of factors along the first
            breadth-first path, or None when either symbol is empty or no path
            exists.
        """
        source = self.normalize_symbol(from_symbol)
        target = self.normalize_symbol(to_symbol)
        if not source or not target:
            return None
        if source == target:
            return 1.0

        queue: deque[tuple[str, float]] = deque([(source, 1.0)])
        visited: set[str] = set()

        while queue:
            token, factor = queue.popleft()
            if token == target:
                return factor
            if token in visited:
                continue
            visited.add(token)

            for edge in self._edges.get(token, ()):
                if not math.isfinite(edge.factor) or edge.factor <= 0:
                    continue
                queue.append((edge.to, factor * edge.factor))

        return None

    def convert(self, amount: float, from_symbol: str, to_symbol: str) -> Optional[float]:
        """Convert an amount, or None when no conversion path exists."""
        factor = self.resolve(from_symbol, to_symbol)
        if factor is None:
            return None
        return amount * factor
