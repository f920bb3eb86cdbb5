"""
Base Aggregator

Shared plumbing for every event aggregator:
- Injected entity store, chain reader and protocol config
- Event name -> handler method routing
- Negative-balance clamping with logging and metrics
- Reference price lookups from the Bundle singleton
"""

import logging
from decimal import Decimal
from typing import Callable, ClassVar, Optional, TypeVar, Union

from ..connectors.base import ChainReader
from ..core.constants import BUNDLE_ID, FACTORY_ID
from ..core.entities import Bundle, Factory, Token, User
from ..core.metrics import record_negative_clamp
from ..core.pricing import token_price_usd
from ..core.types import ChainEvent, ProtocolConfig, SkipReason, SourceKind
from ..persistence.store import EntityStore
from .sources import DataSourceRegistry
from .tokens import TokenRegistry

logger = logging.getLogger(__name__)

Number = TypeVar("Number", int, Decimal)
HandlerResult = Union[bool, SkipReason]


class BaseAggregator:
    """
    Base class for event aggregators.

    Subclasses set:
    - SOURCE_KIND: contract role whose events they handle
    - EVENTS: event name -> handler method name

    Handler methods take a ChainEvent and return True when the event was
    applied, False when it was skipped because a referenced entity is missing,
    or a SkipReason naming any other reason the event left state untouched.
    """

    SOURCE_KIND: ClassVar[SourceKind]
    EVENTS: ClassVar[dict[str, str]] = {}

    def __init__(
        self,
        store: EntityStore,
        reader: ChainReader,
        config: ProtocolConfig,
        tokens: TokenRegistry,
        sources: DataSourceRegistry,
    ):
        self.store = store
        self.reader = reader
        self.config = config
        self.tokens = tokens
        self.sources = sources

    def handlers(self) -> dict[tuple[SourceKind, str], Callable[[ChainEvent], HandlerResult]]:
        """Routing table entries contributed by this aggregator."""
        return {
            (self.SOURCE_KIND, event_name): getattr(self, method_name)
            for event_name, method_name in self.EVENTS.items()
        }

    # -------------------------------------------------------------------------
    # Shared helpers
    # -------------------------------------------------------------------------

    def clamp_subtract(
        self,
        current: Number,
        amount: Number,
        entity: str,
        entity_id: str,
    ) -> Number:
        """
        Subtract `amount` from `current`, flooring at zero.

        A floor that actually triggers means events arrived out of order or
        twice; it is logged and counted rather than silently absorbed.
        """
        result = current - amount
        if result < 0:
            logger.warning(
                f"Clamped {entity} {entity_id} at zero "
                f"(current={current}, subtracted={amount})"
            )
            record_negative_clamp(entity)
            return type(current)(0)
        return result

    def load_factory(self) -> Optional[Factory]:
        return self.store.load(Factory, FACTORY_ID)

    def load_bundle(self) -> Optional[Bundle]:
        return self.store.load(Bundle, BUNDLE_ID)

    def eth_price(self) -> Decimal:
        bundle = self.load_bundle()
        return bundle.eth_price if bundle is not None else Decimal("0")

    def price_usd(self, token: Token, eth_price: Optional[Decimal] = None) -> Optional[Decimal]:
        """Token's last-known USD reference price, or None if unpriced."""
        if eth_price is None:
            eth_price = self.eth_price()
        return token_price_usd(token.derived_eth, eth_price)

    def ensure_user(self, address: str) -> User:
        return self.store.ensure_exists(User, address, lambda: User(id=address))

    @staticmethod
    def param(event: ChainEvent, *names: str) -> Union[int, str, None]:
        """First present parameter among `names` (ABIs differ in naming)."""
        for name in names:
            if name in event.params:
                return event.params[name]
        return None
