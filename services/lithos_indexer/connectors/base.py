"""
Base Chain Reader

Abstract interface for synchronous contract reads made while aggregating.

Aggregators never talk to a node directly; they receive a ChainReader and
treat a reverted call as "use the default". Readers:
- Return the decoded value on success
- Return the REVERTED sentinel on any failure (revert, RPC error, missing ABI)
- Never raise for a failed read
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, TypeVar

from ..core.metrics import record_chain_read_fallback

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Reverted:
    """Sentinel for a contract read that did not produce a value."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "REVERTED"

    def __bool__(self) -> bool:
        return False


REVERTED = _Reverted()


class ChainReader(ABC):
    """
    Abstract base class for contract readers.

    Subclasses must implement:
    - read(): perform one call and return the value or REVERTED
    """

    @abstractmethod
    def read(self, address: str, method: str, *args: Any) -> Any:
        """
        Call a view method on a contract.

        Args:
            address: Contract address (any case)
            method: Method name, e.g. "decimals" or "poolVote"
            *args: Positional call arguments

        Returns:
            Decoded return value, or REVERTED
        """

    def try_read(self, address: str, method: str, *args: Any, default: T) -> T:
        """Read a value, falling back to `default` when the call reverts."""
        value = self.read(address, method, *args)
        if value is REVERTED:
            logger.debug(f"{method}({', '.join(map(str, args))}) on {address} reverted, using {default!r}")
            record_chain_read_fallback(method)
            return default
        return value


class NullChainReader(ChainReader):
    """Reader with no node behind it: every call reverts."""

    def read(self, address: str, method: str, *args: Any) -> Any:
        return REVERTED
