# Lithos Indexer Chain Connectors
# Contract view reads with revert-tolerant fallbacks
"""
Chain readers used by aggregators and valuation reports.

Each reader:
- Performs one contract view call per read()
- Returns REVERTED instead of raising on any failure
- Lets call sites substitute a named default via try_read()
"""

from .base import REVERTED, ChainReader, NullChainReader
from .recorded import RecordedChainReader
from .web3_reader import Web3ChainReader

__all__ = [
    "REVERTED",
    "ChainReader",
    "NullChainReader",
    "RecordedChainReader",
    "Web3ChainReader",
]
