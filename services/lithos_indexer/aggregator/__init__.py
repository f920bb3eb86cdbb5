# Lithos Indexer Aggregator
# Event routing and entity derivation

"""
Aggregator module for deriving analytics entities from chain events.

Components:
- EventAggregator: Routes events to per-contract aggregators, owns the cursor
- VoteSynchronizer: Rebuilds a veNFT's epoch votes from the voter contract
- initialize_protocol: Creates protocol singletons before the first event
"""

from .bootstrap import initialize_protocol
from .engine import BatchResult, EventAggregator, ProcessResult
from .voter import VoteSynchronizer

__all__ = [
    "EventAggregator",
    "ProcessResult",
    "BatchResult",
    "VoteSynchronizer",
    "initialize_protocol",
]
