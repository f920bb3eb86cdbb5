"""
Lithos Indexer Replay Module

Feeds recorded, decoded event logs through the aggregation engine in order.
"""

from .service import ReplayResult, ReplayService, parse_event_line

__all__ = ["ReplayResult", "ReplayService", "parse_event_line"]
