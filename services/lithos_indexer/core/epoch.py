"""
Epoch Calendar

Maps block timestamps onto the protocol's weekly epochs.

Epochs are aligned to the unix epoch: the first epoch starts at 0 and every
boundary is a multiple of WEEK. Aggregators always call these with the event's
block timestamp, never wall-clock time, so replays are deterministic.
"""

from .constants import WEEK


def epoch_start(timestamp: int) -> int:
    """Start of the epoch containing `timestamp` (inclusive)."""
    if timestamp < 0:
        raise ValueError(f"timestamp must be non-negative, got {timestamp}")
    return (timestamp // WEEK) * WEEK


def epoch_end(timestamp: int) -> int:
    """End of the epoch containing `timestamp` (exclusive)."""
    return epoch_start(timestamp) + WEEK


def next_epoch_start(timestamp: int) -> int:
    """First second of the epoch after the one containing `timestamp`."""
    return epoch_end(timestamp)


def epoch_bounds(timestamp: int) -> tuple[int, int]:
    """(start, end) of the epoch containing `timestamp`."""
    start = epoch_start(timestamp)
    return start, start + WEEK
