"""
Recorded Chain Reader

Serves contract reads from a fixture table so aggregation can run without a
node (tests, deterministic replays of captured traffic).
"""

import json
import logging
from pathlib import Path
from typing import Any, Union

from .base import REVERTED, ChainReader

logger = logging.getLogger(__name__)

CallKey = tuple[str, str, tuple]


def _freeze(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, str):
        return value.lower()
    return value


class RecordedChainReader(ChainReader):
    """
    Fixture-backed reader.

    Unknown calls revert. Every call is appended to `calls` so tests can assert
    on what a handler read.

    Usage:
        reader = RecordedChainReader()
        reader.record("0xtoken", "decimals", 6)
        reader.record("0xvoter", "poolVote", "0xpool", 7, 0)
        reader.read("0xtoken", "decimals")     # 6
        reader.read("0xtoken", "symbol")       # REVERTED
    """

    def __init__(self, fixtures: dict[CallKey, Any] = None):
        self._fixtures: dict[CallKey, Any] = {}
        self.calls: list[CallKey] = []
        for (address, method, args), value in (fixtures or {}).items():
            self.record(address, method, value, *args)

    def record(self, address: str, method: str, value: Any, *args: Any) -> None:
        """Register a return value (REVERTED allowed) for one call."""
        self._fixtures[(address.lower(), method, _freeze(list(args)))] = value

    def forget(self, address: str, method: str, *args: Any) -> None:
        """Remove a fixture so the call reverts."""
        self._fixtures.pop((address.lower(), method, _freeze(list(args))), None)

    def read(self, address: str, method: str, *args: Any) -> Any:
        key = (address.lower(), method, _freeze(list(args)))
        self.calls.append(key)
        return self._fixtures.get(key, REVERTED)

    def calls_to(self, method: str) -> list[CallKey]:
        return [call for call in self.calls if call[1] == method]

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "RecordedChainReader":
        """
        Load fixtures from a JSON file of the form
        [{"address": "...", "method": "...", "args": [...], "value": ...}, ...].

        Entries with `"reverted": true` are recorded as REVERTED.
        """
        reader = cls()
        entries = json.loads(Path(path).read_text())
        for entry in entries:
            value = REVERTED if entry.get("reverted") else entry.get("value")
            reader.record(entry["address"], entry["method"], value, *entry.get("args", []))
        logger.info(f"Loaded {len(entries)} recorded chain reads from {path}")
        return reader
