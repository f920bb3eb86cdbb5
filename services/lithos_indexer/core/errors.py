"""
Indexer Errors

Domain exceptions raised by the aggregation engine.

External read failures and missing entities are not errors: they fall back to
defaults or skip the event. Only conditions that would corrupt derived state
surface as exceptions.
"""


class IndexerError(Exception):
    """Base class for indexer errors."""


class OutOfOrderEventError(IndexerError):
    """An event arrived with a block number lower than one already processed."""

    def __init__(self, last_position: tuple[int, int], event_position: tuple[int, int]):
        self.last_position = last_position
        self.event_position = event_position
        super().__init__(
            f"Event at block {event_position[0]} log {event_position[1]} "
            f"precedes last processed block {last_position[0]} log {last_position[1]}"
        )


class InvalidEventError(IndexerError):
    """An event is missing parameters its handler requires."""


class EntityNotFoundError(IndexerError):
    """A report was requested for an entity the store does not hold."""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id} not found")
