"""
Prometheus Metrics for Lithos Indexer

Exposes operational metrics for monitoring and alerting.

Metrics:
- Event counters (processed, skipped by reason)
- Handler latency histograms
- Negative-balance clamp and chain-read fallback counters
- Cursor position and stored entity counts
- Database write counters and latency
"""

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry

# Create a custom registry to avoid conflicts with default registry
REGISTRY = CollectorRegistry()


# =============================================================================
# Event Processing Metrics
# =============================================================================

EVENTS_PROCESSED_TOTAL = Counter(
    "lithos_events_processed_total",
    "Total events applied to the entity store",
    ["source", "event"],
    registry=REGISTRY,
)

EVENTS_SKIPPED_TOTAL = Counter(
    "lithos_events_skipped_total",
    "Total events that produced no entity changes",
    ["source", "event", "reason"],  # reason: unrouted, unhandled, missing_entity, read_reverted
    registry=REGISTRY,
)

HANDLER_LATENCY = Histogram(
    "lithos_handler_latency_seconds",
    "Event handler latency in seconds",
    ["source"],
    buckets=[0.0005, 0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0],
    registry=REGISTRY,
)

# Last processed block
LAST_BLOCK = Gauge(
    "lithos_last_block",
    "Block number of the last processed event",
    registry=REGISTRY,
)

# Stored entities per table (updated on scrape)
ENTITIES_STORED = Gauge(
    "lithos_entities_stored",
    "Number of entities held in the entity store",
    ["kind"],
    registry=REGISTRY,
)


# =============================================================================
# Data Quality Metrics
# =============================================================================

# Subtractive updates floored at zero (voting power, stake weights, balances)
NEGATIVE_CLAMPS_TOTAL = Counter(
    "lithos_negative_clamps_total",
    "Total subtractive updates clamped at zero",
    ["entity"],
    registry=REGISTRY,
)

# Chain reads that reverted and fell back to a default
CHAIN_READ_FALLBACKS_TOTAL = Counter(
    "lithos_chain_read_fallbacks_total",
    "Total chain reads that reverted and used a fallback value",
    ["method"],
    registry=REGISTRY,
)


# =============================================================================
# Database Metrics
# =============================================================================

DB_WRITES_TOTAL = Counter(
    "lithos_db_writes_total",
    "Total database write operations",
    ["table", "status"],  # status: success, error
    registry=REGISTRY,
)

DB_WRITE_LATENCY = Histogram(
    "lithos_db_write_latency_seconds",
    "Database write latency in seconds",
    ["table"],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
    registry=REGISTRY,
)


# =============================================================================
# Service Info Metrics
# =============================================================================

SERVICE_INFO = Gauge(
    "lithos_service_info",
    "Service information",
    ["version", "environment"],
    registry=REGISTRY,
)


# =============================================================================
# Helper Functions
# =============================================================================

def record_event_processed(source: str, event: str, latency_seconds: float, block_number: int) -> None:
    """Record metrics for an event applied by a handler."""
    EVENTS_PROCESSED_TOTAL.labels(source=source, event=event).inc()
    HANDLER_LATENCY.labels(source=source).observe(latency_seconds)
    LAST_BLOCK.set(block_number)


def record_event_skipped(source: str, event: str, reason: str) -> None:
    """Record an event that produced no entity changes."""
    EVENTS_SKIPPED_TOTAL.labels(source=source, event=event, reason=reason).inc()


def record_negative_clamp(entity: str) -> None:
    """Increment the clamp counter for an entity kind."""
    NEGATIVE_CLAMPS_TOTAL.labels(entity=entity).inc()


def record_chain_read_fallback(method: str) -> None:
    """Increment the fallback counter for a contract method."""
    CHAIN_READ_FALLBACKS_TOTAL.labels(method=method).inc()


def record_db_write(table: str, success: bool, latency_seconds: float) -> None:
    """Record database write metrics."""
    status = "success" if success else "error"
    DB_WRITES_TOTAL.labels(table=table, status=status).inc()
    if success:
        DB_WRITE_LATENCY.labels(table=table).observe(latency_seconds)


def set_service_info(version: str, environment: str) -> None:
    """Set service info gauge."""
    SERVICE_INFO.labels(version=version, environment=environment).set(1)


def update_entity_count(kind: str, count: int) -> None:
    """Set the stored-entity gauge for one table."""
    ENTITIES_STORED.labels(kind=kind).set(count)
