"""
Prometheus Metrics Endpoint

Exposes /metrics endpoint in Prometheus text format.
"""

import logging
from fastapi import APIRouter, Request, Response
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from ...core.entities import ENTITY_TYPES
from ...core.metrics import (
    REGISTRY,
    LAST_BLOCK,
    update_entity_count,
    set_service_info,
)
from ...persistence.store import InMemoryEntityStore
from ..config import settings


logger = logging.getLogger(__name__)
router = APIRouter()


def _update_live_metrics(request: Request) -> None:
    """
    Update metrics with current live values from the engine.

    Called on each /metrics scrape so the cursor block and stored entity
    counts are current even when no event has been applied recently.
    """
    engine = getattr(request.app.state, "engine", None)
    if not engine:
        return

    cursor = engine.cursor()
    if cursor.block_number >= 0:
        LAST_BLOCK.set(cursor.block_number)

    store = engine.store
    if isinstance(store, InMemoryEntityStore):
        for kind, cls in ENTITY_TYPES.items():
            update_entity_count(kind.value, store.count(cls))


@router.get("/metrics")
async def prometheus_metrics(request: Request) -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text exposition format.
    Designed for Prometheus scraping at /metrics or /indexer/metrics.

    Metrics exposed:
    - lithos_events_processed_total{source, event}
    - lithos_events_skipped_total{source, event, reason}
    - lithos_handler_latency_seconds{source}
    - lithos_last_block
    - lithos_entities_stored{kind}
    - lithos_negative_clamps_total{entity}
    - lithos_chain_read_fallbacks_total{method}
    - lithos_db_writes_total{table, status}
    - lithos_db_write_latency_seconds{table}
    - lithos_service_info{version, environment}
    """
    # Set service info on each scrape (idempotent)
    set_service_info(settings.service_version, settings.environment)

    # Update live metrics from engine state
    _update_live_metrics(request)

    # Generate Prometheus format output
    metrics_output = generate_latest(REGISTRY)

    return Response(
        content=metrics_output,
        media_type=CONTENT_TYPE_LATEST,
    )
