"""
Lithos Indexer V0 API Endpoints

Read access to the derived entities plus valuation reports.

Endpoints:
- GET /v0/pairs/{pair_id} - Pair state
- GET /v0/pairs/{pair_id}/epochs/{timestamp} - Pair epoch fees and volume
- GET /v0/bribes/{bribe_id} - Bribe with its reward tokens
- GET /v0/gauges/{gauge_id}/votes - Gauge vote total and per-veNFT weights
- GET /v0/gauges/{gauge_id}/apr - Gauge emission APR
- GET /v0/price - Manual quote graph conversion
- GET /v0/venft/{token_id}/expected-bribes - Next-epoch bribe estimate
- GET /v0/venft/{token_id}/claimables - On-chain claimable bribe rewards
- GET /v0/status - Cursor and store counts
- POST /v0/events - Ingest decoded events (admin)
"""

import asyncio
import logging
import time
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from ...core.entities import (
    Bribe,
    BribeRewardToken,
    GaugeEpochVote,
    IndexerCursor,
    Pair,
    PairEpochData,
    TokenGaugeVote,
)
from ...core.epoch import epoch_start
from ...core.errors import EntityNotFoundError, InvalidEventError, OutOfOrderEventError
from ...core.types import ChainEvent, to_camel
from ...valuation import (
    BribeClaimables,
    ExpectedBribesReport,
    GaugeAprReport,
    expected_bribes,
    gauge_apr,
    onchain_claimables,
)
from ..config import settings


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/v0", tags=["v0"])


# =============================================================================
# Response Models
# =============================================================================

class BribeResponse(BaseModel):
    """Response for /v0/bribes/{bribe_id}."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    bribe: Bribe
    reward_tokens: list[BribeRewardToken] = Field(default_factory=list)


class GaugeVotesResponse(BaseModel):
    """Response for /v0/gauges/{gauge_id}/votes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    gauge: str
    epoch_start: int
    total_weight: int = Field(default=0, description="Authoritative gauge weight read from the voter")
    votes: list[TokenGaugeVote] = Field(default_factory=list)


class PriceResponse(BaseModel):
    """Response for /v0/price."""

    model_config = ConfigDict(populate_by_name=True)

    from_symbol: str = Field(..., alias="from")
    to_symbol: str = Field(..., alias="to")
    price: float = Field(..., description="Units of `to` per one unit of `from`")


class StatusResponse(BaseModel):
    """Response for /v0/status."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    cursor: IndexerCursor
    entities: int
    routes: int
    persistence: bool


class IngestResponse(BaseModel):
    """Response for POST /v0/events."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    received: int
    applied: int
    skipped: int
    skip_reasons: dict[str, int] = Field(default_factory=dict)
    cursor: IndexerCursor


# =============================================================================
# Dependencies
# =============================================================================

def get_engine(request: Request):
    """Get event aggregation engine from app state."""
    engine = getattr(request.app.state, "engine", None)
    if not engine:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine


def get_price_graph(request: Request):
    """Get price conversion graph from app state."""
    graph = getattr(request.app.state, "price_graph", None)
    if graph is None:
        raise HTTPException(status_code=503, detail="Price graph not configured")
    return graph


def get_repository(request: Request):
    """Get entity snapshot repository from app state."""
    repository = getattr(request.app.state, "repository", None)
    return repository  # Can be None if no database configured


def verify_admin_key(
    x_admin_key: Annotated[Optional[str], Header(alias="X-Admin-Key")] = None,
) -> bool:
    """
    Verify admin API key for mutation endpoints.

    Requires X-Admin-Key header matching ADMIN_API_KEY environment variable.
    In non-production environments with no key configured, allows access.

    Raises:
        HTTPException 401 if key is required but missing
        HTTPException 403 if key is invalid
    """
    configured_key = settings.admin_api_key

    # In production, admin key is REQUIRED
    if settings.environment == "production" and not configured_key:
        logger.error("ADMIN_API_KEY not configured in production - rejecting request")
        raise HTTPException(
            status_code=503,
            detail="Admin API key not configured. Contact administrator."
        )

    if configured_key:
        if not x_admin_key:
            raise HTTPException(
                status_code=401,
                detail="X-Admin-Key header required for mutation endpoints"
            )
        if x_admin_key != configured_key:
            logger.warning("Invalid admin key attempt")
            raise HTTPException(status_code=403, detail="Invalid admin key")
        return True

    # Non-production with no key configured: allow (for local dev)
    logger.debug("Admin key check bypassed (non-production, no key configured)")
    return True


def _now() -> int:
    return int(time.time())


# =============================================================================
# Entities
# =============================================================================

@router.get("/pairs/{pair_id}", response_model=Pair)
async def get_pair(
    request: Request,
    pair_id: Annotated[str, Path(description="Pair address")],
):
    """Current reserves, prices, cumulative volume and fee split of a pair."""
    engine = get_engine(request)
    pair = engine.store.load(Pair, pair_id.lower())
    if pair is None:
        raise HTTPException(status_code=404, detail=f"Pair not found: {pair_id}")
    return pair


@router.get("/pairs/{pair_id}/epochs/{timestamp}", response_model=PairEpochData)
async def get_pair_epoch(
    request: Request,
    pair_id: Annotated[str, Path(description="Pair address")],
    timestamp: Annotated[int, Path(ge=0, description="Any unix timestamp inside the epoch")],
):
    """Fees and volume of a pair for the weekly epoch containing `timestamp`."""
    engine = get_engine(request)
    bucket_id = PairEpochData.bucket_id(pair_id.lower(), epoch_start(timestamp))
    bucket = engine.store.load(PairEpochData, bucket_id)
    if bucket is None:
        raise HTTPException(status_code=404, detail=f"No epoch data for {pair_id} at {timestamp}")
    return bucket


@router.get("/bribes/{bribe_id}", response_model=BribeResponse)
async def get_bribe(
    request: Request,
    bribe_id: Annotated[str, Path(description="Bribe contract address")],
):
    """Bribe contract state and its registered reward tokens."""
    engine = get_engine(request)
    bribe_id = bribe_id.lower()
    bribe = engine.store.load(Bribe, bribe_id)
    if bribe is None:
        raise HTTPException(status_code=404, detail=f"Bribe not found: {bribe_id}")

    reward_tokens = sorted(
        (entry for entry in engine.store.all(BribeRewardToken) if entry.bribe == bribe_id),
        key=lambda entry: entry.token,
    )
    return BribeResponse(bribe=bribe, reward_tokens=reward_tokens)


@router.get("/gauges/{gauge_id}/votes", response_model=GaugeVotesResponse)
async def get_gauge_votes(
    request: Request,
    gauge_id: Annotated[str, Path(description="Gauge address")],
    epoch: Annotated[
        Optional[int],
        Query(ge=0, description="Any unix timestamp inside the epoch. Default: current epoch")
    ] = None,
):
    """
    Vote weight on a gauge for one epoch.

    `totalWeight` is the voter contract's value at the last sync; `votes`
    lists every veNFT's current weight on the gauge.
    """
    engine = get_engine(request)
    gauge_id = gauge_id.lower()
    start = epoch_start(epoch if epoch is not None else _now())

    total = engine.store.load(GaugeEpochVote, GaugeEpochVote.bucket_id(gauge_id, start))
    votes = sorted(
        (
            vote for vote in engine.store.all(TokenGaugeVote)
            if vote.gauge == gauge_id and vote.epoch == start
        ),
        key=lambda vote: vote.token_id,
    )
    if total is None and not votes:
        raise HTTPException(status_code=404, detail=f"No votes for gauge {gauge_id} in epoch {start}")

    return GaugeVotesResponse(
        gauge=gauge_id,
        epoch_start=start,
        total_weight=total.total_weight if total is not None else 0,
        votes=votes,
    )


@router.get("/status", response_model=StatusResponse)
async def get_status(request: Request):
    """Indexer cursor and store size."""
    engine = get_engine(request)
    return StatusResponse(
        cursor=engine.cursor(),
        entities=engine.store.count() if hasattr(engine.store, "count") else 0,
        routes=len(engine.routes()),
        persistence=get_repository(request) is not None,
    )


# =============================================================================
# Valuation
# =============================================================================

@router.get("/price", response_model=PriceResponse)
async def get_price(
    request: Request,
    from_symbol: Annotated[str, Query(alias="from", description="Symbol or token address")],
    to_symbol: Annotated[str, Query(alias="to", description="Symbol or token address")],
):
    """Convert one unit of `from` into `to` through the manual quote graph."""
    graph = get_price_graph(request)
    source = graph.resolve_token_key(from_symbol, from_symbol)
    target = graph.resolve_token_key(to_symbol, to_symbol)
    price = graph.resolve(source, target)
    if price is None:
        raise HTTPException(status_code=404, detail=f"No conversion path from {source} to {target}")
    return PriceResponse(from_symbol=source, to_symbol=target, price=price)


@router.get("/gauges/{gauge_id}/apr", response_model=GaugeAprReport)
async def get_gauge_apr(
    request: Request,
    gauge_id: Annotated[str, Path(description="Gauge address")],
    quote: Annotated[str, Query(description="Quote symbol for the projection")] = "USDT",
):
    """
    Emission APR of a gauge.

    Tokens the graph cannot price are listed in `unpriced`; the report is
    still returned with whatever could be valued.
    """
    engine = get_engine(request)
    graph = get_price_graph(request)
    try:
        return gauge_apr(engine.store, graph, gauge_id, now=_now(), quote_symbol=quote)
    except EntityNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/venft/{token_id}/expected-bribes", response_model=ExpectedBribesReport)
async def get_expected_bribes(
    request: Request,
    token_id: Annotated[int, Path(ge=0, description="veNFT token id")],
    epoch: Annotated[
        Optional[int],
        Query(ge=0, description="Epoch start to estimate. Default: next epoch")
    ] = None,
    quote: Annotated[str, Query(description="Quote symbol for valuation")] = "USDT",
):
    """Bribe rewards a veNFT can expect when the epoch flips."""
    engine = get_engine(request)
    graph = get_price_graph(request)
    target = epoch_start(epoch) if epoch is not None else None
    return expected_bribes(
        engine.store,
        graph,
        str(token_id),
        now=_now(),
        epoch=target,
        quote_symbol=quote,
    )


@router.get("/venft/{token_id}/claimables", response_model=list[BribeClaimables])
async def get_claimables(
    request: Request,
    token_id: Annotated[int, Path(ge=0, description="veNFT token id")],
):
    """Rewards a veNFT can claim now, read from every known bribe contract."""
    engine = get_engine(request)
    return await asyncio.to_thread(onchain_claimables, engine.store, engine.reader, token_id)


# =============================================================================
# POST /v0/events (Event Ingestion)
# =============================================================================

@router.post("/events", response_model=IngestResponse)
async def ingest_events(
    request: Request,
    events: list[ChainEvent],
    _admin_verified: Annotated[bool, Depends(verify_admin_key)] = True,
):
    """
    Apply a batch of decoded events in order.

    Events are applied one by one; on error the events before the failing
    one stay applied and the cursor reflects them. Handlers run in a worker
    thread since their chain reads block.

    Authentication: Requires X-Admin-Key header in production.
    """
    engine = get_engine(request)

    try:
        batch = await asyncio.to_thread(engine.process_many, events)
    except OutOfOrderEventError as e:
        logger.warning(f"Rejected out-of-order batch: {e}")
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidEventError as e:
        logger.warning(f"Rejected invalid event: {e}")
        raise HTTPException(status_code=422, detail=str(e))

    logger.info(f"Ingested {len(events)} events: {batch.applied} applied, {batch.skipped} skipped")

    return IngestResponse(
        received=len(events),
        applied=batch.applied,
        skipped=batch.skipped,
        skip_reasons=batch.skip_reasons,
        cursor=engine.cursor(),
    )
