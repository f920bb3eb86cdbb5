"""
Health Check Endpoint

Reports whether the indexer can serve reads and accept events: the engine
must have bootstrapped the protocol singletons, and the snapshot database
must answer when persistence is configured.
"""

from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from ..config import settings


router = APIRouter()

HealthCheck = Callable[[], Awaitable[dict]]

# Worst status wins when merging components
_SEVERITY = {"healthy": 0, "degraded": 1, "unhealthy": 2}


class ComponentHealth(BaseModel):
    """Health status of a component."""
    status: str  # "healthy", "degraded", "unhealthy"
    message: Optional[str] = None
    last_check: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str  # "healthy", "degraded", "unhealthy"
    service: str
    version: str
    environment: str
    timestamp: str
    last_block: Optional[int] = None
    components: dict[str, ComponentHealth]


# Registered by the lifespan: "engine" and "database"
_component_checks: dict[str, HealthCheck] = {}


def register_health_check(name: str, check_fn: HealthCheck) -> None:
    """Register an async check returning {"status": ..., "message": ...}."""
    _component_checks[name] = check_fn


def clear_health_checks() -> None:
    """Drop every registered check (service shutdown)."""
    _component_checks.clear()


async def _run_check(check_fn: HealthCheck, now: str) -> ComponentHealth:
    try:
        result = await check_fn()
    except Exception as e:
        return ComponentHealth(status="unhealthy", message=str(e), last_check=now)
    return ComponentHealth(
        status=result.get("status", "healthy"),
        message=result.get("message"),
        last_check=now,
    )


def _worst(current: str, candidate: str) -> str:
    if _SEVERITY.get(candidate, 0) > _SEVERITY.get(current, 0):
        return candidate
    return current


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Indexer health with a per-component breakdown.

    A failing check counts as unhealthy rather than failing the endpoint.
    `last_block` is the block of the last processed event, None before
    the engine exists.
    """
    now = datetime.now(timezone.utc).isoformat()
    components: dict[str, ComponentHealth] = {}
    overall_status = "healthy"

    for name, check_fn in _component_checks.items():
        components[name] = await _run_check(check_fn, now)
        overall_status = _worst(overall_status, components[name].status)

    engine = getattr(request.app.state, "engine", None)
    last_block = engine.cursor().block_number if engine is not None and engine.initialized else None

    return HealthResponse(
        status=overall_status,
        service=settings.service_name,
        version=settings.service_version,
        environment=settings.environment,
        timestamp=now,
        last_block=last_block,
        components=components,
    )


@router.get("/health/live")
async def liveness_check() -> dict:
    """The process is up; says nothing about the engine or database."""
    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(request: Request) -> dict:
    """
    Ready once the engine has bootstrapped the protocol singletons and,
    when a database is configured, the pool answers.
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None or not engine.initialized:
        raise HTTPException(status_code=503, detail="Engine not initialized")

    db_pool = getattr(request.app.state, "db_pool", None)
    if db_pool is not None and not await db_pool.check_health():
        raise HTTPException(status_code=503, detail="Database unavailable")

    cursor = engine.cursor()
    return {"status": "ready", "block": cursor.block_number}
