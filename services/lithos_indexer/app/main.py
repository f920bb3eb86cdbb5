"""
Lithos Indexer Service

Derives AMM, gauge, bribe and vote-escrow analytics from decoded chain events
and serves them with valuation reports.

API Endpoints:
- GET /health - Service health check
- GET /v0/pairs/{id} - Pair state
- GET /v0/gauges/{id}/apr - Gauge APR report
- GET /v0/venft/{id}/expected-bribes - Expected bribe rewards
- GET /v0/price - Manual quote conversion
- POST /v0/events - Event ingestion (admin)
- GET /metrics - Prometheus metrics endpoint
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .routes import health, metrics, v0
from ..aggregator import EventAggregator
from ..connectors import ChainReader, NullChainReader, Web3ChainReader
from ..persistence import DatabasePool, EntitySnapshotRepository, InMemoryEntityStore
from ..replay import ReplayService

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances for app state
_db_pool: Optional[DatabasePool] = None
_repository: Optional[EntitySnapshotRepository] = None
_engine: Optional[EventAggregator] = None
_replay_task: Optional[asyncio.Task] = None


def _build_reader() -> ChainReader:
    """Web3 reader when an RPC endpoint is configured, otherwise every read reverts."""
    if settings.rpc_url:
        reader = Web3ChainReader(settings.rpc_url, settings.rpc_timeout_seconds)
        if not reader.is_connected():
            logger.warning(f"RPC endpoint not reachable at startup: {settings.rpc_url}")
        return reader
    logger.warning("No RPC_URL configured - chain reads fall back to defaults")
    return NullChainReader()


async def _replay_on_startup(engine: EventAggregator, path: str) -> None:
    """Background task replaying the configured event file."""
    service = ReplayService(
        engine,
        repository=_repository,
        snapshot_interval_blocks=settings.snapshot_interval_blocks,
    )
    try:
        await service.replay_file(path)
    except asyncio.CancelledError:
        logger.info("Startup replay cancelled")
        raise
    except Exception as e:
        logger.error(f"Startup replay of {path} failed: {e}")


async def _check_engine() -> dict:
    if _engine is None or not _engine.initialized:
        return {"status": "unhealthy", "message": "Engine not initialized"}
    cursor = _engine.cursor()
    return {"status": "healthy", "message": f"block {cursor.block_number}, {cursor.events_processed} events"}


async def _check_database() -> dict:
    if _db_pool is None:
        return {"status": "degraded", "message": "Persistence disabled"}
    if await _db_pool.check_health():
        return {"status": "healthy"}
    return {"status": "unhealthy", "message": "Database unreachable"}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown of:
    - Database connection pool and snapshot restore
    - Chain reader and aggregation engine
    - Startup replay background task
    """
    global _db_pool, _repository, _engine, _replay_task

    logger.info(f"Starting {settings.service_name} v{settings.service_version}")
    logger.info(f"Environment: {settings.environment}")

    store = InMemoryEntityStore()

    # Initialize database pool (if configured)
    if settings.database_url:
        try:
            _db_pool = DatabasePool()
            await _db_pool.connect(settings.database_url)
            logger.info("Database connection established")

            schema_ok = await _db_pool.initialize_schema()
            if schema_ok:
                logger.info("Database schema verified")
            else:
                logger.warning("Schema initialization returned False - tables may not exist")

            _repository = EntitySnapshotRepository(_db_pool)
            restored = await _repository.load_into(store)
            logger.info(f"Restored {restored} entities from snapshot")
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            _db_pool = None
            _repository = None
    else:
        logger.warning("No DATABASE_URL configured - persistence disabled")

    # Chain reads block, keep them off the event loop
    reader = await asyncio.to_thread(_build_reader)
    _engine = EventAggregator(store, reader, settings.protocol_config())
    await asyncio.to_thread(_engine.initialize)
    cursor = _engine.cursor()
    logger.info(
        f"Engine initialized: {len(_engine.routes())} routes, "
        f"cursor at block {cursor.block_number} ({cursor.events_processed} events)"
    )

    health.register_health_check("engine", _check_engine)
    health.register_health_check("database", _check_database)

    if settings.replay_file:
        _replay_task = asyncio.create_task(_replay_on_startup(_engine, settings.replay_file))
        logger.info(f"Replaying {settings.replay_file} in background")

    # Store references on app.state for route access
    app.state.db_pool = _db_pool
    app.state.repository = _repository
    app.state.engine = _engine
    app.state.price_graph = settings.price_graph()

    logger.info("Service startup complete")

    yield

    # Shutdown
    logger.info("Shutting down service...")

    if _replay_task and not _replay_task.done():
        _replay_task.cancel()
        try:
            await _replay_task
        except asyncio.CancelledError:
            pass
        _replay_task = None

    # Persist whatever changed since the last snapshot
    if _repository and _engine:
        try:
            await _repository.save_changes(store, _engine.cursor().block_number)
        except Exception as e:
            logger.error(f"Final snapshot failed: {e}")

    health.clear_health_checks()

    # Close database pool
    if _db_pool:
        await _db_pool.close()
        _db_pool = None

    _repository = None
    _engine = None

    logger.info("Service shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Lithos Indexer",
    description="AMM, gauge, bribe and vote-escrow analytics for the Lithos protocol",
    version=settings.service_version,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "local" else [],
    allow_origin_regex=None if settings.environment == "local" else r"https://.*\.(lithos\.to|vercel\.app)",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
# Root health endpoints (for ECS health check)
app.include_router(health.router, tags=["health"])
# ALB path-based routing (/indexer/* -> service)
app.include_router(health.router, prefix="/indexer", tags=["health-alb"])

# V0 API endpoints
app.include_router(v0.router, tags=["v0-api"])
# ALB path-based routing for v0 (/indexer/v0/* -> service)
app.include_router(v0.router, prefix="/indexer", tags=["v0-api-alb"])

# Prometheus metrics endpoint
app.include_router(metrics.router, tags=["metrics"])
# ALB path-based routing for metrics (/indexer/metrics -> service)
app.include_router(metrics.router, prefix="/indexer", tags=["metrics-alb"])


@app.get("/")
async def root() -> dict:
    """Root endpoint - service info."""
    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "environment": settings.environment,
        "docs": "/docs",
        "health": "/health",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "services.lithos_indexer.app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "local",
    )
