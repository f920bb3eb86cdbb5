"""
Unit tests for health endpoint.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock
from httpx import AsyncClient, ASGITransport

from services.lithos_indexer.app.main import app
from services.lithos_indexer.app.routes.health import clear_health_checks, register_health_check


@pytest.fixture(autouse=True)
def clean_state():
    """Each test starts without an engine, pool or registered checks."""
    yield
    for name in ("engine", "db_pool"):
        if hasattr(app.state, name):
            delattr(app.state, name)
    clear_health_checks()


@pytest.mark.asyncio
async def test_health_endpoint():
    """Test that health endpoint returns expected structure."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()

    assert "status" in data
    assert "service" in data
    assert "version" in data
    assert "environment" in data
    assert "timestamp" in data
    assert "components" in data

    assert data["service"] == "lithos-indexer"


@pytest.mark.asyncio
async def test_health_aggregates_components():
    """An unhealthy component makes the service unhealthy; a raising one too."""

    async def degraded():
        return {"status": "degraded", "message": "snapshot lagging"}

    async def broken():
        raise RuntimeError("boom")

    register_health_check("snapshots", degraded)
    register_health_check("database", broken)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")

    data = response.json()
    assert data["status"] == "unhealthy"
    assert data["components"]["snapshots"]["status"] == "degraded"
    assert data["components"]["database"]["message"] == "boom"


@pytest.mark.asyncio
async def test_health_reports_last_block(engine, addr, make_event):
    """The health body carries the cursor block once the engine exists."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        before = (await client.get("/health")).json()

        app.state.engine = engine
        engine.process(make_event(addr.escrow, "Supply", {"prevSupply": 0, "supply": 1}, block=321))
        after = (await client.get("/health")).json()

    assert before["last_block"] is None
    assert after["last_block"] == 321


@pytest.mark.asyncio
async def test_health_degraded_component():
    """A degraded component without failures degrades the service."""

    async def degraded():
        return {"status": "degraded", "message": "Persistence disabled"}

    register_health_check("database", degraded)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health")

    assert response.json()["status"] == "degraded"


@pytest.mark.asyncio
async def test_liveness_endpoint():
    """Test that liveness probe returns ok."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health/live")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_readiness_without_engine():
    """Readiness fails until the engine is bootstrapped."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health/ready")

    assert response.status_code == 503


@pytest.mark.asyncio
async def test_readiness_endpoint(engine):
    """Test that readiness probe returns ready with the cursor block."""
    app.state.engine = engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health/ready")

    assert response.status_code == 200
    assert response.json() == {"status": "ready", "block": -1}


@pytest.mark.asyncio
async def test_readiness_database_down(engine):
    app.state.engine = engine
    db_pool = MagicMock()
    db_pool.check_health = AsyncMock(return_value=False)
    app.state.db_pool = db_pool

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["detail"] == "Database unavailable"


@pytest.mark.asyncio
async def test_root_endpoint():
    """Test that root endpoint returns service info."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["service"] == "lithos-indexer"


@pytest.mark.asyncio
async def test_indexer_prefix():
    """Routes are also mounted under /indexer for the ALB."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/indexer/health/live")

    assert response.status_code == 200
