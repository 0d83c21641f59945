"""
API endpoint tests
"""

import uuid
import pytest
import pytest_asyncio
from datetime import date, datetime
from httpx import ASGITransport, AsyncClient

from api.main import app
from api.dependencies import get_db
from models.base import ListingStatus, PropertyStatus, SyncStatus
from models.checkpoint import SyncCheckpoint
from models.company import Company
from models.property import Property
from models.sync_run import SyncRun


@pytest_asyncio.fixture
async def client(db_session):
    """Create test client with database override"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


def checkpoint(market_id, status, **extra):
    return SyncCheckpoint(
        market_id=market_id,
        watermark_date=date(2025, 1, 14),
        total_records_synced=extra.pop("total_records_synced", 0),
        total_runs=extra.pop("total_runs", 1),
        status=status,
        **extra
    )


@pytest.mark.asyncio
async def test_health_endpoint_database_connected(client):
    """Test health endpoint returns database status"""
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()

    assert data["database_connected"] is True
    assert data["status"] == "healthy"
    assert data["total_markets"] == 0
    assert data["market_checkpoints"] == []
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_health_degraded_when_a_market_failed(client, db_session):
    db_session.add_all([
        checkpoint("SD", SyncStatus.SUCCESS, total_records_synced=120),
        checkpoint("LA", SyncStatus.FAILED, error_message="Provider returned HTTP 503"),
    ])
    await db_session.commit()

    response = await client.get("/health")

    data = response.json()
    assert data["status"] == "degraded"
    assert data["total_markets"] == 2
    assert data["successful_markets"] == 1
    assert data["failed_markets"] == 1

    by_market = {m["market_id"]: m for m in data["market_checkpoints"]}
    assert by_market["SD"]["watermark_date"] == "2025-01-14"
    assert by_market["SD"]["total_records_synced"] == 120
    assert by_market["LA"]["status"] == "failed"
    assert by_market["LA"]["error_message"] == "Provider returned HTTP 503"


@pytest.mark.asyncio
async def test_health_unhealthy_when_every_market_failed(client, db_session):
    db_session.add(checkpoint("SD", SyncStatus.FAILED))
    await db_session.commit()

    response = await client.get("/health")

    assert response.json()["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-from-caller"})

    assert response.headers["X-Request-ID"] == "req-from-caller"


@pytest.mark.asyncio
async def test_stats_endpoint(client, db_session):
    """Test stats endpoint returns totals, breakdowns and recent runs"""
    company = Company(
        id=uuid.uuid4(),
        company_name="Acme Holdings LLC",
        comparison_key="acme holdings llc",
        counties=["San Diego"],
    )
    db_session.add(company)
    db_session.add_all([
        Property(
            id=uuid.uuid4(),
            external_property_id=1,
            company_id=company.id,
            status=PropertyStatus.IN_RENOVATION,
            listing_status=ListingStatus.OFF_MARKET,
            msa="San Diego-Chula Vista-Carlsbad, CA",
        ),
        Property(
            id=uuid.uuid4(),
            external_property_id=2,
            status=PropertyStatus.SOLD,
            listing_status=ListingStatus.OFF_MARKET,
            msa="San Diego-Chula Vista-Carlsbad, CA",
        ),
    ])
    db_session.add_all([
        SyncRun(
            run_id=uuid.uuid4(),
            market_id="SD",
            status=SyncStatus.SUCCESS,
            started_at=datetime(2025, 1, 20, 2, 0),
            completed_at=datetime(2025, 1, 20, 2, 5),
            duration_seconds=300.0,
            records_processed=2,
            records_inserted=2,
            watermark_after=date(2025, 1, 14),
        ),
        SyncRun(
            run_id=uuid.uuid4(),
            market_id="LA",
            status=SyncStatus.FAILED,
            started_at=datetime(2025, 1, 20, 2, 6),
        ),
    ])
    await db_session.commit()

    response = await client.get("/stats?limit=1")

    assert response.status_code == 200
    data = response.json()

    assert data["total_properties"] == 2
    assert data["total_companies"] == 1
    assert data["total_transactions"] == 0
    assert data["properties_by_status"] == {"in-renovation": 1, "sold": 1}
    assert data["properties_by_market"] == {"San Diego-Chula Vista-Carlsbad, CA": 2}
    assert data["total_runs"] == 2
    assert data["avg_run_duration_seconds"] == 300.0

    assert len(data["recent_runs"]) == 1
    assert data["recent_runs"][0]["market_id"] == "LA"
    assert data["recent_runs"][0]["status"] == "failed"


@pytest.mark.asyncio
async def test_stats_limit_is_validated(client):
    response = await client.get("/stats?limit=0")

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_root_endpoint(client):
    response = await client.get("/")

    assert response.status_code == 200
    assert response.json()["endpoints"] == {"stats": "/stats"}
