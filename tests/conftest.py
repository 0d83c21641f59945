"""
Pytest configuration and fixtures
"""

import os
from datetime import date
from typing import AsyncGenerator, Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from core.config import MarketConfig, Settings
from core.exceptions import TransientFetchError
from ingestion.base import TransactionSource
from models import Base
from schemas.property import EnrichmentResult
from schemas.transaction import RawTransactionRecord, parse_provider_date

# In-memory SQLite by default; point at PostgreSQL with TEST_DATABASE_URL
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================================
# Provider fakes
# ============================================================================

class FakeProvider(TransactionSource):
    """
    In-memory provider.

    transactions: market_id -> raw feed dicts (filtered by date window and
    paged exactly like the real feed)
    properties: "address, city, state" -> raw property payload
    detail_failures: raised by the next detail calls, in order
    detail_failures_at: 1-based detail call number -> error raised by that call
    """

    def __init__(self):
        self.transactions: Dict[str, List[dict]] = {}
        self.properties: Dict[str, dict] = {}
        self.detail_errors: Dict[str, str] = {}
        self.fail_on_page: Dict[str, int] = {}
        self.detail_failures: List[Exception] = []
        self.detail_failures_at: Dict[int, Exception] = {}
        self.transaction_calls: List[dict] = []
        self.detail_calls: List[List[str]] = []

    async def list_transactions(self, market, date_min, date_max, page, page_size, sort="sale_date"):
        self.transaction_calls.append({
            "market_id": market.market_id,
            "date_min": date_min,
            "date_max": date_max,
            "page": page,
            "page_size": page_size,
        })

        if self.fail_on_page.get(market.market_id) == page:
            raise TransientFetchError("Simulated provider outage", context={"page": page})

        rows = [
            row for row in self.transactions.get(market.market_id, [])
            if date_min <= parse_provider_date(row["sale_date"]) <= date_max
        ]
        rows.sort(key=lambda row: row["sale_date"])
        chunk = rows[(page - 1) * page_size:page * page_size]
        return [RawTransactionRecord.model_validate(row) for row in chunk]

    async def fetch_property_details(self, addresses):
        self.detail_calls.append(list(addresses))

        if len(self.detail_calls) in self.detail_failures_at:
            raise self.detail_failures_at[len(self.detail_calls)]
        if self.detail_failures:
            raise self.detail_failures.pop(0)

        results = []
        for address in addresses:
            if address in self.detail_errors:
                results.append(EnrichmentResult(address=address, error=self.detail_errors[address]))
            elif address in self.properties:
                results.append(EnrichmentResult.model_validate(
                    {"address": address, "property": self.properties[address]}
                ))
            else:
                results.append(EnrichmentResult(address=address, error="Property not found"))
        return results


def make_transaction(
    street: str,
    sale_date: str,
    buyer_name: Optional[str] = "Acme Holdings LLC",
    seller_name: Optional[str] = "John Smith",
    city: str = "San Diego",
    state: str = "CA",
    recording_date: Optional[str] = None,
    **extra
) -> dict:
    row = {
        "address": street,
        "city": city,
        "state": state,
        "sale_date": sale_date,
        "recording_date": recording_date or sale_date,
        "buyer_name": buyer_name,
        "seller_name": seller_name,
        "sale_price": 650000,
    }
    row.update(extra)
    return row


def make_property(
    property_id: int,
    street: str,
    city: str = "San Diego",
    state: str = "CA",
    county: Optional[str] = "San Diego County",
    listing_status: Optional[str] = "Off Market",
    **extra
) -> dict:
    payload = {
        "property_id": property_id,
        "county": county,
        "listing_status": listing_status,
        "property_type": "Single Family Residential",
        "address": {
            "formatted_street_address": street,
            "city": city,
            "state": state,
            "zip_code": "92101",
        },
        "structure": {"beds_count": 3, "baths": 2.0, "living_area_sqft": 1450, "year_built": 1978},
        "valuation": {"value": 700000, "high": 740000, "low": 660000},
        "tax_year": 2024,
        "tax_amount": 7100.5,
    }
    payload.update(extra)
    return payload


def seed_property(
    provider: FakeProvider,
    market_id: str,
    property_id: int,
    street: str,
    sale_date: str,
    city: str = "San Diego",
    state: str = "CA",
    transaction: Optional[dict] = None,
    **property_extra
):
    """Put one corporate transaction and its property detail on the fake provider"""
    row = make_transaction(street, sale_date, city=city, state=state, **(transaction or {}))
    provider.transactions.setdefault(market_id, []).append(row)
    provider.properties[f"{street}, {city}, {state}"] = make_property(
        property_id, street, city=city, state=state, **property_extra
    )
    return row


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def transaction_factory():
    return make_transaction


@pytest.fixture
def property_factory():
    return make_property


@pytest.fixture
def seed():
    return seed_property


@pytest.fixture
def markets():
    return [
        MarketConfig(market_id="SD", msa="San Diego-Chula Vista-Carlsbad, CA"),
        MarketConfig(
            market_id="LA",
            msa="Los Angeles-Long Beach-Anaheim, CA",
            excluded_addresses=["11011 Huston St"],
        ),
    ]


@pytest.fixture
def test_settings(markets):
    return Settings(
        _env_file=None,
        PROVIDER_API_URL="https://provider.test/api",
        PROVIDER_API_KEY="test-key",
        SYNC_MARKETS=markets,
        SYNC_DEFAULT_START_DATE=date(2025, 1, 1),
        SYNC_RATE_LIMIT_DELAY_SECONDS=0,
        SYNC_CHECKPOINT_EVERY=50,
    )


@pytest.fixture
def no_sleep():
    calls = []

    async def _sleep(seconds):
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep
