"""
Unit tests for transaction paging
"""

import pytest
from datetime import date, timedelta
from unittest.mock import AsyncMock

from core.config import MarketConfig
from core.exceptions import MalformedResponseError, TransientFetchError
from ingestion.fetcher import TransactionFetcher, page_boundary
from schemas.transaction import RawTransactionRecord

MARKET = MarketConfig(market_id="SD", msa="San Diego-Chula Vista-Carlsbad, CA")


async def collect(fetcher, start=date(2025, 1, 1), end=date(2025, 1, 31)):
    return [page async for page in fetcher.fetch(MARKET, start, end)]


def seed_days(provider, factory, count, first_day=date(2025, 1, 1), per_day=10):
    for i in range(count):
        sale_date = first_day + timedelta(days=i // per_day)
        provider.transactions.setdefault("SD", []).append(
            factory(f"{i} Main St", sale_date.isoformat())
        )


class TestPageBoundary:
    """Test per-page boundary dates"""

    def test_latest_sale_date(self, transaction_factory):
        records = [
            RawTransactionRecord.model_validate(transaction_factory("1 Main St", "2025-01-03")),
            RawTransactionRecord.model_validate(transaction_factory("2 Main St", "2025-01-09")),
        ]
        assert page_boundary(records) == date(2025, 1, 9)

    def test_recording_date_used_without_sale_date(self):
        records = [RawTransactionRecord.model_validate(
            {"address": "1 Main St", "recording_date": "2025-01-04"}
        )]
        assert page_boundary(records) == date(2025, 1, 4)

    def test_no_dates(self):
        assert page_boundary([RawTransactionRecord()]) is None


class TestTransactionFetcher:
    """Test walking the feed page by page"""

    @pytest.mark.asyncio
    async def test_full_then_short_page(self, fake_provider, transaction_factory):
        # 150 records over 15 days: page 1 ends on day 10, page 2 on day 15
        seed_days(fake_provider, transaction_factory, 150)

        pages = await collect(TransactionFetcher(fake_provider, page_size=100))

        assert [len(p.records) for p in pages] == [100, 50]
        assert [p.page_number for p in pages] == [1, 2]
        assert pages[0].max_date == date(2025, 1, 10)
        assert pages[1].max_date == date(2025, 1, 15)
        # The short page ends the walk without asking for page 3
        assert [c["page"] for c in fake_provider.transaction_calls] == [1, 2]

    @pytest.mark.asyncio
    async def test_exactly_full_last_page_needs_empty_page(self, fake_provider, transaction_factory):
        seed_days(fake_provider, transaction_factory, 100)

        pages = await collect(TransactionFetcher(fake_provider, page_size=100))

        assert len(pages) == 1
        assert [c["page"] for c in fake_provider.transaction_calls] == [1, 2]

    @pytest.mark.asyncio
    async def test_empty_feed(self, fake_provider):
        pages = await collect(TransactionFetcher(fake_provider))

        assert pages == []
        assert len(fake_provider.transaction_calls) == 1

    @pytest.mark.asyncio
    async def test_window_and_page_size_sent(self, fake_provider):
        await collect(TransactionFetcher(fake_provider, page_size=25), date(2025, 1, 5), date(2025, 1, 20))

        call = fake_provider.transaction_calls[0]
        assert call["date_min"] == date(2025, 1, 5)
        assert call["date_max"] == date(2025, 1, 20)
        assert call["page_size"] == 25

    @pytest.mark.asyncio
    async def test_malformed_page_ends_walk(self, transaction_factory):
        source = AsyncMock()
        source.list_transactions = AsyncMock(side_effect=[
            [RawTransactionRecord.model_validate(transaction_factory(f"{i} Main St", "2025-01-02")) for i in range(2)],
            MalformedResponseError("Transaction feed did not return an array"),
        ])

        pages = await collect(TransactionFetcher(source, page_size=2))

        assert len(pages) == 1
        assert source.list_transactions.await_count == 2

    @pytest.mark.asyncio
    async def test_transient_error_after_yielded_pages(self, fake_provider, transaction_factory):
        seed_days(fake_provider, transaction_factory, 150)
        fake_provider.fail_on_page["SD"] = 2

        pages = []
        with pytest.raises(TransientFetchError):
            async for page in TransactionFetcher(fake_provider, page_size=100).fetch(
                MARKET, date(2025, 1, 1), date(2025, 1, 31)
            ):
                pages.append(page)

        assert len(pages) == 1
        assert pages[0].max_date == date(2025, 1, 10)
