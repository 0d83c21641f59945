"""
Page through a market's transaction feed
"""

from dataclasses import dataclass
from datetime import date
from typing import AsyncIterator, List, Optional

from core.config import MarketConfig
from core.exceptions import MalformedResponseError
from ingestion.base import TransactionSource
from schemas.transaction import RawTransactionRecord
import logging

logger = logging.getLogger(__name__)


@dataclass
class TransactionPage:
    page_number: int
    records: List[RawTransactionRecord]
    max_date: Optional[date]


def page_boundary(records: List[RawTransactionRecord]) -> Optional[date]:
    """Latest sale date on a page (recording date when the sale date is missing)"""
    dates = [r.sale_date or r.recording_date for r in records]
    dates = [d for d in dates if d is not None]
    return max(dates) if dates else None


class TransactionFetcher:
    """
    Yield pages of transactions in ascending sale-date order.

    The date window stays fixed for the whole walk and pages are requested
    by number until a short or empty page. A transport/HTTP failure
    propagates as TransientFetchError after any pages already yielded; a
    malformed page ends the walk.

    Each fetch() call returns a fresh single-use async iterator.
    """

    def __init__(self, source: TransactionSource, page_size: int = 100):
        self.source = source
        self.page_size = page_size

    async def fetch(
        self,
        market: MarketConfig,
        from_date: date,
        to_date: date,
    ) -> AsyncIterator[TransactionPage]:
        page_number = 1

        while True:
            try:
                records = await self.source.list_transactions(
                    market,
                    date_min=from_date,
                    date_max=to_date,
                    page=page_number,
                    page_size=self.page_size,
                    sort="sale_date",
                )
            except MalformedResponseError as e:
                logger.warning(f"[{market.market_id}] Stopping pagination at page {page_number}: {e.message}")
                return

            if not records:
                logger.info(f"[{market.market_id}] Page {page_number} empty, pagination complete")
                return

            page = TransactionPage(
                page_number=page_number,
                records=records,
                max_date=page_boundary(records),
            )
            logger.info(
                f"[{market.market_id}] Page {page_number}: {len(records)} records "
                f"(boundary {page.max_date})"
            )
            yield page

            if len(records) < self.page_size:
                return

            page_number += 1
