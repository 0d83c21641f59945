"""
Abstract interfaces for the external collaborators the sync engine consumes
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional

from core.config import MarketConfig
from schemas.property import EnrichmentResult
from schemas.transaction import RawTransactionRecord


class TransactionSource(ABC):
    """
    Provider of transaction history and property detail.

    Responsibilities:
    - Page through a market's transaction feed within a date window
    - Resolve up to 100 "address, city, state" keys to full property payloads

    Implementations raise TransientFetchError on network/HTTP failure and
    MalformedResponseError when the body is not the expected shape.
    """

    max_detail_batch: int = 100

    @abstractmethod
    async def list_transactions(
        self,
        market: MarketConfig,
        date_min: date,
        date_max: date,
        page: int,
        page_size: int,
        sort: str = "sale_date",
    ) -> List[RawTransactionRecord]:
        """
        Fetch one page of transactions for a market.

        Args:
            market: Market being synced
            date_min: Inclusive lower bound on sale date
            date_max: Inclusive upper bound on sale date
            page: 1-indexed page number
            page_size: Records per page
            sort: Ascending sort field

        Returns:
            Normalized records, oldest first
        """
        pass

    @abstractmethod
    async def fetch_property_details(self, addresses: List[str]) -> List[EnrichmentResult]:
        """Batch-resolve addresses to property payloads (one entry per address)"""
        pass


class GeoResolver(ABC):
    """Reverse geocoding used when a payload carries coordinates but no county"""

    @abstractmethod
    async def reverse_geocode_county(self, latitude: float, longitude: float) -> Optional[str]:
        pass
