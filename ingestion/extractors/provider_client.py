"""
HTTP client for the property data provider.

This module provides the production TransactionSource with:
- Token header authentication
- Status-code mapping onto the sync exception hierarchy
- Shape validation of every response body
- Configurable request timeout

Requests are never retried here: a failed page or batch is reported to the
caller, which checkpoints and moves on.
"""

import httpx
from datetime import date
from typing import List, Dict, Any, Optional
from pydantic import ValidationError

from core.config import MarketConfig, settings
from core.exceptions import (
    TransientFetchError,
    AuthenticationError,
    RateLimitError,
    MalformedResponseError,
)
from ingestion.base import TransactionSource
from schemas.property import EnrichmentResult
from schemas.transaction import RawTransactionRecord
import logging

logger = logging.getLogger(__name__)


class ProviderClient(TransactionSource):
    """
    Talks to the provider's /buyers/market and /properties/batch endpoints.

    Use as an async context manager so the underlying connection pool is
    closed when the run ends:

        async with ProviderClient(api_url, api_key) as client:
            page = await client.list_transactions(market, start, end, 1, 100)
    """

    TRANSACTIONS_PATH = "/buyers/market"
    DETAILS_PATH = "/properties/batch"

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "ProviderClient":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "X-API-TOKEN": self.api_key,
            "Accept": "application/json",
        }

    async def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        """
        GET a provider endpoint and decode the JSON body.

        Raises:
            AuthenticationError: HTTP 401/403
            RateLimitError: HTTP 429
            TransientFetchError: Any other HTTP error or transport failure
            MalformedResponseError: Body is not JSON
        """
        if self._client is None:
            raise RuntimeError("ProviderClient must be used as an async context manager")

        url = f"{self.api_url}{path}"

        try:
            response = await self._client.get(url, headers=self.headers, params=params)
        except httpx.TimeoutException as e:
            raise TransientFetchError(
                "Provider request timed out",
                context={"url": url, "timeout": self.timeout},
                original_exception=e
            )
        except httpx.HTTPError as e:
            raise TransientFetchError(
                "Provider request failed",
                context={"url": url},
                original_exception=e
            )

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Provider rejected credentials for {path}",
                context={"url": url, "status_code": response.status_code}
            )

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitError(
                f"Provider rate limit hit on {path}",
                context={"url": url, "status_code": 429},
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
            )

        if response.status_code >= 400:
            raise TransientFetchError(
                f"Provider returned HTTP {response.status_code} for {path}",
                context={
                    "url": url,
                    "status_code": response.status_code,
                    "response_body": response.text[:500]
                }
            )

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                "Failed to parse provider JSON response",
                context={"url": url, "response_body": response.text[:500]},
                original_exception=e
            )

    async def list_transactions(
        self,
        market: MarketConfig,
        date_min: date,
        date_max: date,
        page: int,
        page_size: int,
        sort: str = "sale_date",
    ) -> List[RawTransactionRecord]:
        params = {
            "msa": market.msa,
            "sales_date_min": date_min.isoformat(),
            "sales_date_max": date_max.isoformat(),
            "page": page,
            "page_size": page_size,
            "sort": sort,
        }

        data = await self._get_json(self.TRANSACTIONS_PATH, params)

        if not isinstance(data, list):
            raise MalformedResponseError(
                "Transaction feed did not return an array",
                context={
                    "market_id": market.market_id,
                    "page": page,
                    "response_type": type(data).__name__
                }
            )

        # Unusable rows become empty placeholders so the page length still
        # tells the fetcher whether the page was full. Placeholders carry no
        # address and are dropped at deduplication.
        records = []
        for index, item in enumerate(data):
            if not isinstance(item, dict):
                logger.warning(f"[{market.market_id}] Skipping non-object record {index} on page {page}")
                records.append(RawTransactionRecord())
                continue
            try:
                records.append(RawTransactionRecord.model_validate(item))
            except ValidationError as e:
                logger.warning(f"[{market.market_id}] Skipping invalid record {index} on page {page}: {e}")
                records.append(RawTransactionRecord())

        return records

    async def fetch_property_details(self, addresses: List[str]) -> List[EnrichmentResult]:
        if len(addresses) > self.max_detail_batch:
            raise ValueError(
                f"At most {self.max_detail_batch} addresses per detail batch, got {len(addresses)}"
            )

        data = await self._get_json(self.DETAILS_PATH, {"addresses": "|".join(addresses)})

        if not isinstance(data, list):
            raise MalformedResponseError(
                "Batch detail endpoint did not return an array",
                context={
                    "addresses": len(addresses),
                    "response_type": type(data).__name__
                }
            )

        results = []
        for item in data:
            if not isinstance(item, dict):
                results.append(EnrichmentResult(error="non-object batch entry"))
                continue
            try:
                results.append(EnrichmentResult.model_validate(item))
            except ValidationError as e:
                logger.debug(f"Invalid detail payload for {item.get('address')}: {e}")
                results.append(EnrichmentResult(
                    address=item.get("address"),
                    error="invalid property payload"
                ))

        return results
