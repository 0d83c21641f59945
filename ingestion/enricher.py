"""
Resolve address keys to full property payloads in rate-limited batches
"""

import asyncio
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, List, Optional

from core.exceptions import MalformedResponseError
from ingestion.base import TransactionSource
from schemas.property import EnrichmentResult
import logging

logger = logging.getLogger(__name__)


@dataclass
class EnrichedBatch:
    batch_number: int
    total_batches: int
    addresses: List[str]
    results: List[EnrichmentResult]
    error: Optional[str] = None

    @property
    def error_count(self) -> int:
        return sum(1 for r in self.results if not r.ok)


class PropertyEnricher:
    """
    Batch detail lookups against the provider.

    Per-address errors inside a batch are returned alongside the successes
    and never fail the batch. A malformed batch is yielded with no results
    and its error set; a transient failure propagates and ends enrichment
    for the market.
    """

    def __init__(
        self,
        source: TransactionSource,
        batch_size: int = 100,
        rate_limit_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.source = source
        self.batch_size = min(batch_size, source.max_detail_batch)
        self.rate_limit_delay = rate_limit_delay
        self._sleep = sleep

    async def enrich(self, addresses: List[str]) -> List[EnrichmentResult]:
        """Look up one batch of at most batch_size addresses"""
        if len(addresses) > self.batch_size:
            raise ValueError(f"Batch of {len(addresses)} exceeds limit of {self.batch_size}")
        if not addresses:
            return []
        return await self.source.fetch_property_details(addresses)

    async def enrich_all(self, addresses: List[str], market_id: str = "") -> AsyncIterator[EnrichedBatch]:
        """
        Walk all addresses in batches, sleeping between consecutive calls.
        """
        total_batches = (len(addresses) + self.batch_size - 1) // self.batch_size

        for index, start in enumerate(range(0, len(addresses), self.batch_size)):
            batch_number = index + 1
            if index > 0 and self.rate_limit_delay > 0:
                await self._sleep(self.rate_limit_delay)

            chunk = addresses[start:start + self.batch_size]

            try:
                results = await self.enrich(chunk)
            except MalformedResponseError as e:
                logger.warning(
                    f"[{market_id}] Skipping detail batch {batch_number}/{total_batches}: {e.message}"
                )
                yield EnrichedBatch(
                    batch_number=batch_number,
                    total_batches=total_batches,
                    addresses=chunk,
                    results=[],
                    error=e.message,
                )
                continue

            batch = EnrichedBatch(
                batch_number=batch_number,
                total_batches=total_batches,
                addresses=chunk,
                results=results,
            )
            if batch.error_count:
                logger.info(
                    f"[{market_id}] Batch {batch_number}/{total_batches}: "
                    f"{batch.error_count} of {len(results)} addresses returned errors"
                )
            yield batch
