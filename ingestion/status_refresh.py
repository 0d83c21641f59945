"""
Periodic listing-status refresh for properties already in the database
"""

import asyncio
import uuid
from datetime import datetime
from typing import Awaitable, Callable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import FetchError
from ingestion.base import TransactionSource
from ingestion.status import resolve_listing_status
from models.base import PropertyStatus
from models.property import Property, PropertyAddress
from schemas.report import StatusRefreshReport
import logging

logger = logging.getLogger(__name__)


class StatusRefresher:
    """
    Re-check listing status for every non-sold property with a full address.

    Rows are read from the database in id-ordered chunks and looked up at
    the provider in batches. A property is only written when its status
    actually changed, and a sold property is never touched.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        source: TransactionSource,
        batch_size: int = 100,
        db_chunk_size: int = 500,
        rate_limit_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.db = db_session
        self.source = source
        self.batch_size = min(batch_size, source.max_detail_batch)
        self.db_chunk_size = db_chunk_size
        self.rate_limit_delay = rate_limit_delay
        self._sleep = sleep

    async def _load_chunk(self, after_id: Optional[uuid.UUID]) -> List:
        stmt = (
            select(
                Property.id,
                Property.external_property_id,
                Property.status,
                Property.listing_status,
                PropertyAddress.formatted_street_address,
                PropertyAddress.city,
                PropertyAddress.state,
            )
            .join(PropertyAddress, PropertyAddress.property_id == Property.id)
            .where(
                Property.status != PropertyStatus.SOLD,
                PropertyAddress.formatted_street_address.is_not(None),
                PropertyAddress.city.is_not(None),
                PropertyAddress.state.is_not(None),
            )
            .order_by(Property.id)
            .limit(self.db_chunk_size)
        )
        if after_id is not None:
            stmt = stmt.where(Property.id > after_id)

        result = await self.db.execute(stmt)
        return list(result.all())

    async def run(self) -> StatusRefreshReport:
        report = StatusRefreshReport()
        after_id = None
        batches_sent = 0

        while True:
            rows = await self._load_chunk(after_id)
            if not rows:
                break
            after_id = rows[-1].id

            for start in range(0, len(rows), self.batch_size):
                if batches_sent > 0 and self.rate_limit_delay > 0:
                    await self._sleep(self.rate_limit_delay)
                batches_sent += 1

                await self._refresh_batch(rows[start:start + self.batch_size], report)

            if len(rows) < self.db_chunk_size:
                break

        logger.info(
            f"Status refresh complete: checked={report.total_checked} updated={report.total_updated} "
            f"errors={report.total_errors}"
        )
        return report

    async def _refresh_batch(self, rows: List, report: StatusRefreshReport):
        addresses = [f"{row.formatted_street_address}, {row.city}, {row.state}" for row in rows]

        try:
            results = await self.source.fetch_property_details(addresses)
        except FetchError as e:
            logger.warning(f"Status refresh batch of {len(rows)} failed: {e.message}")
            report.total_errors += len(rows)
            return

        by_address = {r.address.lower(): r for r in results if r.address}

        try:
            for index, row in enumerate(rows):
                report.total_checked += 1

                result = by_address.get(addresses[index].lower())
                if result is None and index < len(results) and results[index].address is None:
                    result = results[index]

                if result is None or not result.ok:
                    report.total_errors += 1
                    continue

                status, listing_status = resolve_listing_status(result.payload.listing_status)
                if status == row.status and listing_status == row.listing_status:
                    continue

                await self.db.execute(
                    update(Property)
                    .where(Property.id == row.id, Property.status != PropertyStatus.SOLD)
                    .values(status=status, listing_status=listing_status, updated_at=datetime.utcnow())
                )
                logger.info(
                    f"Property {row.external_property_id}: {row.status.value} -> {status.value}, "
                    f"{row.listing_status.value} -> {listing_status.value}"
                )
                report.total_updated += 1
                if status != row.status:
                    report.status_changes += 1
                if listing_status != row.listing_status:
                    report.listing_status_changes += 1

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to write status refresh batch: {e}")
            raise
