"""
Per-market watermark persistence
"""

from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import CheckpointError
from models.base import SyncStatus
from models.checkpoint import SyncCheckpoint
import logging

logger = logging.getLogger(__name__)


class CheckpointManager:
    """
    Load and advance a market's watermark.

    The watermark is the day before the latest provider boundary seen, so
    the next fetch re-reads the boundary day and never skips records that
    share it. Advancing never moves the watermark backwards.

    Every write commits immediately: a checkpoint must survive a crash of
    the work that follows it.
    """

    def __init__(self, db: AsyncSession, default_start_date: date):
        self.db = db
        self.default_start_date = default_start_date

    async def get_checkpoint(self, market_id: str) -> Optional[SyncCheckpoint]:
        """Retrieve checkpoint for a market"""
        result = await self.db.execute(
            select(SyncCheckpoint).where(SyncCheckpoint.market_id == market_id)
        )
        return result.scalar_one_or_none()

    async def _get_or_create(self, market_id: str) -> SyncCheckpoint:
        checkpoint = await self.get_checkpoint(market_id)
        if checkpoint is None:
            checkpoint = SyncCheckpoint(
                market_id=market_id,
                watermark_date=self.default_start_date,
                total_records_synced=0,
                total_runs=0,
                status=SyncStatus.PENDING,
            )
            self.db.add(checkpoint)
        return checkpoint

    async def load(self, market_id: str) -> date:
        """Current watermark, or the configured start date for a new market"""
        try:
            checkpoint = await self._get_or_create(market_id)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise CheckpointError(
                "Failed to load checkpoint",
                context={"market_id": market_id},
                original_exception=e
            )
        return checkpoint.watermark_date

    async def advance(self, market_id: str, boundary: Optional[date], processed: int = 0) -> date:
        """
        Move the watermark to boundary - 1 day if that is later than now.

        Args:
            market_id: Market whose checkpoint advances
            boundary: Latest provider date observed so far (None keeps the watermark)
            processed: Records durably synced since the previous advance

        Returns:
            The watermark after the update
        """
        try:
            checkpoint = await self._get_or_create(market_id)

            if boundary is not None:
                candidate = boundary - timedelta(days=1)
                if candidate > checkpoint.watermark_date:
                    checkpoint.watermark_date = candidate

            checkpoint.total_records_synced = (checkpoint.total_records_synced or 0) + processed
            checkpoint.last_synced_at = datetime.utcnow()
            checkpoint.updated_at = datetime.utcnow()

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise CheckpointError(
                "Failed to advance checkpoint",
                context={"market_id": market_id, "boundary": str(boundary)},
                original_exception=e
            )

        logger.debug(f"[{market_id}] Watermark now {checkpoint.watermark_date}")
        return checkpoint.watermark_date

    async def mark_running(self, market_id: str):
        try:
            checkpoint = await self._get_or_create(market_id)
            checkpoint.status = SyncStatus.RUNNING
            checkpoint.updated_at = datetime.utcnow()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise CheckpointError(
                "Failed to mark checkpoint running",
                context={"market_id": market_id},
                original_exception=e
            )

    async def mark_finished(
        self,
        market_id: str,
        status: SyncStatus,
        error_message: Optional[str] = None
    ):
        """Record the outcome of a run on the market's checkpoint"""
        try:
            checkpoint = await self._get_or_create(market_id)
            checkpoint.status = status
            checkpoint.total_runs = (checkpoint.total_runs or 0) + 1
            checkpoint.error_message = error_message
            checkpoint.updated_at = datetime.utcnow()

            if status == SyncStatus.SUCCESS:
                checkpoint.last_success_at = datetime.utcnow()
            elif status == SyncStatus.FAILED:
                checkpoint.last_failure_at = datetime.utcnow()

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise CheckpointError(
                "Failed to record run outcome on checkpoint",
                context={"market_id": market_id, "status": status.value},
                original_exception=e
            )
