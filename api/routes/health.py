"""
Health check endpoint with database and market sync status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import select, text
from api.dependencies import get_db
from schemas.api import HealthCheckResponse, MarketCheckpointInfo
from models.base import SyncStatus
from models.checkpoint import SyncCheckpoint
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Checkpoint status for every market synced so far
    """

    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {str(e)}")

    market_checkpoints = []
    successful_markets = 0
    failed_markets = 0

    if db_connected:
        try:
            result = await db.execute(select(SyncCheckpoint).order_by(SyncCheckpoint.market_id))
            checkpoints = result.scalars().all()

            for checkpoint in checkpoints:
                if checkpoint.status == SyncStatus.FAILED:
                    failed_markets += 1
                elif checkpoint.status in (SyncStatus.SUCCESS, SyncStatus.PARTIAL):
                    successful_markets += 1

                market_checkpoints.append(MarketCheckpointInfo(
                    market_id=checkpoint.market_id,
                    status=checkpoint.status.value,
                    watermark_date=checkpoint.watermark_date,
                    last_synced_at=checkpoint.last_synced_at,
                    last_success_at=checkpoint.last_success_at,
                    last_failure_at=checkpoint.last_failure_at,
                    total_records_synced=checkpoint.total_records_synced or 0,
                    total_runs=checkpoint.total_runs or 0,
                    error_message=checkpoint.error_message
                ))
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch market checkpoints: {str(e)}")

    return HealthCheckResponse(
        timestamp=datetime.utcnow(),
        database_connected=db_connected,
        market_checkpoints=market_checkpoints,
        total_markets=len(market_checkpoints),
        successful_markets=successful_markets,
        failed_markets=failed_markets
    )
