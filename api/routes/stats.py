"""
Sync statistics and metrics endpoint
"""
from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
from api.dependencies import get_db
from schemas.api import StatsResponse, SyncRunSummary
from models.base import SyncStatus
from models.checkpoint import SyncCheckpoint
from models.company import Company
from models.property import Property, PropertyTransaction
from models.sync_run import SyncRun
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])


async def _count(db: AsyncSession, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar() or 0


@router.get("/stats", response_model=StatsResponse)
async def get_stats(
    limit: int = Query(10, ge=1, le=100, description="Number of recent runs to return"),
    db: AsyncSession = Depends(get_db)
):
    """
    Get sync statistics and metrics.

    Returns:
    - Property, company and transaction totals
    - Property counts by status and by market
    - Recent market run history
    """
    request_id = f"req_{uuid.uuid4().hex[:12]}"

    logger.info(f"[{request_id}] GET /stats")

    # ========== Totals ==========

    total_properties = await _count(db, Property)
    total_companies = await _count(db, Company)
    total_transactions = await _count(db, PropertyTransaction)
    total_runs = await _count(db, SyncRun)

    # ========== Breakdowns ==========

    status_result = await db.execute(
        select(Property.status, func.count()).group_by(Property.status)
    )
    properties_by_status = {status.value: count for status, count in status_result.all()}

    market_result = await db.execute(
        select(Property.msa, func.count()).where(Property.msa.is_not(None)).group_by(Property.msa)
    )
    properties_by_market = {msa: count for msa, count in market_result.all()}

    # ========== Checkpoint timestamps ==========

    last_result = await db.execute(
        select(func.max(SyncCheckpoint.last_success_at), func.max(SyncCheckpoint.last_failure_at))
    )
    last_success, last_failure = last_result.one()

    avg_duration_result = await db.execute(
        select(func.avg(SyncRun.duration_seconds)).where(
            SyncRun.status == SyncStatus.SUCCESS,
            SyncRun.duration_seconds.is_not(None)
        )
    )
    avg_duration = avg_duration_result.scalar()

    # ========== Recent Runs ==========

    recent_runs_result = await db.execute(
        select(SyncRun)
        .order_by(SyncRun.started_at.desc())
        .limit(limit)
    )
    recent_runs = [
        SyncRunSummary(
            run_id=str(run.run_id),
            market_id=run.market_id,
            status=run.status.value,
            started_at=run.started_at,
            completed_at=run.completed_at,
            records_processed=run.records_processed or 0,
            records_inserted=run.records_inserted or 0,
            records_updated=run.records_updated or 0,
            records_failed=run.records_failed or 0,
            companies_added=run.companies_added or 0,
            watermark_after=run.watermark_after
        )
        for run in recent_runs_result.scalars().all()
    ]

    logger.info(
        f"[{request_id}] Stats: {total_properties} properties, "
        f"{total_companies} companies, {total_runs} runs"
    )

    return StatsResponse(
        timestamp=datetime.utcnow(),
        total_properties=total_properties,
        total_companies=total_companies,
        total_transactions=total_transactions,
        properties_by_status=properties_by_status,
        properties_by_market=properties_by_market,
        total_runs=total_runs,
        last_sync_success=last_success,
        last_sync_failure=last_failure,
        avg_run_duration_seconds=round(avg_duration, 2) if avg_duration else None,
        recent_runs=recent_runs
    )
