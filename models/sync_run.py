from sqlalchemy import Column, String, DateTime, Date, Float, Integer, Text, Index, Uuid
from datetime import datetime
import uuid
from models.base import Base, BigIntPK, JSONType, SyncStatus, value_enum


class SyncRun(Base):
    """
    Tracks metadata for each market sync execution.

    Purpose:
    - Audit trail of all market runs
    - Error tracking and debugging
    - Feeds the /stats endpoint
    """
    __tablename__ = "sync_runs"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    run_id = Column(Uuid, default=uuid.uuid4, unique=True, nullable=False, index=True)

    market_id = Column(String(50), nullable=False, index=True)
    status = Column(value_enum(SyncStatus), default=SyncStatus.PENDING, nullable=False, index=True)

    # Timestamps
    started_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)

    # Statistics
    records_fetched = Column(Integer, default=0)
    addresses_unique = Column(Integer, default=0)
    records_processed = Column(Integer, default=0)
    records_inserted = Column(Integer, default=0)
    records_updated = Column(Integer, default=0)
    records_failed = Column(Integer, default=0)
    companies_added = Column(Integer, default=0)

    # Checkpoint info
    watermark_before = Column(Date, nullable=True)
    watermark_after = Column(Date, nullable=True)

    # Error tracking
    error_message = Column(Text, nullable=True)
    error_details = Column(JSONType, nullable=True)

    __table_args__ = (
        Index("idx_sync_run_market_started", "market_id", "started_at"),
    )
