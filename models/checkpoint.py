from sqlalchemy import Column, Integer, String, DateTime, Date, Text, BigInteger
from datetime import datetime
from models.base import Base, BigIntPK, SyncStatus, value_enum


class SyncCheckpoint(Base):
    """
    Tracks incremental sync state per market.

    Purpose:
    - Resume a market from the last durably synced sale date
    - Avoid re-fetching transaction history already processed

    Design:
    - One row per market, created lazily on first load
    - watermark_date is the provider boundary minus one day (the fetch range
      excludes the boundary), and never moves backwards
    """
    __tablename__ = "sync_checkpoints"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)

    market_id = Column(String(50), nullable=False, unique=True, index=True)

    watermark_date = Column(Date, nullable=False)
    total_records_synced = Column(BigInteger, nullable=False, default=0)
    last_synced_at = Column(DateTime, nullable=True)

    # Statistics
    last_success_at = Column(DateTime, nullable=True)
    last_failure_at = Column(DateTime, nullable=True)
    total_runs = Column(Integer, nullable=False, default=0)

    status = Column(value_enum(SyncStatus), default=SyncStatus.PENDING, nullable=False)
    error_message = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
