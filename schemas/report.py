"""
Pydantic schemas for sync run reports returned to the invoker
"""

from datetime import date
from typing import Optional, List

from pydantic import BaseModel, Field


class DateRange(BaseModel):
    from_date: date
    to_date: date


class MarketSyncReport(BaseModel):
    """Outcome of one market run"""
    market: str
    total_processed: int = 0
    total_inserted: int = 0
    total_updated: int = 0
    total_companies_added: int = 0
    date_range_covered: DateRange
    final_watermark: Optional[date] = None


class SyncErrorEntry(BaseModel):
    market: str
    message: str


class SyncReport(BaseModel):
    """
    Structured result of a full run across markets.

    Markets that failed still appear in per_market with whatever they managed
    to process before the failure, and once more in errors.
    """
    per_market: List[MarketSyncReport] = Field(default_factory=list)
    errors: List[SyncErrorEntry] = Field(default_factory=list)


class StatusRefreshReport(BaseModel):
    """Outcome of the periodic listing-status refresh pass"""
    total_checked: int = 0
    total_updated: int = 0
    total_errors: int = 0
    status_changes: int = 0
    listing_status_changes: int = 0
