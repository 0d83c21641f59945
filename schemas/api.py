"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Optional, List, Dict
from datetime import date, datetime


# ============================================================================
# Health Check Schemas
# ============================================================================

class MarketCheckpointInfo(BaseModel):
    """Market checkpoint information for health check"""
    market_id: str
    status: str
    watermark_date: date
    last_synced_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    total_records_synced: int = 0
    total_runs: int = 0
    error_message: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    market_checkpoints: List[MarketCheckpointInfo] = Field(default_factory=list)
    total_markets: int = 0
    successful_markets: int = 0
    failed_markets: int = 0

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif self.total_markets == 0 or self.failed_markets == 0:
            self.status = "healthy"
        elif self.failed_markets < self.total_markets:
            self.status = "degraded"
        else:
            self.status = "unhealthy"
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "timestamp": "2025-01-15T10:30:00Z",
                "database_connected": True,
                "total_markets": 2,
                "successful_markets": 2,
                "failed_markets": 0,
                "market_checkpoints": [
                    {
                        "market_id": "SD",
                        "status": "success",
                        "watermark_date": "2025-01-14",
                        "total_records_synced": 1500,
                        "total_runs": 12
                    }
                ]
            }
        }
    )


# ============================================================================
# Statistics Schemas
# ============================================================================

class SyncRunSummary(BaseModel):
    run_id: str
    market_id: str
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    records_processed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_failed: int = 0
    companies_added: int = 0
    watermark_after: Optional[date] = None


class StatsResponse(BaseModel):
    """Statistics response model"""
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    total_properties: int
    total_companies: int
    total_transactions: int

    properties_by_status: Dict[str, int] = Field(default_factory=dict)
    properties_by_market: Dict[str, int] = Field(default_factory=dict)

    total_runs: int = 0
    last_sync_success: Optional[datetime] = None
    last_sync_failure: Optional[datetime] = None
    avg_run_duration_seconds: Optional[float] = None

    recent_runs: List[SyncRunSummary] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "timestamp": "2025-01-15T10:30:00Z",
                "total_properties": 5000,
                "total_companies": 320,
                "total_transactions": 7400,
                "properties_by_status": {"in-renovation": 4100, "on-market": 600, "sold": 300},
                "properties_by_market": {"San Diego-Chula Vista-Carlsbad, CA": 2100},
                "total_runs": 48,
                "avg_run_duration_seconds": 312.4
            }
        }
    )


# ============================================================================
# Error Response Schema
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response"""
    error: str
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
