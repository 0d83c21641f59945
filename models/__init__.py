"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (PropertyStatus, ListingStatus,
          SyncStatus, TransactionType)
    company: Corporate owner registry
    property: Property plus its satellite detail tables and sale history
    checkpoint: Per-market resumable watermark
    sync_run: Market sync execution tracking and metrics

Usage:
    from models import Property, Company, SyncCheckpoint
    from models.base import PropertyStatus, ListingStatus

Relationships:
    - Company → Property (company_id, owner_id, buyer_id, seller_id)
    - Property → satellite rows (one-to-one / one-to-many, cascade delete)
    - Property → PropertyTransaction (one-to-many sale history)
"""

from models.base import (
    Base,
    PropertyStatus,
    ListingStatus,
    SyncStatus,
    TransactionType,
)
from models.company import Company
from models.property import (
    Property,
    PropertyAddress,
    PropertyStructure,
    PropertyAssessment,
    PropertyTaxRecord,
    PropertyValuation,
    PropertyParcel,
    PropertyLastSale,
    PropertyTransaction,
)
from models.checkpoint import SyncCheckpoint
from models.sync_run import SyncRun

__all__ = [
    "Base",
    "PropertyStatus",
    "ListingStatus",
    "SyncStatus",
    "TransactionType",
    "Company",
    "Property",
    "PropertyAddress",
    "PropertyStructure",
    "PropertyAssessment",
    "PropertyTaxRecord",
    "PropertyValuation",
    "PropertyParcel",
    "PropertyLastSale",
    "PropertyTransaction",
    "SyncCheckpoint",
    "SyncRun",
]
