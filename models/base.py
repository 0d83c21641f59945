from sqlalchemy import BigInteger, Integer, JSON, Enum
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# Portable column types: PostgreSQL in production, SQLite in tests
JSONType = JSON().with_variant(JSONB(), "postgresql")
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


def value_enum(enum_cls):
    """Persist enum values ("in-renovation") rather than member names"""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
    )


# ============================================================================
# ENUMS
# ============================================================================

class PropertyStatus(str, enum.Enum):
    """Lifecycle status of a tracked property"""
    IN_RENOVATION = "in-renovation"
    ON_MARKET = "on-market"
    SOLD = "sold"


class ListingStatus(str, enum.Enum):
    """Provider listing state"""
    ON_MARKET = "on-market"
    OFF_MARKET = "off-market"


class SyncStatus(str, enum.Enum):
    """Market sync run status"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


class TransactionType(str, enum.Enum):
    """Direction of a recorded transaction relative to tracked companies"""
    ACQUISITION = "acquisition"
    SALE = "sale"
    COMPANY_TO_COMPANY = "company-to-company"
