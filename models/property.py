from sqlalchemy import (
    Column, String, Text, Integer, BigInteger, Float, Boolean, Date, DateTime,
    ForeignKey, Index, Uuid
)
from datetime import datetime
import uuid
from models.base import (
    Base, BigIntPK, PropertyStatus, ListingStatus, TransactionType, value_enum
)


class Property(Base):
    """
    A property mirrored from the provider, keyed by its provider id.

    Classification, status, ownership and location columns are refreshed on
    every sync that sees the property again. Everything else lives in the
    satellite tables below, written once when the property is first created.
    """
    __tablename__ = "properties"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    external_property_id = Column(BigInteger, nullable=False, unique=True, index=True)

    # Ownership (all point at the company registry)
    company_id = Column(Uuid, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True, index=True)
    owner_id = Column(Uuid, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
    buyer_id = Column(Uuid, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
    seller_id = Column(Uuid, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)

    # Classification
    property_class_description = Column(String(100), nullable=True)
    property_type = Column(String(100), nullable=True)
    vacant = Column(String(10), nullable=True)
    hoa = Column(String(10), nullable=True)
    owner_type = Column(String(50), nullable=True)
    purchase_method = Column(String(50), nullable=True)
    months_owned = Column(Integer, nullable=True)

    # Status
    status = Column(value_enum(PropertyStatus), nullable=False, default=PropertyStatus.IN_RENOVATION, index=True)
    listing_status = Column(value_enum(ListingStatus), nullable=False, default=ListingStatus.OFF_MARKET)

    # Location
    msa = Column(String(200), nullable=True, index=True)
    county = Column(String(200), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


# ============================================================================
# SATELLITE TABLES
# ============================================================================

class PropertyAddress(Base):
    __tablename__ = "property_addresses"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    property_id = Column(Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, unique=True)

    formatted_street_address = Column(String(200), nullable=True)
    street_number = Column(String(20), nullable=True)
    street_name = Column(String(100), nullable=True)
    street_suffix = Column(String(20), nullable=True)
    unit_type = Column(String(20), nullable=True)
    unit_number = Column(String(20), nullable=True)
    city = Column(String(100), nullable=True)
    county = Column(String(100), nullable=True)
    state = Column(String(2), nullable=True)
    zip_code = Column(String(10), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    census_tract = Column(String(20), nullable=True)

    __table_args__ = (
        Index("idx_address_lookup", "formatted_street_address", "city", "state"),
    )


class PropertyStructure(Base):
    __tablename__ = "property_structures"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    property_id = Column(Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, unique=True)

    total_area_sq_ft = Column(Integer, nullable=True)
    living_area_sqft = Column(Integer, nullable=True)
    year_built = Column(Integer, nullable=True)
    effective_year_built = Column(Integer, nullable=True)
    beds_count = Column(Integer, nullable=True)
    rooms_count = Column(Integer, nullable=True)
    baths = Column(Float, nullable=True)
    stories = Column(String(50), nullable=True)
    units_count = Column(Integer, nullable=True)
    condition = Column(String(50), nullable=True)
    quality = Column(String(10), nullable=True)
    pool_type = Column(String(50), nullable=True)
    garage_description = Column(String(100), nullable=True)


class PropertyAssessment(Base):
    __tablename__ = "property_assessments"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    property_id = Column(Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)

    assessed_year = Column(Integer, nullable=False)
    land_value = Column(Float, nullable=True)
    improvement_value = Column(Float, nullable=True)
    assessed_value = Column(Float, nullable=True)
    market_value = Column(Float, nullable=True)


class PropertyTaxRecord(Base):
    __tablename__ = "property_tax_records"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    property_id = Column(Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)

    tax_year = Column(Integer, nullable=False)
    tax_amount = Column(Float, nullable=True)
    tax_delinquent_year = Column(Integer, nullable=True)
    tax_rate_code_area = Column(String(50), nullable=True)


class PropertyValuation(Base):
    __tablename__ = "property_valuations"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    property_id = Column(Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)

    value = Column(Float, nullable=True)
    high = Column(Float, nullable=True)
    low = Column(Float, nullable=True)
    forecast_standard_deviation = Column(Float, nullable=True)
    valuation_date = Column(Date, nullable=True)


class PropertyParcel(Base):
    __tablename__ = "property_parcels"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    property_id = Column(Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, unique=True)

    apn_original = Column(String(50), nullable=True)
    fips_code = Column(String(10), nullable=True)
    area_acres = Column(String(20), nullable=True)
    area_sq_ft = Column(Integer, nullable=True)
    zoning = Column(String(50), nullable=True)
    subdivision = Column(String(200), nullable=True)
    legal_description = Column(Text, nullable=True)


class PropertyLastSale(Base):
    __tablename__ = "property_last_sales"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    property_id = Column(Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, unique=True)

    sale_date = Column(Date, nullable=True)
    recording_date = Column(Date, nullable=True)
    price = Column(Float, nullable=True)
    document_type = Column(String(100), nullable=True)
    mtg_amount = Column(Float, nullable=True)
    mtg_type = Column(String(100), nullable=True)
    lender = Column(String(200), nullable=True)


class PropertyTransaction(Base):
    """
    Sale history: one row per classified transaction event.

    Unlike the other satellites this table is appended to on every sync that
    sees a new event for an existing property. The natural key keeps replays
    from duplicating rows.
    """
    __tablename__ = "property_transactions"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    property_id = Column(Uuid, ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(Uuid, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
    buyer_id = Column(Uuid, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
    seller_id = Column(Uuid, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)

    transaction_type = Column(value_enum(TransactionType), nullable=False)
    transaction_date = Column(Date, nullable=False)
    sale_price = Column(Float, nullable=True)
    price_suspect = Column(Boolean, nullable=False, default=False)
    mtg_type = Column(String(100), nullable=True)
    mtg_amount = Column(Float, nullable=True)
    buyer_name = Column(String(200), nullable=True)
    seller_name = Column(String(200), nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index(
            "idx_transaction_natural_key",
            "property_id", "transaction_date", "transaction_type",
            unique=True,
        ),
    )
