"""
Load enriched properties into PostgreSQL with idempotent upsert logic
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import upsert_insert
from core.exceptions import UpsertError
from ingestion.transformers.normalizer import (
    normalize_property_type,
    parse_bool,
    parse_float,
    parse_int,
    parse_str,
)
from models.base import PropertyStatus, ListingStatus, TransactionType
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
from schemas.property import PropertyPayload
import logging

logger = logging.getLogger(__name__)


@dataclass
class PropertyFields:
    """Classification results written to the properties row on every sync"""
    company_id: Optional[uuid.UUID]
    owner_id: Optional[uuid.UUID]
    buyer_id: Optional[uuid.UUID]
    seller_id: Optional[uuid.UUID]
    status: PropertyStatus
    listing_status: ListingStatus
    county: Optional[str]
    msa: Optional[str]


# Columns refreshed when a sync sees an existing property again
UPDATABLE_COLUMNS = (
    "company_id",
    "owner_id",
    "buyer_id",
    "seller_id",
    "status",
    "listing_status",
    "county",
    "msa",
)


@dataclass
class TransactionEntry:
    """One sale-history event for a property"""
    transaction_type: TransactionType
    transaction_date: date
    company_id: Optional[uuid.UUID] = None
    buyer_id: Optional[uuid.UUID] = None
    seller_id: Optional[uuid.UUID] = None
    sale_price: Optional[float] = None
    price_suspect: bool = False
    mtg_type: Optional[str] = None
    mtg_amount: Optional[float] = None
    buyer_name: Optional[str] = None
    seller_name: Optional[str] = None
    notes: Optional[str] = None


# ============================================================================
# SATELLITE ROW BUILDERS
# ============================================================================

def build_address_row(payload: PropertyPayload, county: Optional[str]) -> List[Dict[str, Any]]:
    data = payload.address
    if data is None:
        return []
    return [{
        "formatted_street_address": data.formatted_street_address,
        "street_number": data.street_number,
        "street_name": data.street_name,
        "street_suffix": data.street_suffix,
        "unit_type": data.unit_type,
        "unit_number": data.unit_number,
        "city": data.city,
        "county": county or data.county,
        "state": data.state,
        "zip_code": data.zip_code,
        "latitude": data.latitude,
        "longitude": data.longitude,
        "census_tract": data.census_tract,
    }]


def build_structure_row(payload: PropertyPayload, county: Optional[str]) -> List[Dict[str, Any]]:
    if payload.structure is None:
        return []
    return [payload.structure.model_dump()]


def build_assessment_row(payload: PropertyPayload, county: Optional[str]) -> List[Dict[str, Any]]:
    year = parse_int(payload.assessed_year)
    if year is None and payload.assessments is not None:
        year = payload.assessments.assessed_year
    if year is None:
        return []
    row = payload.assessments.model_dump() if payload.assessments is not None else {}
    row["assessed_year"] = year
    return [row]


def build_tax_row(payload: PropertyPayload, county: Optional[str]) -> List[Dict[str, Any]]:
    year = parse_int(payload.tax_year)
    if year is None:
        return []
    return [{
        "tax_year": year,
        "tax_amount": parse_float(payload.tax_amount),
        "tax_delinquent_year": parse_int(payload.tax_delinquent_year),
        "tax_rate_code_area": parse_str(payload.tax_rate_code_area),
    }]


def build_valuation_row(payload: PropertyPayload, county: Optional[str]) -> List[Dict[str, Any]]:
    if payload.valuation is None:
        return []
    return [payload.valuation.model_dump()]


def build_parcel_row(payload: PropertyPayload, county: Optional[str]) -> List[Dict[str, Any]]:
    if payload.parcel is None:
        return []
    return [payload.parcel.model_dump()]


def build_last_sale_row(payload: PropertyPayload, county: Optional[str]) -> List[Dict[str, Any]]:
    if payload.last_sale is None:
        return []
    return [payload.last_sale.model_dump()]


SATELLITE_BUILDERS: List[Tuple[type, Callable[[PropertyPayload, Optional[str]], List[Dict[str, Any]]]]] = [
    (PropertyAddress, build_address_row),
    (PropertyStructure, build_structure_row),
    (PropertyAssessment, build_assessment_row),
    (PropertyTaxRecord, build_tax_row),
    (PropertyValuation, build_valuation_row),
    (PropertyParcel, build_parcel_row),
    (PropertyLastSale, build_last_sale_row),
]


# ============================================================================
# UPSERTER
# ============================================================================

class PropertyUpserter:
    """
    Insert-or-update properties keyed by the provider's property id.

    Ensures:
    - One properties row per provider id, however often it is replayed
      (INSERT ... ON CONFLICT on external_property_id)
    - A replay refreshes only classification, status, ownership and location;
      descriptive columns keep what the first sync stored
    - Satellites are written only when the property is first created, each
      one in its own savepoint so a bad sub-object never loses the parent
    - Sale history rows are unique per (property, date, type)

    Nothing here commits: the caller commits once per record.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    @staticmethod
    def _update_values(fields: PropertyFields) -> Dict[str, Any]:
        return {column: getattr(fields, column) for column in UPDATABLE_COLUMNS}

    @staticmethod
    def _insert_values(payload: PropertyPayload) -> Dict[str, Any]:
        vacant = parse_bool(payload.vacant)
        return {
            "property_type": normalize_property_type(payload.property_type),
            "property_class_description": parse_str(payload.property_class_description),
            "vacant": str(vacant).lower() if vacant is not None else None,
            "hoa": parse_str(payload.hoa),
            "owner_type": parse_str(payload.owner_type),
            "purchase_method": parse_str(payload.purchase_method),
            "months_owned": parse_int(payload.months_owned),
        }

    async def upsert(
        self,
        external_property_id: int,
        fields: PropertyFields,
        payload: PropertyPayload,
    ) -> Tuple[uuid.UUID, bool]:
        """
        Write one property.

        Returns:
            (property id, inserted). inserted is False when an existing row
            was updated.

        Raises:
            UpsertError: The properties row could not be written
        """
        try:
            return await self._upsert(external_property_id, fields, payload)
        except SQLAlchemyError as e:
            raise UpsertError(
                "Failed to upsert property",
                context={"external_property_id": external_property_id},
                original_exception=e
            )

    async def _upsert(
        self,
        external_property_id: int,
        fields: PropertyFields,
        payload: PropertyPayload,
    ) -> Tuple[uuid.UUID, bool]:
        new_id = uuid.uuid4()

        stmt = upsert_insert(self.db, Property).values(
            id=new_id,
            external_property_id=external_property_id,
            **self._update_values(fields),
            **self._insert_values(payload),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["external_property_id"],
            set_={
                **{column: stmt.excluded[column] for column in UPDATABLE_COLUMNS},
                "updated_at": datetime.utcnow(),
            },
        ).returning(Property.id)

        result = await self.db.execute(stmt)
        property_id = result.scalar_one()

        # The generated id only comes back when the row was created
        inserted = property_id == new_id
        if inserted:
            await self._insert_satellites(property_id, payload, fields.county)
        else:
            logger.debug(f"Property {external_property_id} already present, updated in place")
        return property_id, inserted

    async def _insert_satellites(self, property_id: uuid.UUID, payload: PropertyPayload, county: Optional[str]):
        for model, builder in SATELLITE_BUILDERS:
            rows = builder(payload, county)
            if not rows:
                continue
            try:
                async with self.db.begin_nested():
                    for row in rows:
                        await self.db.execute(insert(model).values(property_id=property_id, **row))
            except SQLAlchemyError as e:
                logger.warning(
                    f"Skipping {model.__tablename__} for property {payload.property_id}: {e}"
                )

    async def record_transactions(self, property_id: uuid.UUID, entries: List[TransactionEntry]) -> int:
        """
        Append sale-history events not already stored.

        Returns:
            Number of new rows
        """
        inserted = 0

        for entry in entries:
            stmt = upsert_insert(self.db, PropertyTransaction).values(
                property_id=property_id,
                transaction_type=entry.transaction_type,
                transaction_date=entry.transaction_date,
                company_id=entry.company_id,
                buyer_id=entry.buyer_id,
                seller_id=entry.seller_id,
                sale_price=entry.sale_price,
                price_suspect=entry.price_suspect,
                mtg_type=entry.mtg_type,
                mtg_amount=entry.mtg_amount,
                buyer_name=entry.buyer_name,
                seller_name=entry.seller_name,
                notes=entry.notes,
            )
            # Natural key: (property_id, transaction_date, transaction_type)
            stmt = stmt.on_conflict_do_nothing(
                index_elements=["property_id", "transaction_date", "transaction_type"]
            ).returning(PropertyTransaction.id)

            result = await self.db.execute(stmt)
            if result.scalar_one_or_none() is not None:
                inserted += 1

        return inserted
