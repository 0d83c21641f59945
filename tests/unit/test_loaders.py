"""
Unit tests for property loaders
"""

import uuid
import pytest
from datetime import date
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from core.exceptions import UpsertError
from ingestion.loaders import property_loader
from ingestion.loaders.property_loader import (
    PropertyFields,
    PropertyUpserter,
    TransactionEntry,
    build_address_row,
    build_assessment_row,
    build_last_sale_row,
    build_structure_row,
    build_tax_row,
)
from models.base import ListingStatus, PropertyStatus, TransactionType
from models.property import (
    Property,
    PropertyAddress,
    PropertyAssessment,
    PropertyLastSale,
    PropertyStructure,
    PropertyTaxRecord,
    PropertyTransaction,
    PropertyValuation,
)
from schemas.property import PropertyPayload


def fields(status=PropertyStatus.IN_RENOVATION, county="San Diego"):
    return PropertyFields(
        company_id=None,
        owner_id=None,
        buyer_id=None,
        seller_id=None,
        status=status,
        listing_status=ListingStatus.OFF_MARKET,
        county=county,
        msa="San Diego-Chula Vista-Carlsbad, CA",
    )


async def count(db_session, model):
    result = await db_session.execute(select(func.count()).select_from(model))
    return result.scalar()


class TestSatelliteRows:
    """Test payload to satellite row mapping"""

    def test_address_row_accepts_camel_case(self):
        payload = PropertyPayload.model_validate({
            "property_id": 1,
            "address": {"formattedStreetAddress": "1 Main St", "city": "San Diego", "zip": "92101", "latitude": "32.7"},
        })

        row = build_address_row(payload, "San Diego")[0]

        assert row["formatted_street_address"] == "1 Main St"
        assert row["zip_code"] == "92101"
        assert row["latitude"] == 32.7
        assert row["county"] == "San Diego"

    def test_missing_sub_objects_produce_no_rows(self):
        payload = PropertyPayload.model_validate({"property_id": 1, "structure": {}, "address": None})

        assert build_address_row(payload, None) == []
        assert build_structure_row(payload, None) == []
        assert build_tax_row(payload, None) == []

    def test_assessment_needs_a_year(self):
        without_year = PropertyPayload.model_validate({"property_id": 1, "assessments": {"land_value": 100}})
        with_year = PropertyPayload.model_validate({
            "property_id": 1,
            "assessed_year": "2024",
            "assessments": {"land_value": "100", "assessed_value": 250000},
        })

        assert build_assessment_row(without_year, None) == []
        assert build_assessment_row(with_year, None)[0]["assessed_year"] == 2024

    def test_structure_values_coerced(self):
        payload = PropertyPayload.model_validate({
            "property_id": 1,
            "structure": {"bedsCount": "3", "baths": "2.5", "living_area_sqft": "1,450"},
        })

        row = build_structure_row(payload, None)[0]

        assert row["beds_count"] == 3
        assert row["baths"] == 2.5
        assert row["living_area_sqft"] == 1450

    def test_last_sale_accepts_camel_case(self):
        payload = PropertyPayload.model_validate({
            "property_id": 1,
            "lastSale": {
                "date": "2024-06-03T00:00:00Z",
                "documentType": "Grant Deed",
                "mtgAmount": "480000",
                "mtgType": "Conventional",
                "price": "615000",
            },
        })

        row = build_last_sale_row(payload, None)[0]

        assert row["sale_date"] == date(2024, 6, 3)
        assert row["document_type"] == "Grant Deed"
        assert row["mtg_amount"] == 480000.0
        assert row["mtg_type"] == "Conventional"
        assert row["price"] == 615000.0

    def test_coordinates_from_address_block(self):
        payload = PropertyPayload.model_validate({
            "property_id": 1,
            "address": {"latitude": "32.71", "longitude": -117.16},
        })
        no_longitude = PropertyPayload.model_validate({"property_id": 2, "address": {"latitude": "32.71"}})

        assert payload.coordinates == (32.71, -117.16)
        assert no_longitude.coordinates is None


class TestPropertyUpserter:
    """Test idempotent property writes"""

    @pytest.mark.asyncio
    async def test_insert_with_satellites(self, db_session, property_factory):
        payload = PropertyPayload.model_validate(property_factory(501, "1 Main St"))
        upserter = PropertyUpserter(db_session)

        property_id, inserted = await upserter.upsert(501, fields(), payload)
        await db_session.commit()

        assert inserted is True
        row = (await db_session.execute(select(Property))).scalar_one()
        assert row.id == property_id
        assert row.external_property_id == 501
        assert row.status == PropertyStatus.IN_RENOVATION
        assert row.property_type == "Single Family Residential"
        assert await count(db_session, PropertyAddress) == 1
        assert await count(db_session, PropertyStructure) == 1
        assert await count(db_session, PropertyValuation) == 1
        assert await count(db_session, PropertyTaxRecord) == 1
        # No assessed_year and no last_sale in the payload
        assert await count(db_session, PropertyAssessment) == 0
        assert await count(db_session, PropertyLastSale) == 0

    @pytest.mark.asyncio
    async def test_replay_updates_without_duplicates(self, db_session, property_factory):
        payload = PropertyPayload.model_validate(property_factory(501, "1 Main St"))
        upserter = PropertyUpserter(db_session)

        first_id, first_inserted = await upserter.upsert(501, fields(), payload)
        await db_session.commit()
        second_id, second_inserted = await upserter.upsert(501, fields(status=PropertyStatus.ON_MARKET), payload)
        await db_session.commit()

        assert first_inserted is True
        assert second_inserted is False
        assert first_id == second_id
        assert await count(db_session, Property) == 1
        assert await count(db_session, PropertyAddress) == 1
        assert await count(db_session, PropertyStructure) == 1

        status = (await db_session.execute(select(Property.status))).scalar_one()
        assert status == PropertyStatus.ON_MARKET

    @pytest.mark.asyncio
    async def test_replay_leaves_descriptive_columns_alone(self, db_session, property_factory):
        upserter = PropertyUpserter(db_session)
        first = PropertyPayload.model_validate(
            property_factory(501, "1 Main St", property_type="Condominium", hoa="yes", months_owned=14)
        )
        await upserter.upsert(501, fields(), first)
        await db_session.commit()

        # Later detail lookup without the descriptive fields
        later = PropertyPayload.model_validate(
            property_factory(501, "1 Main St", property_type=None, hoa=None, months_owned=None)
        )
        await upserter.upsert(501, fields(status=PropertyStatus.ON_MARKET, county="Riverside"), later)
        await db_session.commit()

        row = (await db_session.execute(select(Property))).scalar_one()
        await db_session.refresh(row)
        assert row.property_type == "Condominium"
        assert row.hoa == "yes"
        assert row.months_owned == 14
        assert row.status == PropertyStatus.ON_MARKET
        assert row.county == "Riverside"

    @pytest.mark.asyncio
    async def test_row_from_another_writer_is_updated(self, db_session, property_factory):
        existing_id = uuid.uuid4()
        db_session.add(Property(
            id=existing_id,
            external_property_id=501,
            property_type="Townhouse",
            status=PropertyStatus.IN_RENOVATION,
            listing_status=ListingStatus.OFF_MARKET,
        ))
        await db_session.commit()

        payload = PropertyPayload.model_validate(property_factory(501, "1 Main St"))
        property_id, inserted = await PropertyUpserter(db_session).upsert(
            501, fields(status=PropertyStatus.ON_MARKET), payload
        )
        await db_session.commit()

        assert inserted is False
        assert property_id == existing_id
        assert await count(db_session, Property) == 1
        # Satellites belong to the creating sync only
        assert await count(db_session, PropertyAddress) == 0

        row = (await db_session.execute(select(Property))).scalar_one()
        await db_session.refresh(row)
        assert row.status == PropertyStatus.ON_MARKET
        assert row.property_type == "Townhouse"

    @pytest.mark.asyncio
    async def test_failed_satellite_keeps_property(self, db_session, property_factory, monkeypatch):
        monkeypatch.setattr(property_loader, "SATELLITE_BUILDERS", [
            (PropertyAddress, property_loader.build_address_row),
            # assessed_year is NOT NULL
            (PropertyAssessment, lambda payload, county: [{"assessed_year": None, "land_value": 1.0}]),
            (PropertyStructure, property_loader.build_structure_row),
        ])
        payload = PropertyPayload.model_validate(property_factory(501, "1 Main St"))

        _, inserted = await PropertyUpserter(db_session).upsert(501, fields(), payload)
        await db_session.commit()

        assert inserted is True
        assert await count(db_session, Property) == 1
        assert await count(db_session, PropertyAddress) == 1
        assert await count(db_session, PropertyAssessment) == 0
        assert await count(db_session, PropertyStructure) == 1

    @pytest.mark.asyncio
    async def test_property_without_sub_objects(self, db_session):
        payload = PropertyPayload.model_validate({"property_id": 777})

        _, inserted = await PropertyUpserter(db_session).upsert(777, fields(), payload)
        await db_session.commit()

        assert inserted is True
        assert await count(db_session, Property) == 1
        assert await count(db_session, PropertyAddress) == 0

    @pytest.mark.asyncio
    async def test_database_error_is_wrapped(self, property_factory):
        mock_session = AsyncMock()
        mock_session.get_bind = MagicMock(return_value=SimpleNamespace(dialect=SimpleNamespace(name="postgresql")))
        mock_session.execute = AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("database is locked")))
        payload = PropertyPayload.model_validate(property_factory(501, "1 Main St"))

        with pytest.raises(UpsertError) as exc_info:
            await PropertyUpserter(mock_session).upsert(501, fields(), payload)

        assert exc_info.value.context["external_property_id"] == 501


class TestRecordTransactions:
    """Test sale-history deduplication"""

    @pytest.mark.asyncio
    async def test_natural_key_deduplicates(self, db_session, property_factory):
        payload = PropertyPayload.model_validate(property_factory(501, "1 Main St"))
        upserter = PropertyUpserter(db_session)
        property_id, _ = await upserter.upsert(501, fields(), payload)

        entries = [
            TransactionEntry(TransactionType.ACQUISITION, date(2025, 1, 5), sale_price=600000.0),
            TransactionEntry(TransactionType.ACQUISITION, date(2025, 1, 5), sale_price=600000.0),
            TransactionEntry(TransactionType.SALE, date(2025, 3, 1), sale_price=820000.0),
        ]

        assert await upserter.record_transactions(property_id, entries) == 2
        await db_session.commit()

        # Replaying the same history adds nothing
        assert await upserter.record_transactions(property_id, entries) == 0
        await db_session.commit()

        assert await count(db_session, PropertyTransaction) == 2

    @pytest.mark.asyncio
    async def test_suspect_price_stored_as_flag(self, db_session, property_factory):
        payload = PropertyPayload.model_validate(property_factory(501, "1 Main St"))
        upserter = PropertyUpserter(db_session)
        property_id, _ = await upserter.upsert(501, fields(), payload)

        await upserter.record_transactions(property_id, [
            TransactionEntry(TransactionType.ACQUISITION, date(2025, 1, 5), sale_price=None, price_suspect=True),
        ])
        await db_session.commit()

        row = (await db_session.execute(select(PropertyTransaction))).scalar_one()
        assert row.sale_price is None
        assert row.price_suspect is True
