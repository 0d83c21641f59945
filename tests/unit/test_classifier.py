"""
Unit tests for entity classification and the company registry
"""

import uuid

import pytest
from unittest.mock import AsyncMock
from sqlalchemy import select, func

from ingestion.classifier import (
    CompanyRef,
    CompanyRegistry,
    EntityType,
    classify,
    is_corporate,
)
from models.company import Company


class TestClassify:
    """Test trust/individual/corporate classification"""

    @pytest.mark.parametrize("name", [
        "Acme Holdings LLC",
        "ACME HOLDINGS, LLC",
        "Sunrise Properties",
        "Blue Sky Investments",
        "Blue Sky Investment Group",
        "Westward Capital",
        "Pacific Realty",
        "Harbor Ventures",
        "Granite Corp",
        "Maple Inc.",
        "North Ltd",
        "Cedar Fund LP",
    ])
    def test_corporate_names(self, name):
        assert classify(name) == EntityType.CORPORATE

    @pytest.mark.parametrize("name", [
        "Smith Family Trust",
        "THE JONES LIVING TRUST",
        "Garcia Revocable Trust",
        "Lee Irrevocable Trust",
        "Brown Spousal Trust",
    ])
    def test_trust_names(self, name):
        assert classify(name) == EntityType.TRUST

    def test_trust_wins_over_corporate_wording(self):
        assert classify("Smith Family Trust LLC") == EntityType.TRUST

    @pytest.mark.parametrize("code", ["TR", "FL", "tr"])
    def test_trust_ownership_code(self, code):
        assert classify("Acme Holdings LLC", code) == EntityType.TRUST

    def test_other_ownership_code_is_ignored(self):
        assert classify("Acme Holdings LLC", "CO") == EntityType.CORPORATE

    def test_opendoor_without_suffix_is_corporate(self):
        assert classify("Opendoor Property J") == EntityType.CORPORATE

    def test_words_must_match_whole(self):
        # "INC" inside "VINCENT", "LP" inside "ALPINE"
        assert classify("Vincent Alpine") == EntityType.INDIVIDUAL

    def test_trustee_is_not_a_trust(self):
        assert classify("John Trustee") == EntityType.INDIVIDUAL

    @pytest.mark.parametrize("name", ["John Smith", "MARIA GARCIA", "", "   ", None])
    def test_individuals(self, name):
        assert classify(name) == EntityType.INDIVIDUAL

    def test_empty_name_with_trust_code(self):
        assert classify(None, "TR") == EntityType.TRUST

    def test_deterministic(self):
        results = {classify("Acme Holdings LLC", None) for _ in range(10)}
        assert results == {EntityType.CORPORATE}

    def test_is_corporate(self):
        assert is_corporate("Acme Holdings LLC")
        assert not is_corporate("John Smith")


class TestCompanyRegistry:
    """Test company get-or-create against the database"""

    @pytest.mark.asyncio
    async def test_upsert_creates_company(self, db_session):
        registry = CompanyRegistry(db_session)

        company, created = await registry.upsert("ACME HOLDINGS, LLC", "San Diego")

        assert created is True
        assert company.company_name == "Acme Holdings LLC"
        assert company.comparison_key == "acme holdings llc"
        assert company.counties == ["San Diego"]

        row = (await db_session.execute(select(Company))).scalar_one()
        assert row.id == company.id
        assert row.counties == ["San Diego"]

    @pytest.mark.asyncio
    async def test_name_variants_resolve_to_one_company(self, db_session):
        registry = CompanyRegistry(db_session)

        first, created_first = await registry.upsert("ACME HOLDINGS, LLC", None)
        second, created_second = await registry.upsert("Acme Holdings LLC", None)
        third, created_third = await registry.upsert("acme   holdings llc.", None)

        assert created_first is True
        assert created_second is False
        assert created_third is False
        assert first.id == second.id == third.id

        count = (await db_session.execute(select(func.count()).select_from(Company))).scalar()
        assert count == 1

    @pytest.mark.asyncio
    async def test_counties_grow_without_duplicates(self, db_session):
        registry = CompanyRegistry(db_session)

        await registry.upsert("Acme Holdings LLC", "San Diego")
        await registry.upsert("Acme Holdings LLC", "san diego")
        company, _ = await registry.upsert("Acme Holdings LLC", "Riverside")

        assert company.counties == ["San Diego", "Riverside"]

        row = (await db_session.execute(select(Company))).scalar_one()
        assert row.counties == ["San Diego", "Riverside"]

    @pytest.mark.asyncio
    async def test_blank_name_is_not_registered(self, db_session):
        registry = CompanyRegistry(db_session)

        company, created = await registry.upsert("  ", "San Diego")

        assert company is None
        assert created is False

    @pytest.mark.asyncio
    async def test_load_cache_sees_existing_companies(self, db_session):
        await CompanyRegistry(db_session).upsert("Sunrise Properties Inc", None)

        cache = await CompanyRegistry.load_cache(db_session)

        assert set(cache) == {"sunrise properties inc"}
        registry = CompanyRegistry(db_session, cache)
        assert registry.lookup("SUNRISE PROPERTIES, INC.").company_name == "Sunrise Properties Inc"

    @pytest.mark.asyncio
    async def test_company_created_by_another_writer_is_reused(self, db_session):
        registry = CompanyRegistry(db_session, cache={})
        existing_id = uuid.uuid4()
        db_session.add(Company(
            id=existing_id,
            company_name="Harbor Ventures",
            comparison_key="harbor ventures",
            counties=[],
        ))
        await db_session.commit()

        company, created = await registry.upsert("HARBOR VENTURES", None)

        assert created is False
        assert company.id == existing_id

    @pytest.mark.asyncio
    async def test_insert_race_falls_back_to_existing_row(self, db_session):
        existing_id = uuid.uuid4()
        db_session.add(Company(
            id=existing_id,
            company_name="Harbor Ventures",
            comparison_key="harbor ventures",
            counties=[],
        ))
        await db_session.commit()

        registry = CompanyRegistry(db_session, cache={})
        existing = CompanyRef(id=existing_id, company_name="Harbor Ventures", comparison_key="harbor ventures")
        # First lookup misses (the other writer has not committed yet), second sees the row
        registry._find = AsyncMock(side_effect=[None, existing])

        company, created = await registry.upsert("Harbor Ventures", None)

        assert created is False
        assert company.id == existing_id
        assert registry._find.await_count == 2
