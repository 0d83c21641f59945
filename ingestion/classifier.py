"""
Entity classification and company registration.

classify() decides whether a buyer/seller name is a trust, an individual or a
corporate entity. Only corporate parties are tracked as companies.

CompanyRegistry keeps a per-run cache of known companies keyed by the
normalized comparison key and get-or-creates rows in the companies table.
Cached entries are plain snapshots, never ORM instances, so a rollback of a
failed record never invalidates the cache.
"""

import enum
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import upsert_insert
from core.exceptions import PersistenceConflict
from ingestion.transformers.normalizer import company_comparison_key, normalize_company_name
from models.company import Company
import logging

logger = logging.getLogger(__name__)


class EntityType(str, enum.Enum):
    TRUST = "trust"
    INDIVIDUAL = "individual"
    CORPORATE = "corporate"


TRUST_OWNERSHIP_CODES = frozenset({"TR", "FL"})

TRUST_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bTRUST\b",
        r"\bLIVING TRUST\b",
        r"\bFAMILY TRUST\b",
        r"\bREVOCABLE TRUST\b",
        r"\bIRREVOCABLE TRUST\b",
        r"\bSPOUSAL TRUST\b",
    )
]

# Known corporate buyers whose registered names carry no entity suffix
CORPORATE_NAME_MARKERS = ("opendoor",)

CORPORATE_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\bLLC\b",
        r"\bINC\b",
        r"\bCORP\b",
        r"\bLTD\b",
        r"\bLP\b",
        r"\bPROPERTIES\b",
        r"\bINVESTMENTS?\b",
        r"\bCAPITAL\b",
        r"\bVENTURES?\b",
        r"\bHOLDINGS?\b",
        r"\bREALTY\b",
    )
]


def classify(name: Optional[str], ownership_code: Optional[str] = None) -> EntityType:
    """
    Classify a party name.

    Precedence: trust ownership code, trust wording, known corporate names,
    corporate wording, then individual. A trust is never corporate even when
    its name also contains corporate wording.

    Args:
        name: Buyer or seller name as reported by the provider
        ownership_code: Provider ownership code for the buyer ("TR", "FL", ...)
    """
    if ownership_code and ownership_code.strip().upper() in TRUST_OWNERSHIP_CODES:
        return EntityType.TRUST

    if not name or not name.strip():
        return EntityType.INDIVIDUAL

    if any(pattern.search(name) for pattern in TRUST_PATTERNS):
        return EntityType.TRUST

    lowered = name.lower()
    if any(marker in lowered for marker in CORPORATE_NAME_MARKERS):
        return EntityType.CORPORATE

    if any(pattern.search(name) for pattern in CORPORATE_PATTERNS):
        return EntityType.CORPORATE

    return EntityType.INDIVIDUAL


def is_corporate(name: Optional[str], ownership_code: Optional[str] = None) -> bool:
    return classify(name, ownership_code) == EntityType.CORPORATE


@dataclass
class CompanyRef:
    """Snapshot of a companies row held in the per-run cache"""
    id: uuid.UUID
    company_name: str
    comparison_key: str
    counties: List[str] = field(default_factory=list)

    def has_county(self, county: str) -> bool:
        target = county.lower()
        return any(existing.lower() == target for existing in self.counties)


class CompanyRegistry:
    """
    Get-or-create companies by normalized name.

    Every write commits on its own so a later record failure cannot undo a
    company another record already points at.
    """

    def __init__(self, db: AsyncSession, cache: Optional[Dict[str, CompanyRef]] = None):
        self.db = db
        self.cache: Dict[str, CompanyRef] = cache if cache is not None else {}

    @staticmethod
    async def load_cache(db: AsyncSession) -> Dict[str, CompanyRef]:
        """Load every known company, keyed by comparison key"""
        result = await db.execute(
            select(Company.id, Company.company_name, Company.comparison_key, Company.counties)
        )

        cache = {}
        for row in result.all():
            ref = CompanyRef(
                id=row.id,
                company_name=row.company_name,
                comparison_key=row.comparison_key,
                counties=list(row.counties or []),
            )
            cache[ref.comparison_key] = ref

        logger.info(f"Loaded {len(cache)} companies into cache")
        return cache

    def lookup(self, name: Optional[str]) -> Optional[CompanyRef]:
        key = company_comparison_key(normalize_company_name(name))
        return self.cache.get(key) if key else None

    async def upsert(self, name: Optional[str], county: Optional[str] = None) -> Tuple[Optional[CompanyRef], bool]:
        """
        Resolve a corporate name to a company, creating it when unknown.

        Returns:
            (company, created). company is None when the name normalizes to
            nothing.
        """
        display_name = normalize_company_name(name)
        key = company_comparison_key(display_name)
        if not key:
            return None, False

        ref = self.cache.get(key)
        if ref is None:
            ref = await self._find(key, display_name)

        if ref is not None:
            self.cache[key] = ref
            await self._add_county(ref, county)
            return ref, False

        counties = [county] if county else []
        new_id = uuid.uuid4()

        stmt = upsert_insert(self.db, Company).values(
            id=new_id,
            company_name=display_name,
            comparison_key=key,
            counties=counties,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["comparison_key"]).returning(Company.id)
        result = await self.db.execute(stmt)
        created_id = result.scalar_one_or_none()
        await self.db.commit()

        if created_id is None:
            # Another writer registered the same company first
            ref = await self._find(key, display_name)
            if ref is None:
                raise PersistenceConflict(
                    "Company insert conflicted but no existing row was found",
                    context={"table_name": "companies", "company_name": display_name, "key": key},
                )
            logger.info(f"Company '{display_name}' already registered, using existing row")
            self.cache[key] = ref
            await self._add_county(ref, county)
            return ref, False

        ref = CompanyRef(id=new_id, company_name=display_name, comparison_key=key, counties=counties)
        self.cache[key] = ref
        logger.info(f"Registered company '{display_name}'")
        return ref, True

    async def _find(self, key: str, display_name: str) -> Optional[CompanyRef]:
        result = await self.db.execute(
            select(Company.id, Company.company_name, Company.comparison_key, Company.counties)
            .where(or_(Company.comparison_key == key, Company.company_name == display_name))
            .limit(1)
        )
        row = result.first()
        if row is None:
            return None
        return CompanyRef(
            id=row.id,
            company_name=row.company_name,
            comparison_key=row.comparison_key,
            counties=list(row.counties or []),
        )

    async def _add_county(self, ref: CompanyRef, county: Optional[str]):
        """Append a county to the company's list if it is not there yet"""
        if not county or ref.has_county(county):
            return

        counties = ref.counties + [county]
        await self.db.execute(
            update(Company)
            .where(Company.id == ref.id)
            .values(counties=counties, updated_at=datetime.utcnow())
        )
        await self.db.commit()
        ref.counties = counties
