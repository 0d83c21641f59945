"""
Pydantic schemas for provider property detail payloads.

Each detail sub-object gets its own model so snake_case and camelCase
provider keys are resolved here, once, and the loaders only read
attributes.
"""

from datetime import date
from typing import Optional, Any

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator

from ingestion.transformers.normalizer import parse_date, parse_float, parse_int, parse_str


def _alias(name: str, *extra: str) -> AliasChoices:
    head, *rest = name.split("_")
    camel = head + "".join(part.title() for part in rest)
    choices = [name] if camel == name else [name, camel]
    return AliasChoices(*choices, *extra)


class DetailModel(BaseModel):
    """Base for provider sub-objects: unknown keys ignored, bad values become None"""

    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def coerce(cls, v, info):
        annotation = cls.model_fields[info.field_name].annotation
        if annotation == Optional[int]:
            return parse_int(v)
        if annotation == Optional[float]:
            return parse_float(v)
        if annotation == Optional[date]:
            return parse_date(v)
        return parse_str(v)


class AddressDetail(DetailModel):
    formatted_street_address: Optional[str] = Field(
        None, validation_alias=_alias("formatted_street_address", "street_address", "address")
    )
    street_number: Optional[str] = Field(None, validation_alias=_alias("street_number"))
    street_name: Optional[str] = Field(None, validation_alias=_alias("street_name"))
    street_suffix: Optional[str] = Field(None, validation_alias=_alias("street_suffix"))
    unit_type: Optional[str] = Field(None, validation_alias=_alias("unit_type"))
    unit_number: Optional[str] = Field(None, validation_alias=_alias("unit_number"))
    city: Optional[str] = None
    county: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(None, validation_alias=_alias("zip_code", "zip"))
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    census_tract: Optional[str] = Field(None, validation_alias=_alias("census_tract"))


class StructureDetail(DetailModel):
    total_area_sq_ft: Optional[int] = Field(None, validation_alias=_alias("total_area_sq_ft"))
    living_area_sqft: Optional[int] = Field(None, validation_alias=_alias("living_area_sqft"))
    year_built: Optional[int] = Field(None, validation_alias=_alias("year_built"))
    effective_year_built: Optional[int] = Field(None, validation_alias=_alias("effective_year_built"))
    beds_count: Optional[int] = Field(None, validation_alias=_alias("beds_count"))
    rooms_count: Optional[int] = Field(None, validation_alias=_alias("rooms_count"))
    baths: Optional[float] = None
    stories: Optional[str] = None
    units_count: Optional[int] = Field(None, validation_alias=_alias("units_count"))
    condition: Optional[str] = None
    quality: Optional[str] = None
    pool_type: Optional[str] = Field(None, validation_alias=_alias("pool_type"))
    garage_description: Optional[str] = Field(None, validation_alias=_alias("garage_description"))


class AssessmentDetail(DetailModel):
    assessed_year: Optional[int] = Field(None, validation_alias=_alias("assessed_year"))
    land_value: Optional[float] = Field(None, validation_alias=_alias("land_value"))
    improvement_value: Optional[float] = Field(None, validation_alias=_alias("improvement_value"))
    assessed_value: Optional[float] = Field(None, validation_alias=_alias("assessed_value"))
    market_value: Optional[float] = Field(None, validation_alias=_alias("market_value"))


class ParcelDetail(DetailModel):
    apn_original: Optional[str] = Field(None, validation_alias=_alias("apn_original"))
    fips_code: Optional[str] = Field(None, validation_alias=_alias("fips_code"))
    area_acres: Optional[str] = Field(None, validation_alias=_alias("area_acres"))
    area_sq_ft: Optional[int] = Field(None, validation_alias=_alias("area_sq_ft"))
    zoning: Optional[str] = None
    subdivision: Optional[str] = None
    legal_description: Optional[str] = Field(None, validation_alias=_alias("legal_description"))


class ValuationDetail(DetailModel):
    value: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    forecast_standard_deviation: Optional[float] = Field(
        None, validation_alias=_alias("forecast_standard_deviation")
    )
    valuation_date: Optional[date] = Field(None, validation_alias=_alias("valuation_date", "date"))


class LastSaleDetail(DetailModel):
    sale_date: Optional[date] = Field(None, validation_alias=_alias("sale_date", "date"))
    recording_date: Optional[date] = Field(None, validation_alias=_alias("recording_date"))
    price: Optional[float] = None
    document_type: Optional[str] = Field(None, validation_alias=_alias("document_type"))
    mtg_amount: Optional[float] = Field(None, validation_alias=_alias("mtg_amount"))
    mtg_type: Optional[str] = Field(None, validation_alias=_alias("mtg_type"))
    lender: Optional[str] = None


class PropertyPayload(BaseModel):
    """
    Full property detail returned by the batch detail endpoint.

    Each sub-object (address, structure, ...) feeds a single satellite table
    and may be missing entirely.
    """

    property_id: Optional[int] = Field(
        None, validation_alias=AliasChoices("property_id", "propertyId")
    )
    county: Optional[str] = None
    msa: Optional[str] = None
    listing_status: Optional[str] = Field(
        None, validation_alias=AliasChoices("listing_status", "listingStatus")
    )

    property_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("property_type", "propertyType")
    )
    property_class_description: Optional[str] = Field(
        None, validation_alias=AliasChoices("property_class_description", "propertyClassDescription")
    )
    vacant: Optional[Any] = None
    hoa: Optional[Any] = None
    owner_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("owner_type", "ownerType")
    )
    purchase_method: Optional[str] = Field(
        None, validation_alias=AliasChoices("purchase_method", "purchaseMethod")
    )
    months_owned: Optional[Any] = Field(
        None, validation_alias=AliasChoices("months_owned", "monthsOwned")
    )

    assessed_year: Optional[Any] = Field(
        None, validation_alias=AliasChoices("assessed_year", "assessedYear")
    )
    tax_year: Optional[Any] = Field(
        None, validation_alias=AliasChoices("tax_year", "taxYear")
    )
    tax_amount: Optional[Any] = Field(
        None, validation_alias=AliasChoices("tax_amount", "taxAmount")
    )
    tax_delinquent_year: Optional[Any] = Field(
        None, validation_alias=AliasChoices("tax_delinquent_year", "taxDelinquentYear")
    )
    tax_rate_code_area: Optional[str] = Field(
        None, validation_alias=AliasChoices("tax_rate_code_area", "taxRateCodeArea")
    )

    address: Optional[AddressDetail] = None
    structure: Optional[StructureDetail] = None
    assessments: Optional[AssessmentDetail] = None
    parcel: Optional[ParcelDetail] = None
    valuation: Optional[ValuationDetail] = None
    last_sale: Optional[LastSaleDetail] = Field(
        None, validation_alias=AliasChoices("last_sale", "lastSale")
    )

    model_config = ConfigDict(extra="ignore")

    @field_validator("property_id", mode="before")
    @classmethod
    def clean_property_id(cls, v):
        if v is None or v == "":
            return None
        try:
            return int(v)
        except (TypeError, ValueError):
            return None

    @field_validator(
        "address", "structure", "assessments", "parcel", "valuation", "last_sale",
        mode="before",
    )
    @classmethod
    def clean_sub_object(cls, v):
        """Anything that is not a non-empty object counts as missing"""
        if isinstance(v, BaseModel):
            return v
        if not isinstance(v, dict) or not v:
            return None
        return v

    @property
    def coordinates(self):
        """(latitude, longitude) from the address block, if both are present"""
        if self.address is None:
            return None
        if self.address.latitude is None or self.address.longitude is None:
            return None
        return self.address.latitude, self.address.longitude


class EnrichmentResult(BaseModel):
    """One entry of a batch detail response: either a property or an error"""

    address: Optional[str] = None
    payload: Optional[PropertyPayload] = Field(
        None, validation_alias=AliasChoices("property", "payload")
    )
    error: Optional[str] = None

    @field_validator("error", mode="before")
    @classmethod
    def stringify_error(cls, v):
        if v is None or v is False or v == "":
            return None
        return str(v)

    @property
    def ok(self) -> bool:
        return self.error is None and self.payload is not None
