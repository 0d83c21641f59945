"""
Pydantic schemas for provider transaction records.

The provider has shipped the same fields under both snake_case and camelCase
names over time. Every alias is resolved here, once, so the sync engine only
ever sees the fixed internal shape.
"""

from datetime import date, datetime
from typing import Optional, Any

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator


def parse_provider_date(value: Any) -> Optional[date]:
    """Normalize provider dates ("2025-01-10", "2025-01-10T08:00:00Z") to a date"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) < 10:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


class RawTransactionRecord(BaseModel):
    """
    One row of the provider's buyers/market transaction feed.

    Ephemeral: lives for the duration of a market run and is never
    persisted directly.
    """

    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None

    recording_date: Optional[date] = Field(
        None, validation_alias=AliasChoices("recording_date", "recordingDate")
    )
    sale_date: Optional[date] = Field(
        None, validation_alias=AliasChoices("sale_date", "saleDate")
    )

    buyer_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("buyer_name", "buyerName")
    )
    seller_name: Optional[str] = Field(
        None, validation_alias=AliasChoices("seller_name", "sellerName")
    )
    buyer_ownership_code: Optional[str] = Field(
        None, validation_alias=AliasChoices("buyer_ownership_code", "buyerOwnershipCode")
    )
    buyer_corporate: Optional[bool] = Field(
        None, validation_alias=AliasChoices("buyer_corporate", "buyer_corp", "buyerCorp", "buyerCorporate")
    )
    seller_corporate: Optional[bool] = Field(
        None, validation_alias=AliasChoices("seller_corporate", "seller_corp", "sellerCorp", "sellerCorporate")
    )

    listing_status: Optional[str] = Field(
        None, validation_alias=AliasChoices("listing_status", "listingStatus")
    )
    transaction_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("transaction_type", "transactionType")
    )
    is_new_construction: bool = Field(
        False, validation_alias=AliasChoices("is_new_construction", "isNewConstruction")
    )
    sale_price: Optional[float] = Field(
        None,
        validation_alias=AliasChoices("sale_price", "saleValue", "sale_value", "salePrice", "price"),
    )
    document_type: Optional[str] = Field(
        None, validation_alias=AliasChoices("document_type", "documentType")
    )

    model_config = ConfigDict(extra="ignore")

    @field_validator(
        "address", "city", "state", "buyer_name", "seller_name",
        "buyer_ownership_code", "listing_status", "transaction_type", "document_type",
        mode="before",
    )
    @classmethod
    def clean_text(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("recording_date", "sale_date", mode="before")
    @classmethod
    def clean_date(cls, v):
        return parse_provider_date(v)

    @field_validator("sale_price", mode="before")
    @classmethod
    def clean_price(cls, v):
        if v is None or v == "":
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    @field_validator("buyer_corporate", "seller_corporate", mode="before")
    @classmethod
    def clean_corporate_flag(cls, v):
        if isinstance(v, bool) or v is None:
            return v
        text = str(v).strip().lower()
        if text in ("true", "yes", "y", "1"):
            return True
        if text in ("false", "no", "n", "0"):
            return False
        return None

    @field_validator("is_new_construction", mode="before")
    @classmethod
    def clean_flag(cls, v):
        return v is True or (isinstance(v, str) and v.strip().lower() == "true")

    @property
    def address_key(self) -> Optional[str]:
        """The "address, city, state" key the detail API is keyed on"""
        if not self.address or not self.city or not self.state:
            return None
        return f"{self.address}, {self.city}, {self.state}"

    @property
    def is_new_construction_sale(self) -> bool:
        if self.is_new_construction:
            return True
        return (self.transaction_type or "").lower() == "new construction"
