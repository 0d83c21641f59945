"""
Map provider listing strings and ownership direction onto property status
"""

from typing import Optional, Tuple

from models.base import PropertyStatus, ListingStatus, TransactionType

ON_MARKET_VALUES = frozenset({"on market", "on_market"})


def resolve_listing_status(raw: Optional[str]) -> Tuple[PropertyStatus, ListingStatus]:
    """
    "On Market" / "on_market" -> (on-market, on-market)
    anything else, including None -> (in-renovation, off-market)

    Never yields SOLD: only a corporate-seller transaction marks a property sold.
    """
    if raw is not None and raw.strip().lower() in ON_MARKET_VALUES:
        return PropertyStatus.ON_MARKET, ListingStatus.ON_MARKET
    return PropertyStatus.IN_RENOVATION, ListingStatus.OFF_MARKET


def resolve_sync_status(
    raw_listing_status: Optional[str],
    buyer_corporate: bool,
    seller_corporate: bool,
) -> Tuple[PropertyStatus, ListingStatus]:
    """
    Status for a property written during a market sync.

    A tracked company selling to a non-corporate buyer means the property
    left the portfolio: it is SOLD and off the market.
    """
    if seller_corporate and not buyer_corporate:
        return PropertyStatus.SOLD, ListingStatus.OFF_MARKET
    return resolve_listing_status(raw_listing_status)


def resolve_transaction_type(buyer_corporate: bool, seller_corporate: bool) -> Optional[TransactionType]:
    if buyer_corporate and seller_corporate:
        return TransactionType.COMPANY_TO_COMPANY
    if buyer_corporate:
        return TransactionType.ACQUISITION
    if seller_corporate:
        return TransactionType.SALE
    return None
