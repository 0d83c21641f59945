"""
Collapse a market's transaction records to one record per address
"""

from datetime import date
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from schemas.transaction import RawTransactionRecord


def is_excluded(address: str, excluded_addresses: Sequence[str]) -> bool:
    """Case-insensitive substring match in either direction"""
    lowered = address.lower()
    for excluded in excluded_addresses:
        candidate = excluded.lower()
        if candidate in lowered or lowered in candidate:
            return True
    return False


def _keyed(
    records: Iterable[RawTransactionRecord],
    excluded_addresses: Sequence[str],
) -> Iterator[Tuple[str, RawTransactionRecord]]:
    for record in records:
        key = record.address_key
        if key is None:
            continue
        if excluded_addresses and is_excluded(record.address, excluded_addresses):
            continue
        yield key, record


def deduplicate_by_address(
    records: Iterable[RawTransactionRecord],
    excluded_addresses: Sequence[str] = (),
) -> Dict[str, RawTransactionRecord]:
    """
    Keep the most recent record per "address, city, state" key.

    Recency is the recording date; on a tie the record seen last wins.
    Records missing any address part and excluded addresses are dropped.
    """
    chosen: Dict[str, RawTransactionRecord] = {}

    for key, record in _keyed(records, excluded_addresses):
        current = chosen.get(key)
        if current is None or (record.recording_date or date.min) >= (current.recording_date or date.min):
            chosen[key] = record

    return chosen


def group_by_address(
    records: Iterable[RawTransactionRecord],
    excluded_addresses: Sequence[str] = (),
) -> Dict[str, List[RawTransactionRecord]]:
    """Every record per address key, in feed order (used for sale history)"""
    grouped: Dict[str, List[RawTransactionRecord]] = {}
    for key, record in _keyed(records, excluded_addresses):
        grouped.setdefault(key, []).append(record)
    return grouped
