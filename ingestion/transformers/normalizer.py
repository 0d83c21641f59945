"""
Normalize provider strings and values into the shapes stored by the sync engine.

Handles:
- Company names (display form and comparison key)
- County names
- Property type labels
- Loose numeric/boolean/date values from detail payloads
"""

import re
from datetime import date
from typing import Any, Optional

from schemas.transaction import parse_provider_date


# Entity suffixes that stay fully upper-case in display names
UPPERCASE_SUFFIXES = {"LLC", "LLP", "PLLC", "LC", "PC", "LP", "GP"}

# Suffix spellings collapsed to a canonical mixed-case form
CANONICAL_SUFFIXES = {
    "INC": "Inc",
    "INCORPORATED": "Inc",
    "CORP": "Corp",
    "CORPORATION": "Corp",
}

_KEY_PUNCTUATION = re.compile(r"[,.;:]")
_WHITESPACE = re.compile(r"\s+")
_TRAILING_WORD_PUNCTUATION = re.compile(r"[,.;]+$")
_COUNTY_SUFFIX = re.compile(r"\s+county$", re.IGNORECASE)

_TOWNHOUSE_SPELLINGS = ("townhome", "townhouse", "town home", "town house")


def company_comparison_key(name: Optional[str]) -> Optional[str]:
    """
    Key used to decide whether two company names are the same entity.

    "ACME HOLDINGS, LLC" and "Acme Holdings LLC" share the key
    "acme holdings llc".
    """
    if not name:
        return None
    key = _KEY_PUNCTUATION.sub("", name.strip())
    key = _WHITESPACE.sub(" ", key).strip().lower()
    return key or None


def normalize_company_name(name: Optional[str]) -> Optional[str]:
    """
    Display form of a company name.

    Words are title-cased, entity suffixes are canonicalised
    ("INCORPORATED" -> "Inc", "llc" -> "LLC") and trailing punctuation is
    dropped.
    """
    if not name or not name.strip():
        return None

    words = []
    for raw_word in name.split():
        word = _TRAILING_WORD_PUNCTUATION.sub("", raw_word)
        if not word:
            continue

        upper = word.upper()
        if upper == "P.C":
            upper = "PC"

        if upper in UPPERCASE_SUFFIXES:
            words.append(upper)
        elif upper in CANONICAL_SUFFIXES:
            words.append(CANONICAL_SUFFIXES[upper])
        else:
            words.append(word[:1].upper() + word[1:].lower())

    normalized = _TRAILING_WORD_PUNCTUATION.sub("", " ".join(words)).strip()
    return normalized or None


def normalize_county_name(county: Optional[str]) -> Optional[str]:
    """
    "San Diego County, CA" -> "San Diego"
    """
    if not county:
        return None
    name = county.split(",", 1)[0].strip()
    name = _COUNTY_SUFFIX.sub("", name).strip()
    return name or None


def normalize_property_type(property_type: Optional[str]) -> Optional[str]:
    """Collapse provider property type variants onto a fixed vocabulary"""
    if property_type is None:
        return None

    trimmed = property_type.strip()
    if not trimmed:
        return None
    if trimmed == "Single Family Residential":
        return trimmed

    lowered = trimmed.lower()

    if "condominium" in lowered:
        return "Condominium"
    if "duplex" in lowered:
        return "Duplex"
    if "triplex" in lowered:
        return "Triplex"
    if "fourplex" in lowered:
        return "Fourplex"
    if any(spelling in lowered for spelling in _TOWNHOUSE_SPELLINGS):
        return "Townhouse"
    if "vacant land" in lowered or "vacant lot" in lowered:
        return "Vacant Land"
    if "vacant" in lowered and "non-vacant" not in lowered:
        return "Vacant Land"

    return trimmed


# ---- value coercion for detail payloads ----

def parse_float(value: Any) -> Optional[float]:
    """Parse float value safely"""
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def parse_int(value: Any) -> Optional[int]:
    """Parse integer value safely ("1,200" and 3.0 included)"""
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.replace(",", "").strip()
    try:
        return int(float(value))
    except (ValueError, TypeError):
        return None


def parse_bool(value: Any) -> Optional[bool]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    lowered = str(value).strip().lower()
    if lowered in ("true", "yes", "y", "1"):
        return True
    if lowered in ("false", "no", "n", "0"):
        return False
    return None


def parse_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_date(value: Any) -> Optional[date]:
    return parse_provider_date(value)
