"""Structural rules: required fields, data types and string formats."""

import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from staycheck.core.documents import is_number, parse_datetime


@dataclass
class DataTypeRule:
    """Expected type of a top-level response field.

    Attributes:
        field: Top-level key the rule applies to
        expected_type: Type name used in the issue message
        validator: Predicate returning True for acceptable values
    """
    field: str
    expected_type: str
    validator: Callable[[Any], bool]


@dataclass
class FormatRule:
    """Regex applied to string leaves whose key or path contains ``name``."""
    name: str
    pattern: re.Pattern[str]
    message: str

    def matches_field(self, path: str, key: str) -> bool:
        return self.name in key or self.name in path


REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "property_info": ("id", "name", "address", "price"),
    "booking_response": ("bookingId", "dates", "guestCount", "totalPrice"),
    "availability": ("propertyId", "dates", "available"),
    "pricing": ("basePrice", "fees", "total"),
    "recommendation": ("recommendations", "criteria", "confidence"),
}

PRICE_RANGES: dict[str, tuple[float, float]] = {
    "studio": (30, 150),
    "apartment": (50, 300),
    "house": (80, 500),
    "villa": (150, 1000),
}


def _is_date_string(value: Any) -> bool:
    return isinstance(value, str) and parse_datetime(value) is not None


def default_data_type_rules() -> list[DataTypeRule]:
    return [
        DataTypeRule("price", "number", lambda v: is_number(v) and v >= 0),
        DataTypeRule("maxGuests", "integer", lambda v: isinstance(v, int) and not isinstance(v, bool) and v > 0),
        DataTypeRule("guestCount", "integer", lambda v: isinstance(v, int) and not isinstance(v, bool) and v > 0),
        DataTypeRule("bedrooms", "integer", lambda v: isinstance(v, int) and not isinstance(v, bool) and v >= 0),
        DataTypeRule("checkIn", "date string", _is_date_string),
        DataTypeRule("checkOut", "date string", _is_date_string),
        DataTypeRule("available", "boolean", lambda v: isinstance(v, bool)),
    ]


def default_format_rules() -> list[FormatRule]:
    return [
        FormatRule("email", re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"), "Invalid email format"),
        FormatRule("phone", re.compile(r"^\+?[\d\s\-\(\)]{7,15}$"), "Invalid phone number format"),
        FormatRule("postalCode", re.compile(r"^[\d\w\s\-]{3,10}$"), "Invalid postal code format"),
        FormatRule("url", re.compile(r"^https?://.+"), "Invalid URL format"),
    ]
