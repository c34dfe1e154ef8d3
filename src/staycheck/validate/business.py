"""Business rules for property, booking and pricing responses.

Each rule is a plain function of ``(response, context)`` returning the
issues it found. Rules read fields defensively: a missing or wrongly
typed field means the rule has nothing to say, since the syntax layer
reports type problems on its own.
"""

import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

from staycheck.core.documents import get_path, is_number, now_like, parse_datetime
from staycheck.core.types import Severity, ValidationContext, ValidationIssue

RuleCheck = Callable[[dict[str, Any], ValidationContext], list[ValidationIssue]]
RulePredicate = Callable[[dict[str, Any], ValidationContext], bool]


@dataclass
class BusinessRule:
    """A named, independently pluggable business rule.

    Attributes:
        id: Stable rule identifier
        name: Human-readable rule name
        category: Rule family (property, booking, pricing, ...)
        check: Function returning the issues found in a response
        applies: Optional predicate; the rule is skipped when it returns False
        enabled: Whether the rule is active
    """
    id: str
    name: str
    category: str
    check: RuleCheck
    applies: RulePredicate | None = None
    enabled: bool = True


CANCELLATION_POLICIES = ("flexible", "moderate", "strict", "super_strict", "long_term")
HOST_RESPONSE_TIMES = ("within an hour", "within a few hours", "within a day", "a few days or more")
CONFLICTING_AMENITIES = (("petFriendly", "noPets"), ("smoking", "noSmoking"), ("pool", "noPool"))
SUPPORTED_CURRENCIES = ("EUR", "USD", "GBP", "BRL")
SEASONAL_MULTIPLIERS = {
    "summer": (1.2, 2.5),
    "winter": (0.8, 1.8),
    "spring": (0.9, 1.6),
    "fall": (0.85, 1.5),
}
UNUSUAL_AMENITIES = {
    "apartment": ("pool", "garden", "garage"),
    "house": (),
    "villa": (),
    "studio": ("multipleRooms",),
}

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE = re.compile(r"^\+?[\d\s\-\(\)]{7,15}$")
_IMAGE_URL = re.compile(r"^https?://.+\.(jpg|jpeg|png|webp)$", re.IGNORECASE)


def _issue(
    severity: Severity,
    field: str,
    message: str,
    confidence: float,
    source: str,
    fix: str | None = None,
) -> ValidationIssue:
    return ValidationIssue(
        kind="business",
        severity=severity,
        field=field,
        message=message,
        confidence=confidence,
        source=source,
        suggested_fix=fix,
    )


def _number(response: dict[str, Any], path: str) -> float | None:
    value = get_path(response, path)
    return float(value) if is_number(value) else None


def _amenities(response: dict[str, Any]) -> set[str]:
    amenities = response.get("amenities")
    if not isinstance(amenities, list):
        return set()
    return {a for a in amenities if isinstance(a, str)}


def format_amount(value: float) -> str:
    """Render a numeric fix the way it would be typed into the response."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


def _stay_nights(response: dict[str, Any]) -> int | None:
    check_in = parse_datetime(response.get("checkIn"))
    check_out = parse_datetime(response.get("checkOut"))
    if check_in is None or check_out is None:
        return None
    return math.ceil((check_out - check_in).total_seconds() / 86400)


# Property rules


def check_price_range(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    price = _number(response, "price")
    if price is None or 0 < price <= 50000:
        return []
    return [_issue(
        "critical", "price",
        "Property price must be between €0 and €50,000 per night",
        0.95, "property_price_validator",
        fix=format_amount(_clamp(price, 50, 2000)),
    )]


def check_guest_capacity(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    guests = _number(response, "maxGuests")
    if guests is None or 1 <= guests <= 50:
        return []
    return [_issue(
        "major", "maxGuests",
        "Guest capacity must be between 1 and 50",
        0.9, "capacity_validator",
        fix=str(int(_clamp(guests, 1, 20))),
    )]


def check_address_completeness(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    address = response.get("address")
    if not isinstance(address, dict):
        return []
    issues = []
    for part in ("street", "city", "postalCode", "country"):
        value = address.get(part)
        if value is None or (isinstance(value, str) and not value.strip()):
            issues.append(_issue(
                "major", f"address.{part}", f"Address {part} is required", 0.95, "address_validator"
            ))
    return issues


def check_contact_info(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    contact = response.get("contact")
    if not isinstance(contact, dict):
        return []
    issues = []
    phone = contact.get("phone")
    if isinstance(phone, str) and phone and not _PHONE.match(phone):
        issues.append(_issue("major", "contact.phone", "Invalid phone number format", 0.85, "contact_validator"))
    email = contact.get("email")
    if isinstance(email, str) and email and not _EMAIL.match(email):
        issues.append(_issue("critical", "contact.email", "Invalid email format", 0.98, "contact_validator"))
    return issues


def check_amenity_conflicts(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    amenities = _amenities(response)
    return [
        _issue(
            "major", "amenities", f"Conflicting amenities: {first} and {second}",
            0.95, "amenities_validator",
        )
        for first, second in CONFLICTING_AMENITIES
        if first in amenities and second in amenities
    ]


def check_type_amenities(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    property_type = response.get("propertyType")
    unusual = UNUSUAL_AMENITIES.get(property_type) if isinstance(property_type, str) else None
    if not unusual:
        return []
    amenities = _amenities(response)
    return [
        _issue("minor", "amenities", f"{amenity} is unusual for {property_type}", 0.6, "property_type_validator")
        for amenity in unusual
        if amenity in amenities
    ]


def check_villa_outdoor(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    if context.property_type != "villa":
        return []
    amenities = _amenities(response)
    if response.get("garden") or response.get("pool") or {"garden", "pool"} & amenities:
        return []
    return [_issue("minor", "amenities", "Villas typically have gardens or pools", 0.4, "property_specific_validator")]


# Booking rules


def check_checkin_future(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    check_in = parse_datetime(response.get("checkIn"))
    if check_in is None or check_in > now_like(check_in):
        return []
    return [_issue(
        "critical", "checkIn", "Check-in date must be in the future",
        0.98, "date_validator",
        fix=(date.today() + timedelta(days=2)).isoformat(),
    )]


def check_advance_booking(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    check_in = parse_datetime(response.get("checkIn"))
    if check_in is None:
        return []
    hours = (check_in - now_like(check_in)).total_seconds() / 3600
    if hours >= 24:
        return []
    return [_issue(
        "major", "checkIn", "Bookings must be made at least 24 hours in advance",
        0.85, "advance_booking_validator",
    )]


def check_stay_duration(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    nights = _stay_nights(response)
    if nights is None:
        return []
    if nights > 365:
        return [_issue("major", "duration", "Booking duration cannot exceed 365 nights", 0.92, "duration_validator")]
    if nights < 1:
        return [_issue("critical", "duration", "Check-out must be after check-in date", 0.98, "duration_validator")]
    return []


def check_guest_count(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    guests = _number(response, "guestCount")
    limit = _number(response, "maxGuests")
    if guests is None or limit is None or guests <= limit:
        return []
    return [_issue(
        "critical", "guestCount", "Guest count exceeds property maximum",
        0.99, "booking_validator", fix=format_amount(limit),
    )]


def check_special_requests(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    requests = response.get("specialRequests")
    if isinstance(requests, str) and len(requests) > 500:
        return [_issue("minor", "specialRequests", "Special requests text is unusually long", 0.6, "booking_validator")]
    return []


# Pricing rules


def check_seasonal_pricing(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    bounds = SEASONAL_MULTIPLIERS.get(context.season or "")
    seasonal = _number(response, "pricing.seasonalPrice")
    base = _number(response, "pricing.basePrice") or _number(response, "price")
    if bounds is None or seasonal is None or not base:
        return []
    multiplier = seasonal / base
    if bounds[0] <= multiplier <= bounds[1]:
        return []
    return [_issue(
        "minor", "seasonalPrice", f"Seasonal pricing for {context.season} seems unusual",
        0.7, "seasonal_pricing_validator",
    )]


def check_cleaning_fee(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    fee = _number(response, "cleaningFee")
    price = _number(response, "price")
    if fee is None or not price or fee / price <= 0.5:
        return []
    return [_issue(
        "major", "cleaningFee", "Cleaning fee should not exceed 50% of nightly rate",
        0.8, "cleaning_fee_validator", fix=f"{price * 0.3:.2f}",
    )]


def check_security_deposit(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    deposit = _number(response, "securityDeposit")
    if deposit is None or deposit <= 5000:
        return []
    return [_issue(
        "major", "securityDeposit", "Security deposit cannot exceed €5,000",
        0.9, "security_deposit_validator", fix="1000",
    )]


def check_total_price(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    pricing = response.get("pricing")
    if not isinstance(pricing, dict) or pricing.get("total") is None:
        return []
    total = _number(response, "pricing.total")
    base = _number(response, "pricing.basePrice")
    if total is None or base is None:
        return []
    calculated = base + sum(
        _number(response, f"pricing.{part}") or 0.0 for part in ("cleaningFee", "serviceFee", "taxes")
    )
    if abs(total - calculated) <= 0.01:
        return []
    return [_issue(
        "critical", "pricing.total", "Total price calculation is incorrect",
        0.99, "financial_validator", fix=f"{calculated:.2f}",
    )]


def check_tax_rate(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    taxes = _number(response, "pricing.taxes")
    base = _number(response, "pricing.basePrice") or _number(response, "price")
    if not taxes or not base or taxes / base <= 0.3:
        return []
    return [_issue("major", "pricing.taxes", "Tax rate exceeds 30%, please verify", 0.8, "financial_validator")]


def check_currency(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    currency = response.get("currency")
    if not isinstance(currency, str) or currency in SUPPORTED_CURRENCIES:
        return []
    return [_issue("minor", "currency", "Unsupported currency detected", 0.7, "financial_validator", fix="EUR")]


# Policy rules


def check_cancellation_policy(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    policy = response.get("cancellationPolicy")
    if policy is None or policy in CANCELLATION_POLICIES:
        return []
    return [_issue(
        "major", "cancellationPolicy", "Invalid cancellation policy", 0.9, "policy_validator", fix="moderate"
    )]


def check_minimum_stay(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    stay = _number(response, "minimumStay")
    if stay is None:
        return []
    if stay > 30:
        return [_issue(
            "minor", "minimumStay", "Minimum stay over 30 nights may limit bookings", 0.7, "minimum_stay_validator"
        )]
    if stay < 1:
        return [_issue(
            "major", "minimumStay", "Minimum stay must be at least 1 night", 0.95, "minimum_stay_validator", fix="1"
        )]
    return []


# Availability, media, reviews, host, location


def check_availability_periods(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    periods = response.get("availability")
    if not isinstance(periods, list):
        return []
    issues = []
    for i, period in enumerate(periods):
        if not isinstance(period, dict):
            continue
        start = parse_datetime(period.get("startDate"))
        end = parse_datetime(period.get("endDate"))
        if start is not None and end is not None and start >= end:
            issues.append(_issue(
                "critical", f"availability[{i}]", "End date must be after start date", 0.98, "availability_validator"
            ))
    return issues


def check_image_urls(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    images = response.get("images")
    if not isinstance(images, list):
        return []
    return [
        _issue("minor", f"images[{i}]", "Invalid image URL format", 0.8, "media_validator")
        for i, url in enumerate(images)
        if isinstance(url, str) and not _IMAGE_URL.match(url)
    ]


def check_review_score(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    score = _number(response, "reviewScore")
    if score is None or 1 <= score <= 5:
        return []
    return [_issue(
        "major", "reviewScore", "Review score must be between 1 and 5",
        0.95, "review_validator", fix=f"{_clamp(score, 1, 5):.1f}",
    )]


def check_host_response_time(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    value = response.get("hostResponseTime")
    if value is None or value in HOST_RESPONSE_TIMES:
        return []
    return [_issue(
        "minor", "hostResponseTime", "Invalid host response time format",
        0.8, "host_validator", fix="within a few hours",
    )]


def check_coordinates(response: dict[str, Any], context: ValidationContext) -> list[ValidationIssue]:
    issues = []
    latitude = _number(response, "coordinates.latitude")
    longitude = _number(response, "coordinates.longitude")
    if latitude is not None and not -90 <= latitude <= 90:
        issues.append(_issue(
            "critical", "coordinates.latitude", "Latitude must be between -90 and 90", 0.99, "coordinate_validator"
        ))
    if longitude is not None and not -180 <= longitude <= 180:
        issues.append(_issue(
            "critical", "coordinates.longitude", "Longitude must be between -180 and 180", 0.99, "coordinate_validator"
        ))
    return issues


def _in_property_domain(response: dict[str, Any], context: ValidationContext) -> bool:
    return context.domain == "property_management"


def _has_pricing(response: dict[str, Any], context: ValidationContext) -> bool:
    return isinstance(response.get("pricing"), dict)


def default_business_rules() -> list[BusinessRule]:
    """The built-in rule set, in evaluation order."""
    return [
        BusinessRule("property_price_range", "Property Price Range Validation", "property", check_price_range),
        BusinessRule("guest_capacity_limit", "Guest Capacity Validation", "property", check_guest_capacity),
        BusinessRule("booking_date_future", "Future Booking Date Validation", "booking", check_checkin_future),
        BusinessRule("booking_duration_limit", "Booking Duration Validation", "booking", check_stay_duration),
        BusinessRule("minimum_advance_booking", "Minimum Advance Booking", "booking", check_advance_booking),
        BusinessRule("seasonal_pricing_validation", "Seasonal Pricing Consistency", "pricing", check_seasonal_pricing),
        BusinessRule("cleaning_fee_reasonable", "Cleaning Fee Validation", "pricing", check_cleaning_fee),
        BusinessRule("security_deposit_limit", "Security Deposit Validation", "pricing", check_security_deposit),
        BusinessRule(
            "property_address_completeness", "Address Completeness Validation", "property", check_address_completeness
        ),
        BusinessRule("contact_info_validation", "Contact Information Validation", "property", check_contact_info),
        BusinessRule("amenities_consistency", "Amenities Consistency Validation", "property", check_amenity_conflicts),
        BusinessRule(
            "cancellation_policy_validity", "Cancellation Policy Validation", "policy", check_cancellation_policy
        ),
        BusinessRule("minimum_stay_reasonable", "Minimum Stay Validation", "policy", check_minimum_stay),
        BusinessRule(
            "property_type_amenities_match", "Property Type and Amenities Match", "property", check_type_amenities
        ),
        BusinessRule(
            "financial_calculation_accuracy", "Financial Calculation Validation", "pricing", check_total_price
        ),
        BusinessRule(
            "availability_date_consistency", "Availability Date Consistency", "availability",
            check_availability_periods,
        ),
        BusinessRule("image_url_accessibility", "Image URL Validation", "media", check_image_urls),
        BusinessRule("review_score_range", "Review Score Validation", "reviews", check_review_score),
        BusinessRule("host_response_time", "Host Response Time Validation", "host", check_host_response_time),
        BusinessRule(
            "location_coordinate_validation", "Location Coordinates Validation", "location", check_coordinates
        ),
        BusinessRule(
            "villa_outdoor_amenities", "Villa Outdoor Amenities", "property", check_villa_outdoor,
            applies=_in_property_domain,
        ),
        BusinessRule("tax_rate_limit", "Tax Rate Validation", "financial", check_tax_rate, applies=_has_pricing),
        BusinessRule("supported_currency", "Currency Support", "financial", check_currency, applies=_has_pricing),
        BusinessRule("guest_count_limit", "Guest Count Validation", "booking", check_guest_count),
        BusinessRule("special_requests_length", "Special Requests Length", "booking", check_special_requests),
    ]
