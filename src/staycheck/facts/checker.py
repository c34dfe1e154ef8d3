"""Fact checking against the curated store and external verifiers.

This module provides the FactChecker, which backs the factual
validation layer. Curated checks run synchronously against the
FactStore; external verifiers run concurrently, each under its own
timeout, and a failing verifier only reduces coverage.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from staycheck.core.config import StaycheckSettings, get_settings
from staycheck.core.documents import first_present, get_path, is_number, now_like, parse_datetime
from staycheck.core.logging import get_logger
from staycheck.core.types import Severity, ValidationContext, ValidationIssue
from staycheck.facts.store import FactEntry, FactStore
from staycheck.facts.verifiers import (
    BaseVerifier,
    FactConflict,
    VerificationOutcome,
    VerifiedFact,
    default_verifiers,
    location_of,
)

logger = get_logger(__name__)

Document = dict[str, Any]


@dataclass
class ExternalVerification:
    """Combined result of all applicable verifiers.

    Attributes:
        conflicts: Discrepancies reported by any verifier
        verified_facts: Values confirmed by any verifier
        sources_used: Verifiers that answered
        confidence: 0.9 minus 0.1 per conflict, floored at 0.3
    """
    conflicts: list[FactConflict] = field(default_factory=list)
    verified_facts: list[VerifiedFact] = field(default_factory=list)
    sources_used: list[str] = field(default_factory=list)
    confidence: float = 0.9

    def to_dict(self) -> dict[str, Any]:
        return {
            "conflicts": [c.to_dict() for c in self.conflicts],
            "verified_facts": [f.to_dict() for f in self.verified_facts],
            "sources_used": list(self.sources_used),
            "confidence": self.confidence,
        }


def _factual(
    severity: Severity,
    field_path: str,
    message: str,
    confidence: float,
    source: str,
    fix: str | None = None,
) -> ValidationIssue:
    return ValidationIssue(
        kind="factual",
        severity=severity,
        field=field_path,
        message=message,
        confidence=confidence,
        source=source,
        suggested_fix=fix,
    )


def _num(response: Document, *paths: str) -> float | None:
    for path in paths:
        value = get_path(response, path)
        if is_number(value):
            return float(value)
    return None


class FactChecker:
    """Validate responses against reference facts.

    Example:
        >>> checker = FactChecker()
        >>> issues, sources = checker.validate_facts({"propertyType": "castle"}, context)
        >>> verification = await checker.verify_with_external_sources(response, context)
    """

    def __init__(
        self,
        store: FactStore | None = None,
        verifiers: list[BaseVerifier] | None = None,
        config: StaycheckSettings | None = None,
    ) -> None:
        """Initialize FactChecker.

        Args:
            store: Fact store, defaults to the bundled (or configured) database
            verifiers: External verifiers, defaults to the built-in set
            config: staycheck settings
        """
        self.config = config or get_settings()
        self.store = store or FactStore.default(self.config.fact_database_path)
        if verifiers is None:
            verifiers = default_verifiers(self.store, self.config)
        self.verifiers = verifiers

    # Curated checks

    def validate_facts(self, response: Document, context: ValidationContext) -> tuple[list[ValidationIssue], list[str]]:
        """Check the response against the curated fact database.

        Each check group runs in isolation; a group that raises is
        logged and contributes nothing.

        Returns:
            Tuple of (issues found, sources consulted)
        """
        issues: list[ValidationIssue] = []
        sources: list[str] = []

        groups: list[tuple[str, Callable[[Document, ValidationContext, list[str]], list[ValidationIssue]]]] = [
            ("database", self._check_database),
            ("location", self._check_location),
            ("pricing", self._check_pricing),
            ("property", self._check_property),
            ("legal", self._check_legal),
            ("temporal", self._check_temporal),
        ]
        for name, group in groups:
            try:
                issues.extend(group(response, context, sources))
            except Exception as e:
                logger.warning(
                    f"Fact check group {name} failed: {e}",
                    extra={"extra_data": {"group": name, "request_id": context.request_id}},
                )

        return issues, list(dict.fromkeys(sources))

    def _entry(self, key: str, sources: list[str]) -> FactEntry | None:
        entry = self.store.get(key)
        if entry is not None:
            sources.append(entry.source)
        return entry

    def _check_database(self, response: Document, context: ValidationContext, sources: list[str]) -> list[ValidationIssue]:
        issues = []

        price = _num(response, "price", "pricing.basePrice")
        limits = self._entry("property_price_limits", sources) if price is not None else None
        if limits is not None:
            low = limits.get("min_nightly_rate")
            high = limits.get("max_nightly_rate")
            if low is not None and price < low:
                issues.append(_factual(
                    "major", "price", f"Price {price:g} below industry minimum of €{low}",
                    limits.confidence, limits.source,
                ))
            if high is not None and price > high:
                issues.append(_factual(
                    "major", "price", f"Price {price:g} exceeds industry maximum of €{high}",
                    limits.confidence, limits.source,
                ))

        property_type = response.get("propertyType")
        types = self._entry("property_types", sources) if isinstance(property_type, str) else None
        if types is not None:
            if property_type not in types.get("valid_types", []):
                issues.append(_factual(
                    "major", "propertyType", f"Invalid property type: {property_type}",
                    types.confidence, types.source, fix="apartment",
                ))

        country_path, country = first_present(response, "country", "address.country")
        location = self._entry("location_data", sources) if isinstance(country, str) else None
        if location is not None:
            if country not in location.get("valid_countries", []):
                issues.append(_factual(
                    "minor", country_path, f"Unusual country: {country}",
                    min(0.6, location.confidence), location.source,
                ))

        return issues

    def _check_location(self, response: Document, context: ValidationContext, sources: list[str]) -> list[ValidationIssue]:
        city, country = location_of(response)
        if not isinstance(country, str):
            return []
        location = self._entry("location_data", sources)
        if location is None:
            return []
        issues = []

        cities = location.get("major_cities", {}).get(country)
        if isinstance(city, str) and cities and city not in cities:
            issues.append(_factual(
                "minor", "city", f"{city} not in major cities list for {country}", 0.4, "location_validator"
            ))

        bounds = location.get("country_bounds", {}).get(country)
        latitude = _num(response, "coordinates.latitude")
        longitude = _num(response, "coordinates.longitude")
        if bounds and latitude is not None and longitude is not None:
            min_lat, max_lat, min_lon, max_lon = bounds
            if not (min_lat <= latitude <= max_lat and min_lon <= longitude <= max_lon):
                issues.append(_factual(
                    "major", "coordinates", f"Coordinates outside {country} boundaries", 0.95, "geographic_validator"
                ))

        return issues

    def _check_pricing(self, response: Document, context: ValidationContext, sources: list[str]) -> list[ValidationIssue]:
        issues = []

        price = _num(response, "price")
        city, _ = location_of(response)
        market = None
        if price is not None and isinstance(city, str):
            market = self._entry("market_rates", sources)
        if market is not None:
            band = market.get("average_rates_by_city", {}).get(city)
            if band and price < band["min"] * 0.5:
                issues.append(_factual(
                    "minor", "price", f"Price significantly below market minimum for {city}", 0.7, "market_data"
                ))
            if band and price > band["max"] * 1.5:
                issues.append(_factual(
                    "minor", "price", f"Price significantly above market maximum for {city}", 0.7, "market_data"
                ))

        seasonal = _num(response, "pricing.seasonalPrice")
        base = _num(response, "pricing.basePrice", "price")
        season_data = None
        if seasonal is not None and base and context.season:
            season_data = self._entry("seasonal_data", sources)
        if season_data is not None:
            expected = season_data.get("price_multipliers", {}).get(f"{context.season}_season")
            multiplier = seasonal / base
            if expected and not expected["min"] <= multiplier <= expected["max"]:
                issues.append(_factual(
                    "minor", "pricing.seasonalPrice",
                    f"Seasonal multiplier {multiplier:.2f} unusual for {context.season}",
                    0.6, "seasonal_data",
                ))

        return issues

    def _check_property(self, response: Document, context: ValidationContext, sources: list[str]) -> list[ValidationIssue]:
        issues = []

        guests = _num(response, "maxGuests")
        bedrooms = _num(response, "bedrooms")
        types = self._entry("property_types", sources) if guests is not None and bedrooms else None
        if types is not None:
            ratio = types.get("bedroom_guest_ratio", 2.5)
            if guests > bedrooms * ratio:
                issues.append(_factual(
                    "minor", "maxGuests", f"Guest capacity seems high for {bedrooms:g} bedrooms",
                    0.6, "capacity_standards",
                ))

        amenities = response.get("amenities")
        standards = self._entry("amenity_standards", sources) if isinstance(amenities, list) else None
        if standards is not None:
            present = {a for a in amenities if isinstance(a, str)}
            for first, second in standards.get("incompatible_combinations", []):
                if first in present and second in present:
                    issues.append(_factual(
                        "major", "amenities", f"Conflicting amenities: {first} and {second}",
                        0.9, standards.source,
                    ))

        return issues

    def _check_legal(self, response: Document, context: ValidationContext, sources: list[str]) -> list[ValidationIssue]:
        _, country = location_of(response)
        if not isinstance(country, str):
            return []
        legal = self.store.get("legal_requirements")
        if legal is None:
            return []
        issues = []

        regulation = legal.get("max_occupancy_regulations", {}).get(country)
        guests = _num(response, "maxGuests")
        bedrooms = _num(response, "bedrooms")
        if regulation and guests is not None and bedrooms:
            sources.append(legal.source)
            limit = bedrooms * regulation["bedrooms_to_guests_ratio"]
            if guests > limit:
                issues.append(_factual(
                    "minor", "maxGuests",
                    f"Guest capacity exceeds the legal occupancy limit of {limit:g} for {country}",
                    0.7, legal.source,
                ))

        band = legal.get("tourist_tax_rates", {}).get(country)
        tax = _num(response, "pricing.touristTax", "touristTax")
        if band and tax is not None:
            sources.append(legal.source)
            if not band["min"] <= tax <= band["max"]:
                issues.append(_factual(
                    "minor", "pricing.touristTax",
                    f"Tourist tax {tax:g} outside the {band['min']}-{band['max']} band for {country}",
                    0.6, legal.source,
                ))

        return issues

    def _check_temporal(self, response: Document, context: ValidationContext, sources: list[str]) -> list[ValidationIssue]:
        check_in = parse_datetime(response.get("checkIn"))
        if check_in is None:
            return []
        issues = []

        constraints = self._entry("booking_constraints", sources)
        if constraints is not None:
            days_ahead = (check_in - now_like(check_in)).total_seconds() / 86400
            horizon = constraints.get("max_advance_booking_days", 730)
            if days_ahead > horizon:
                issues.append(_factual(
                    "minor", "checkIn", f"Booking too far in advance (max {horizon} days)", 0.8, "booking_policies"
                ))

        season = response.get("season")
        season_data = self._entry("seasonal_data", sources) if isinstance(season, str) else None
        if season_data is not None:
            months = season_data.get(f"{season}_season_months")
            if months and check_in.month not in months:
                issues.append(_factual(
                    "minor", "season", f'Season "{season}" doesn\'t match check-in month', 0.5, "seasonal_calendar"
                ))

        return issues

    # External verification

    async def verify_with_external_sources(self, response: Document, context: ValidationContext) -> ExternalVerification:
        """Run every applicable verifier concurrently.

        A verifier that raises or times out is logged and excluded
        from ``sources_used``; the others are unaffected.
        """
        applicable = []
        for verifier in self.verifiers:
            try:
                if verifier.applies(response, context):
                    applicable.append(verifier)
            except Exception as e:
                logger.warning(f"Verifier {verifier.name} applicability check failed: {e}")

        outcomes = await asyncio.gather(
            *(self._run_verifier(v, response, context) for v in applicable)
        )

        result = ExternalVerification()
        for verifier, outcome in zip(applicable, outcomes):
            if outcome is None:
                continue
            result.conflicts.extend(outcome.conflicts)
            result.verified_facts.extend(outcome.verified_facts)
            result.sources_used.append(verifier.name)

        result.confidence = max(0.3, 0.9 - 0.1 * len(result.conflicts))
        return result

    async def _run_verifier(
        self,
        verifier: BaseVerifier,
        response: Document,
        context: ValidationContext,
    ) -> VerificationOutcome | None:
        try:
            return await asyncio.wait_for(verifier.verify(response, context), timeout=verifier.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Verifier {verifier.name} timed out after {verifier.timeout}s",
                extra={"extra_data": {"verifier": verifier.name, "request_id": context.request_id}},
            )
        except Exception as e:
            logger.warning(
                f"Verifier {verifier.name} failed: {e}",
                extra={"extra_data": {"verifier": verifier.name, "request_id": context.request_id}},
            )
        return None

    def source_reliability(self, sources: list[str]) -> float:
        """Mean reliability of the given sources, 0.85 when there are none."""
        if not sources:
            return 0.85
        by_name = {v.name: v.reliability for v in self.verifiers}
        scores = [by_name[s] if s in by_name else self.store.reliability_of(s) for s in sources]
        return sum(scores) / len(scores)

    async def close(self) -> None:
        """Close verifier resources."""
        for verifier in self.verifiers:
            try:
                await verifier.close()
            except Exception as e:
                logger.warning(f"Failed to close verifier {verifier.name}: {e}")
