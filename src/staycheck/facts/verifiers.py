"""Pluggable external fact verifiers.

A verifier cross-checks one field group (location, currency, season)
of a response against a reference it owns and reports conflicts and
verified facts. Verifiers are called concurrently by the FactChecker,
each under its own timeout, so implementations should be cheap to
cancel and raise VerificationError when their source cannot answer.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import httpx

from staycheck.core.config import StaycheckSettings, get_settings
from staycheck.core.documents import first_present, parse_datetime
from staycheck.core.exceptions import VerificationError
from staycheck.core.logging import get_logger
from staycheck.core.types import ValidationContext
from staycheck.facts.store import FactStore

logger = get_logger(__name__)


@dataclass
class FactConflict:
    """Discrepancy between a claimed value and a reference value."""
    field: str
    claimed: Any
    actual: Any
    source: str
    confidence: float
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "claimed": self.claimed,
            "actual": self.actual,
            "source": self.source,
            "confidence": self.confidence,
            "message": self.message,
        }


@dataclass
class VerifiedFact:
    """A claimed value a reference source agreed with."""
    field: str
    value: Any
    source: str
    confidence: float
    last_updated: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "value": self.value,
            "source": self.source,
            "confidence": self.confidence,
            "last_updated": self.last_updated.isoformat(),
        }


@dataclass
class VerificationOutcome:
    """What a single verifier found."""
    conflicts: list[FactConflict] = field(default_factory=list)
    verified_facts: list[VerifiedFact] = field(default_factory=list)


def location_of(response: dict[str, Any]) -> tuple[Any, Any]:
    """City and country, read from the top level or the address block."""
    _, city = first_present(response, "city", "address.city")
    _, country = first_present(response, "country", "address.country")
    return city, country


class BaseVerifier(ABC):
    """Abstract base class for external fact verifiers.

    Example:
        >>> class MyVerifier(BaseVerifier):
        ...     name = "my_source"
        ...     field_group = "location"
        ...     def applies(self, response, context): ...
        ...     async def verify(self, response, context): ...
    """

    name: str = "verifier"
    field_group: str = "general"
    reliability: float = 0.85

    def __init__(self, timeout: float | None = None) -> None:
        """Initialize BaseVerifier.

        Args:
            timeout: Seconds allowed per call, defaults to the configured verifier timeout
        """
        self.timeout = timeout if timeout is not None else get_settings().verifier_timeout

    @abstractmethod
    def applies(self, response: dict[str, Any], context: ValidationContext) -> bool:
        """Whether the response carries the field group this verifier checks."""
        ...

    @abstractmethod
    async def verify(self, response: dict[str, Any], context: ValidationContext) -> VerificationOutcome:
        """Cross-check the response.

        Raises:
            VerificationError: If the source cannot answer
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""
        return None


class ReferenceGeocodingVerifier(BaseVerifier):
    """Checks that a city belongs to the claimed country."""

    name = "reference_geocoder"
    field_group = "location"

    def __init__(self, store: FactStore, timeout: float | None = None) -> None:
        super().__init__(timeout)
        self.store = store
        entry = store.get("location_data")
        self.reliability = entry.confidence if entry else 0.9

    def applies(self, response: dict[str, Any], context: ValidationContext) -> bool:
        city, country = location_of(response)
        return isinstance(city, str) and isinstance(country, str)

    async def verify(self, response: dict[str, Any], context: ValidationContext) -> VerificationOutcome:
        entry = self.store.get("location_data")
        if entry is None:
            raise VerificationError("No location data available", source=self.name, field_group=self.field_group)

        city, country = location_of(response)
        cities: dict[str, list[str]] = entry.get("major_cities", {})
        outcome = VerificationOutcome()

        if city in cities.get(country, []):
            outcome.verified_facts.append(
                VerifiedFact(field="city", value={"city": city, "country": country},
                             source=self.name, confidence=self.reliability)
            )
            return outcome

        for other, names in cities.items():
            if other != country and city in names:
                outcome.conflicts.append(
                    FactConflict(
                        field="city",
                        claimed=f"{city}, {country}",
                        actual=f"{city}, {other}",
                        source=self.name,
                        confidence=0.9,
                        message=f"{city} is located in {other}, not {country}",
                    )
                )
                break
        return outcome


class ReferenceCurrencyVerifier(BaseVerifier):
    """Checks the quoted currency against the supported currency list."""

    name = "currency_reference"
    field_group = "currency"

    def __init__(self, store: FactStore, timeout: float | None = None) -> None:
        super().__init__(timeout)
        self.store = store
        entry = store.get("currencies")
        self.reliability = entry.confidence if entry else 0.9

    def applies(self, response: dict[str, Any], context: ValidationContext) -> bool:
        return isinstance(response.get("currency"), str) and isinstance(response.get("pricing"), dict)

    async def verify(self, response: dict[str, Any], context: ValidationContext) -> VerificationOutcome:
        entry = self.store.get("currencies")
        if entry is None:
            raise VerificationError("No currency data available", source=self.name, field_group=self.field_group)

        currency = response["currency"]
        outcome = VerificationOutcome()
        if currency in entry.get("supported", []):
            outcome.verified_facts.append(
                VerifiedFact(field="currency", value=currency, source=self.name, confidence=self.reliability)
            )
        else:
            outcome.conflicts.append(
                FactConflict(
                    field="currency",
                    claimed=currency,
                    actual="Unsupported currency",
                    source=self.name,
                    confidence=0.95,
                    message="Currency not supported or invalid",
                )
            )
        return outcome


class SeasonCalendarVerifier(BaseVerifier):
    """Checks the requested season against the check-in month."""

    name = "season_calendar"
    field_group = "season"

    def __init__(self, store: FactStore, timeout: float | None = None) -> None:
        super().__init__(timeout)
        self.store = store
        entry = store.get("seasonal_data")
        self.reliability = entry.confidence if entry else 0.85

    def _calendar(self) -> dict[str, list[int]]:
        entry = self.store.get("seasonal_data")
        return entry.get("calendar_seasons", {}) if entry else {}

    def applies(self, response: dict[str, Any], context: ValidationContext) -> bool:
        return (
            context.season in self._calendar()
            and parse_datetime(response.get("checkIn")) is not None
        )

    async def verify(self, response: dict[str, Any], context: ValidationContext) -> VerificationOutcome:
        calendar = self._calendar()
        check_in = parse_datetime(response.get("checkIn"))
        if check_in is None or context.season not in calendar:
            raise VerificationError("Nothing to verify", source=self.name, field_group=self.field_group)

        outcome = VerificationOutcome()
        if check_in.month in calendar[context.season]:
            outcome.verified_facts.append(
                VerifiedFact(field="season", value=context.season, source=self.name, confidence=self.reliability)
            )
        else:
            outcome.conflicts.append(
                FactConflict(
                    field="checkIn",
                    claimed=context.season,
                    actual=check_in.strftime("%B"),
                    source=self.name,
                    confidence=0.7,
                    message=f"Check-in month {check_in.strftime('%B')} is outside {context.season}",
                )
            )
        return outcome


class ExchangeRateVerifier(BaseVerifier):
    """Checks the quoted currency against a live exchange rate API.

    The endpoint must return JSON with a ``rates`` object keyed by
    currency code, e.g. ``{"base": "EUR", "rates": {"USD": 1.08}}``.

    Example:
        >>> verifier = ExchangeRateVerifier("https://api.exchangerate-api.com/v4/latest/EUR")
        >>> outcome = await verifier.verify({"currency": "USD", "pricing": {}}, context)
    """

    name = "exchange_rates"
    field_group = "currency"
    reliability = 0.98

    def __init__(
        self,
        url: str,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        cache_ttl: float = 300.0,
    ) -> None:
        """Initialize ExchangeRateVerifier.

        Args:
            url: Exchange rate endpoint
            timeout: Seconds allowed per call, defaults to the configured verifier timeout
            client: Optional pre-built HTTP client (closed by the caller)
            cache_ttl: Seconds a fetched rate table is reused, 0 disables caching
        """
        super().__init__(timeout)
        self.url = url
        self.cache_ttl = cache_ttl
        self._client = client
        self._owns_client = client is None
        self._rates: tuple[str | None, dict[str, Any]] | None = None
        self._fetched_at = 0.0

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def applies(self, response: dict[str, Any], context: ValidationContext) -> bool:
        return isinstance(response.get("currency"), str) and isinstance(response.get("pricing"), dict)

    async def fetch_rates(self) -> tuple[str | None, dict[str, Any]]:
        """Fetch the current rate table, reusing it for ``cache_ttl`` seconds.

        Raises:
            VerificationError: If the request fails or the payload has no rates
        """
        if self._rates is not None and time.monotonic() - self._fetched_at < self.cache_ttl:
            return self._rates

        client = await self._get_client()
        try:
            response = await client.get(self.url)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise VerificationError(
                f"Exchange rate request failed for {self.url}",
                source=self.name,
                field_group=self.field_group,
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise VerificationError(
                f"Exchange rate request failed for {self.url}: {e}",
                source=self.name,
                field_group=self.field_group,
            ) from e
        except ValueError as e:
            raise VerificationError(
                f"Exchange rate response is not JSON: {e}",
                source=self.name,
                field_group=self.field_group,
            ) from e

        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict):
            raise VerificationError(
                "Exchange rate response has no rates table",
                source=self.name,
                field_group=self.field_group,
            )
        self._rates = (data.get("base"), rates)
        self._fetched_at = time.monotonic()
        return self._rates

    async def verify(self, response: dict[str, Any], context: ValidationContext) -> VerificationOutcome:
        base, rates = await self.fetch_rates()
        currency = response["currency"]
        outcome = VerificationOutcome()

        if currency == base or currency in rates:
            outcome.verified_facts.append(
                VerifiedFact(
                    field="currency",
                    value={"currency": currency, "rate": 1.0 if currency == base else rates[currency]},
                    source=self.name,
                    confidence=self.reliability,
                )
            )
        else:
            outcome.conflicts.append(
                FactConflict(
                    field="currency",
                    claimed=currency,
                    actual=f"No exchange rate for {currency}",
                    source=self.name,
                    confidence=0.95,
                    message="Currency not supported or invalid",
                )
            )
        return outcome


def default_verifiers(store: FactStore, config: StaycheckSettings | None = None) -> list[BaseVerifier]:
    """The built-in verifier set; the HTTP currency check replaces the reference one when configured."""
    config = config or get_settings()
    timeout = config.verifier_timeout
    currency: BaseVerifier
    if config.exchange_rate_api_url:
        currency = ExchangeRateVerifier(
            config.exchange_rate_api_url, timeout=timeout, cache_ttl=config.exchange_rate_cache_ttl
        )
    else:
        currency = ReferenceCurrencyVerifier(store, timeout)
    return [ReferenceGeocodingVerifier(store, timeout), currency, SeasonCalendarVerifier(store, timeout)]
