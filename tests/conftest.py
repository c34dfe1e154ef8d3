"""Pytest configuration and fixtures for staycheck tests."""

import asyncio
from datetime import date, timedelta

import pytest

from staycheck.core.config import StaycheckSettings
from staycheck.core.types import ValidationContext
from staycheck.facts.checker import FactChecker
from staycheck.facts.store import FactStore
from staycheck.facts.verifiers import BaseVerifier, FactConflict, VerificationOutcome, VerifiedFact
from staycheck.pipeline.service import ValidationService


class StubVerifier(BaseVerifier):
    """Deterministic verifier returning a fixed outcome."""

    def __init__(
        self,
        name: str = "stub",
        field_group: str = "location",
        outcome: VerificationOutcome | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
        timeout: float = 1.0,
        reliability: float = 0.9,
    ) -> None:
        super().__init__(timeout)
        self.name = name
        self.field_group = field_group
        self.reliability = reliability
        self.outcome = outcome or VerificationOutcome()
        self.error = error
        self.delay = delay
        self.calls = 0
        self.closed = False

    def applies(self, response, context) -> bool:
        return True

    async def verify(self, response, context) -> VerificationOutcome:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.outcome

    async def close(self) -> None:
        self.closed = True


def future_day(days: int) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


@pytest.fixture
def settings() -> StaycheckSettings:
    """Offline settings: no HTTP verifier, quiet logs."""
    return StaycheckSettings(log_level="WARNING", exchange_rate_api_url=None, fact_database_path=None)


@pytest.fixture
def fact_store() -> FactStore:
    return FactStore.default()


@pytest.fixture
def context() -> ValidationContext:
    """A property_info request in the property domain."""
    return ValidationContext(
        request_id="req-1",
        session_id="sess-1",
        response_type="property_info",
    )


@pytest.fixture
def booking_context() -> ValidationContext:
    return ValidationContext(
        request_id="req-2",
        session_id="sess-1",
        response_type="booking_response",
    )


@pytest.fixture
def clean_property() -> dict:
    """A property listing that passes every layer."""
    return {
        "id": "prop-1",
        "name": "Alfama Loft",
        "address": {
            "street": "Rua dos Remédios 12",
            "city": "Lisbon",
            "postalCode": "1100-441",
            "country": "Portugal",
        },
        "price": 120,
        "propertyType": "apartment",
        "maxGuests": 4,
        "bedrooms": 2,
        "amenities": ["wifi", "kitchen", "heating"],
        "cancellationPolicy": "moderate",
    }


@pytest.fixture
def clean_booking() -> dict:
    """A booking that passes every layer."""
    return {
        "bookingId": "bk-1",
        "dates": {"checkIn": future_day(10), "checkOut": future_day(15)},
        "checkIn": future_day(10),
        "checkOut": future_day(15),
        "nights": 5,
        "guestCount": 2,
        "maxGuests": 4,
        "totalPrice": 635,
        "pricing": {
            "basePrice": 500,
            "cleaningFee": 60,
            "serviceFee": 50,
            "taxes": 25,
            "total": 635,
        },
        "currency": "EUR",
    }


@pytest.fixture
def offline_checker(settings, fact_store) -> FactChecker:
    """Fact checker with the reference verifiers only."""
    return FactChecker(store=fact_store, config=settings)


@pytest.fixture
async def service(settings, offline_checker):
    """A service with its own state, closed after the test."""
    service = ValidationService(config=settings, fact_checker=offline_checker)
    yield service
    await service.close()


@pytest.fixture
def stub_conflict() -> VerificationOutcome:
    return VerificationOutcome(
        conflicts=[
            FactConflict(
                field="city",
                claimed="Porto, Spain",
                actual="Porto, Portugal",
                source="stub",
                confidence=0.9,
                message="Porto is located in Portugal, not Spain",
            )
        ]
    )


@pytest.fixture
def stub_verified() -> VerificationOutcome:
    return VerificationOutcome(
        verified_facts=[VerifiedFact(field="city", value="Lisbon", source="stub", confidence=0.95)]
    )


@pytest.fixture
def make_verifier():
    """Factory for StubVerifier instances."""
    return StubVerifier
