"""Fact store and fact checking for staycheck.

This module provides the factual validation layer:
- FactStore: curated reference data loaded from YAML
- FactChecker: curated checks plus concurrent external verification
- Verifiers: pluggable cross-checks for location, currency and season
"""

from staycheck.facts.checker import ExternalVerification, FactChecker
from staycheck.facts.store import FactEntry, FactStore
from staycheck.facts.verifiers import (
    BaseVerifier,
    ExchangeRateVerifier,
    FactConflict,
    ReferenceCurrencyVerifier,
    ReferenceGeocodingVerifier,
    SeasonCalendarVerifier,
    VerificationOutcome,
    VerifiedFact,
    default_verifiers,
)

__all__ = [
    # Store
    "FactEntry",
    "FactStore",
    # Checker
    "FactChecker",
    "ExternalVerification",
    # Verifiers
    "BaseVerifier",
    "ExchangeRateVerifier",
    "ReferenceCurrencyVerifier",
    "ReferenceGeocodingVerifier",
    "SeasonCalendarVerifier",
    "FactConflict",
    "VerifiedFact",
    "VerificationOutcome",
    "default_verifiers",
]
