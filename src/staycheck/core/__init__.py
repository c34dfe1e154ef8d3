"""Core module for staycheck - types, configuration, and utilities."""

from staycheck.core.types import (
    LAYER_NAMES,
    AggregatedResult,
    AuditEntry,
    LayerResult,
    ValidationContext,
    ValidationCorrection,
    ValidationIssue,
    ValidationMetadata,
    ValidationOptions,
    ValidationResult,
    ValidationWarning,
)
from staycheck.core.config import StaycheckSettings, configure, get_settings
from staycheck.core.exceptions import (
    StaycheckError,
    InvalidRequestError,
    ConfigurationError,
    RuleEngineError,
    VerificationError,
)

__all__ = [
    # Types
    "LAYER_NAMES",
    "AggregatedResult",
    "AuditEntry",
    "LayerResult",
    "ValidationContext",
    "ValidationCorrection",
    "ValidationIssue",
    "ValidationMetadata",
    "ValidationOptions",
    "ValidationResult",
    "ValidationWarning",
    # Config
    "StaycheckSettings",
    "configure",
    "get_settings",
    # Exceptions
    "StaycheckError",
    "InvalidRequestError",
    "ConfigurationError",
    "RuleEngineError",
    "VerificationError",
]
