"""staycheck - Validation for generated property-management responses.

Check. Correct. Calibrate.

staycheck runs every response through five validation layers
(syntax, semantic, business, factual, consistency), proposes and
applies safe corrections, and scores the outcome with a calibration
network that keeps learning from human feedback.

Example:
    >>> from staycheck import ValidationContext, ValidationService
    >>>
    >>> async with ValidationService() as service:
    ...     result = await service.validate(
    ...         {"propertyId": "p-1", "price": -10, "maxGuests": 4},
    ...         ValidationContext(
    ...             request_id="req-1",
    ...             session_id="sess-1",
    ...             response_type="property_info",
    ...         ),
    ...     )
    >>> result.is_valid
    False
    >>> [str(e) for e in result.critical_errors]
    ['[CRITICAL] business price: Property price must be between €0 and €50,000 per night (fix: 50)']
"""

from staycheck._version import __version__
from staycheck.core.config import StaycheckSettings, configure, get_settings
from staycheck.core.exceptions import (
    ConfigurationError,
    InvalidRequestError,
    RuleEngineError,
    StaycheckError,
    VerificationError,
)
from staycheck.core.logging import get_logger, setup_logging
from staycheck.core.types import (
    AuditEntry,
    ValidationContext,
    ValidationCorrection,
    ValidationIssue,
    ValidationMetadata,
    ValidationOptions,
    ValidationResult,
    ValidationWarning,
)

__all__ = [
    # Version
    "__version__",
    # Core types
    "ValidationContext",
    "ValidationOptions",
    "ValidationIssue",
    "ValidationWarning",
    "ValidationCorrection",
    "ValidationMetadata",
    "ValidationResult",
    "AuditEntry",
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
    # Logging
    "get_logger",
    "setup_logging",
    # Pipeline (lazy)
    "ValidationService",
    "BatchRequest",
    "QueueSink",
    "CallbackSink",
    # Components (lazy)
    "ValidationRulesEngine",
    "FactStore",
    "FactChecker",
    "ConfidenceCalibrator",
]


def __getattr__(name: str):
    """Lazy import for the heavier components."""
    if name == "ValidationService":
        from staycheck.pipeline.service import ValidationService
        return ValidationService

    if name == "BatchRequest":
        from staycheck.pipeline.batch import BatchRequest
        return BatchRequest

    if name == "QueueSink":
        from staycheck.pipeline.events import QueueSink
        return QueueSink

    if name == "CallbackSink":
        from staycheck.pipeline.events import CallbackSink
        return CallbackSink

    if name == "ValidationRulesEngine":
        from staycheck.validate.rules import ValidationRulesEngine
        return ValidationRulesEngine

    if name == "FactStore":
        from staycheck.facts.store import FactStore
        return FactStore

    if name == "FactChecker":
        from staycheck.facts.checker import FactChecker
        return FactChecker

    if name == "ConfidenceCalibrator":
        from staycheck.calibration.calibrator import ConfidenceCalibrator
        return ConfidenceCalibrator

    raise AttributeError(f"module 'staycheck' has no attribute {name!r}")
