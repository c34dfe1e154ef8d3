"""Core data types for staycheck.

This module defines the records passed between the validation layers:
- ValidationContext: Identifies one validation request
- ValidationOptions: Per-call switches and thresholds
- ValidationIssue: Single finding produced by a layer
- ValidationWarning: Advisory finding that never affects validity
- ValidationCorrection: Proposed (or applied) replacement value
- AuditEntry: One stage of the audit trail
- LayerResult: Raw output of one validation layer
- ValidationResult: Final outcome returned to the caller
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Literal
from uuid import uuid4

from staycheck.core.documents import parse_datetime
from staycheck.core.exceptions import InvalidRequestError

LayerName = Literal["syntax", "semantic", "business", "factual", "consistency"]
IssueKind = Literal["syntax", "semantic", "business", "factual", "consistency", "system"]
Severity = Literal["critical", "major", "minor"]
WarningKind = Literal["potential_issue", "best_practice", "performance"]
Impact = Literal["low", "medium", "high"]
Domain = Literal["property_management", "general"]

LAYER_NAMES: tuple[str, ...] = ("syntax", "semantic", "business", "factual", "consistency")
DOMAINS: tuple[str, ...] = ("property_management", "general")
SEVERITY_ORDER = {"critical": 0, "major": 1, "minor": 2}


def _jsonable(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


@dataclass(frozen=True)
class ValidationContext:
    """Identifies one validation request.

    Attributes:
        request_id: Caller-supplied request identifier
        session_id: Session the request belongs to (history and learning key)
        response_type: Declared response shape, e.g. "booking_response"
        domain: "property_management" or "general"
        user_role: Optional role of the requesting user ("admin", "guest", ...)
        property_type: Optional property type hint ("villa", "studio", ...)
        season: Optional season hint ("summer", "winter", ...)
        timestamp: When the request was created
    """
    request_id: str
    session_id: str
    response_type: str
    domain: Domain = "property_management"
    user_role: str | None = None
    property_type: str | None = None
    season: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        """Reject malformed contexts before any layer sees them."""
        for name in ("request_id", "session_id", "response_type"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise InvalidRequestError(f"{name} must be a non-empty string", field=name, value=value)
        if self.domain not in DOMAINS:
            raise InvalidRequestError(
                f"domain must be one of {', '.join(DOMAINS)}", field="domain", value=self.domain
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary."""
        return {
            "request_id": self.request_id,
            "session_id": self.session_id,
            "response_type": self.response_type,
            "domain": self.domain,
            "user_role": self.user_role,
            "property_type": self.property_type,
            "season": self.season,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ValidationContext":
        """Create a context from a dictionary with camelCase or snake_case keys."""
        if not isinstance(data, dict):
            raise InvalidRequestError("context must be an object", field="context", value=data)

        def pick(snake: str, camel: str, default: Any = None) -> Any:
            if snake in data:
                return data[snake]
            return data.get(camel, default)

        timestamp = pick("timestamp", "timestamp")
        if isinstance(timestamp, str):
            parsed = parse_datetime(timestamp)
            if parsed is None:
                raise InvalidRequestError("timestamp is not ISO 8601", field="timestamp", value=timestamp)
            timestamp = parsed
        elif timestamp is None:
            timestamp = datetime.now()

        return cls(
            request_id=pick("request_id", "requestId") or str(uuid4()),
            session_id=pick("session_id", "sessionId", ""),
            response_type=pick("response_type", "responseType", ""),
            domain=pick("domain", "domain", "property_management"),
            user_role=pick("user_role", "userRole"),
            property_type=pick("property_type", "propertyType"),
            season=pick("season", "season"),
            timestamp=timestamp,
        )


@dataclass(frozen=True)
class ValidationOptions:
    """Per-call configuration.

    Attributes:
        enable_auto_correction: Apply high-confidence corrections in place
        confidence_threshold: Minimum confidence for a result to be accepted
        skip_layers: Layer names that are neither run nor audited
        enable_realtime_updates: Publish the result to subscribers
    """
    enable_auto_correction: bool = True
    confidence_threshold: float = 0.7
    skip_layers: frozenset[str] = frozenset()
    enable_realtime_updates: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.skip_layers, frozenset):
            object.__setattr__(self, "skip_layers", frozenset(self.skip_layers))
        unknown = self.skip_layers - set(LAYER_NAMES)
        if unknown:
            raise InvalidRequestError(
                f"Unknown layer(s) in skip_layers: {', '.join(sorted(unknown))}",
                field="skip_layers",
                value=sorted(unknown),
            )
        threshold = self.confidence_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, (int, float)) or not 0.0 <= threshold <= 1.0:
            raise InvalidRequestError(
                "confidence_threshold must be within [0, 1]",
                field="confidence_threshold",
                value=threshold,
            )

    _KEYS = {
        "enableAutoCorrection": "enable_auto_correction",
        "confidenceThreshold": "confidence_threshold",
        "skipLayers": "skip_layers",
        "enableRealTimeUpdates": "enable_realtime_updates",
        "enableRealtimeUpdates": "enable_realtime_updates",
    }

    @classmethod
    def _normalize(cls, data: dict[str, Any]) -> dict[str, Any]:
        if not isinstance(data, dict):
            raise InvalidRequestError("options must be an object", field="options", value=data)
        known = {"enable_auto_correction", "confidence_threshold", "skip_layers", "enable_realtime_updates"}
        normalized = {}
        for key, value in data.items():
            name = cls._KEYS.get(key, key)
            if name in known:
                normalized[name] = value
        return normalized

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ValidationOptions":
        """Create options from a dictionary with camelCase or snake_case keys."""
        return cls(**cls._normalize(data))

    def merged(self, overrides: dict[str, Any] | None) -> "ValidationOptions":
        """Return a copy with the given per-item overrides applied."""
        if not overrides:
            return self
        return replace(self, **self._normalize(overrides))

    def to_dict(self) -> dict[str, Any]:
        return {
            "enable_auto_correction": self.enable_auto_correction,
            "confidence_threshold": self.confidence_threshold,
            "skip_layers": sorted(self.skip_layers),
            "enable_realtime_updates": self.enable_realtime_updates,
        }


@dataclass
class ValidationIssue:
    """Single finding produced by a validation layer.

    A critical issue always makes the result invalid, whatever the
    calibrated confidence.

    Attributes:
        kind: Layer that produced the issue, or "system" for pipeline failures
        severity: critical, major or minor
        field: Dotted path of the offending field (e.g. "pricing.total")
        message: Human-readable description
        confidence: How sure the producing rule is, in [0, 1]
        source: Rule id or source name that produced the issue
        suggested_fix: Replacement value rendered as a string, if any
    """
    kind: IssueKind
    severity: Severity
    field: str
    message: str
    confidence: float
    source: str = ""
    suggested_fix: str | None = None

    def __str__(self) -> str:
        fix = f" (fix: {self.suggested_fix})" if self.suggested_fix is not None else ""
        return f"[{self.severity.upper()}] {self.kind} {self.field}: {self.message}{fix}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "severity": self.severity,
            "field": self.field,
            "message": self.message,
            "confidence": self.confidence,
            "source": self.source,
            "suggested_fix": self.suggested_fix,
        }


@dataclass
class ValidationWarning:
    """Advisory finding. Shades confidence, never validity."""
    kind: WarningKind
    field: str
    message: str
    impact: Impact = "low"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "field": self.field, "message": self.message, "impact": self.impact}


@dataclass
class ValidationCorrection:
    """Replacement value proposed for a flagged field.

    Attributes:
        field: Dotted path of the corrected field
        original_value: Value found in the response
        corrected_value: Proposed replacement
        confidence: Confidence of the issue the correction came from
        reason: Message of that issue
        auto_applied: Whether the response was updated in place
    """
    field: str
    original_value: Any
    corrected_value: Any
    confidence: float
    reason: str
    auto_applied: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "field": self.field,
            "original_value": _jsonable(self.original_value),
            "corrected_value": _jsonable(self.corrected_value),
            "confidence": self.confidence,
            "reason": self.reason,
            "auto_applied": self.auto_applied,
        }


@dataclass(frozen=True)
class AuditEntry:
    """One stage of a validation call's audit trail."""
    layer: str
    output: Any
    confidence: float
    source: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "layer": self.layer,
            "output": _jsonable(self.output),
            "confidence": self.confidence,
            "source": self.source,
        }


@dataclass
class LayerResult:
    """Raw output of one validation layer.

    Attributes:
        layer: Layer name
        errors: Issues found by the layer
        warnings: Warnings raised by the layer
        confidence: Layer-local confidence
        sources: Reference sources consulted
        rules_applied: Number of rules that ran to completion
        details: Extra layer-specific output kept in the audit trail
    """
    layer: str
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)
    confidence: float = 1.0
    sources: list[str] = field(default_factory=list)
    rules_applied: int = 0
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "layer": self.layer,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "confidence": self.confidence,
            "sources": list(self.sources),
            "rules_applied": self.rules_applied,
            "details": _jsonable(self.details),
        }


@dataclass
class AggregatedResult:
    """All layers' findings merged before correction and calibration.

    Attributes:
        errors: Issues of every executed layer, in layer order
        warnings: Warnings of every executed layer, in layer order
        layers: Executed layers by name
        field_count: Number of top-level fields in the response
        source_reliability: Mean reliability of the fact sources consulted
        external_confidence: Confidence of the external cross-checks
    """
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)
    layers: dict[str, LayerResult] = field(default_factory=dict)
    field_count: int = 0
    source_reliability: float = 0.85
    external_confidence: float = 0.85

    @property
    def sources(self) -> list[str]:
        seen: dict[str, None] = {}
        for layer in self.layers.values():
            for source in layer.sources:
                seen.setdefault(source, None)
        return list(seen)

    @property
    def rules_applied(self) -> int:
        return sum(layer.rules_applied for layer in self.layers.values())

    def errors_of(self, kind: str) -> list[ValidationIssue]:
        return [e for e in self.errors if e.kind == kind]

    def to_dict(self) -> dict[str, Any]:
        return {
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "critical_count": sum(1 for e in self.errors if e.severity == "critical"),
        }


@dataclass
class ValidationMetadata:
    processing_time_ms: float = 0.0
    layers: list[str] = field(default_factory=list)
    sources_checked: list[str] = field(default_factory=list)
    rules_applied: int = 0
    confidence_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "processing_time_ms": self.processing_time_ms,
            "layers": list(self.layers),
            "sources_checked": list(self.sources_checked),
            "rules_applied": self.rules_applied,
            "confidence_score": self.confidence_score,
        }


@dataclass
class ValidationResult:
    """Final outcome of one validation call.

    Attributes:
        is_valid: False whenever any critical issue was found
        confidence: Calibrated confidence in [0, 1]
        errors: All issues, in layer order
        warnings: All warnings, in layer order
        corrections: Proposed and applied corrections
        metadata: Timing, layers, sources and rule counts
        audit_trail: One entry per executed stage
        accepted: Valid and at or above the caller's confidence threshold
    """
    is_valid: bool
    confidence: float
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)
    corrections: list[ValidationCorrection] = field(default_factory=list)
    metadata: ValidationMetadata = field(default_factory=ValidationMetadata)
    audit_trail: list[AuditEntry] = field(default_factory=list)
    accepted: bool = False

    @property
    def critical_errors(self) -> list[ValidationIssue]:
        """Issues with critical severity."""
        return [e for e in self.errors if e.severity == "critical"]

    @property
    def applied_corrections(self) -> list[ValidationCorrection]:
        return [c for c in self.corrections if c.auto_applied]

    def errors_for(self, field_path: str) -> list[ValidationIssue]:
        """Issues reported against a single field."""
        return [e for e in self.errors if e.field == field_path]

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary for serialization."""
        return {
            "is_valid": self.is_valid,
            "confidence": self.confidence,
            "accepted": self.accepted,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "corrections": [c.to_dict() for c in self.corrections],
            "metadata": self.metadata.to_dict(),
            "audit_trail": [a.to_dict() for a in self.audit_trail],
        }
