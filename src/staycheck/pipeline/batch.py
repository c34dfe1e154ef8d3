"""Batch and history records returned by the ValidationService."""

from dataclasses import dataclass, field
from typing import Any

from staycheck.core.exceptions import InvalidRequestError
from staycheck.core.types import ValidationContext, ValidationResult


@dataclass
class BatchRequest:
    """One item of a batch call.

    Attributes:
        response: The document to validate
        context: Request context
        options: Per-item option overrides, merged over the batch's global options
    """
    response: dict[str, Any]
    context: ValidationContext
    options: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BatchRequest":
        """Create a request from ``{"response", "context", "options"}``."""
        if not isinstance(data, dict):
            raise InvalidRequestError("batch item must be an object", field="requests", value=data)
        context = data.get("context")
        if not isinstance(context, ValidationContext):
            context = ValidationContext.from_dict(context or {})
        return cls(response=data.get("response"), context=context, options=data.get("options"))


@dataclass
class BatchItemResult:
    """Outcome slot of one batch item, in submission order."""
    index: int
    success: bool
    result: ValidationResult | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "success": self.success,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
        }


@dataclass
class BatchSummary:
    total: int = 0
    successful: int = 0
    failed: int = 0
    processing_time_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
            "processing_time_ms": self.processing_time_ms,
        }


@dataclass
class BatchReport:
    """Results of a batch call.

    ``results`` has exactly one slot per submitted item, in order, and
    ``summary.successful + summary.failed == summary.total``.
    """
    results: list[BatchItemResult] = field(default_factory=list)
    summary: BatchSummary = field(default_factory=BatchSummary)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary.to_dict(),
        }


@dataclass
class HistoryPage:
    """A page of one session's validation history, oldest first."""
    history: list[ValidationResult]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.history) < self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "history": [r.to_dict() for r in self.history],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
            "has_more": self.has_more,
        }
