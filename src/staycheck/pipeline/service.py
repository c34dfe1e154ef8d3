"""Validation orchestrator.

This module provides the ValidationService, which composes the rules
engine, the fact checker and the confidence calibrator into one
pipeline:

    syntax | semantic | business | factual | consistency   (concurrent)
    -> aggregate -> correct -> calibrate -> finalize

Each stage appends one AuditEntry. The service owns every piece of
mutable state (history, metrics, subscribers, calibration model), so
independent services never share anything.
"""

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from staycheck.calibration.calibrator import ConfidenceCalibrator, Outcome
from staycheck.core.config import StaycheckSettings, get_settings
from staycheck.core.documents import coerce_like, get_path, set_path
from staycheck.core.exceptions import InvalidRequestError
from staycheck.core.logging import get_logger
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
from staycheck.facts.checker import FactChecker
from staycheck.pipeline.batch import BatchItemResult, BatchReport, BatchRequest, BatchSummary, HistoryPage
from staycheck.pipeline.events import EventNotifier, EventSink
from staycheck.validate.rules import ValidationRulesEngine

logger = get_logger(__name__)

Document = dict[str, Any]

LAYER_SOURCES = {
    "syntax": "syntax_validator",
    "semantic": "semantic_validator",
    "business": "business_validator",
    "factual": "fact_checker",
    "consistency": "consistency_checker",
}


@dataclass
class ServiceMetrics:
    """Running counters of one service instance."""
    total_validations: int = 0
    successful_validations: int = 0
    average_processing_time_ms: float = 0.0
    auto_corrections: int = 0
    pipeline_failures: int = 0

    def record(self, result: ValidationResult) -> None:
        self.total_validations += 1
        if result.is_valid:
            self.successful_validations += 1
        self.auto_corrections += len(result.applied_corrections)
        # Incremental mean
        self.average_processing_time_ms += (
            result.metadata.processing_time_ms - self.average_processing_time_ms
        ) / self.total_validations

    @property
    def success_rate(self) -> float:
        if not self.total_validations:
            return 0.0
        return self.successful_validations / self.total_validations

    @property
    def auto_correction_rate(self) -> float:
        if not self.total_validations:
            return 0.0
        return self.auto_corrections / self.total_validations

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_validations": self.total_validations,
            "successful_validations": self.successful_validations,
            "success_rate": self.success_rate,
            "average_processing_time_ms": self.average_processing_time_ms,
            "auto_corrections": self.auto_corrections,
            "auto_correction_rate": self.auto_correction_rate,
            "pipeline_failures": self.pipeline_failures,
        }


class ValidationService:
    """Validate machine-generated property-management responses.

    Example:
        >>> async with ValidationService() as service:
        ...     result = await service.validate(
        ...         {"price": -10},
        ...         ValidationContext(request_id="r1", session_id="s1", response_type="property_info"),
        ...     )
        >>> result.is_valid
        False
    """

    def __init__(
        self,
        config: StaycheckSettings | None = None,
        rules: ValidationRulesEngine | None = None,
        fact_checker: FactChecker | None = None,
        calibrator: ConfidenceCalibrator | None = None,
        notifier: EventNotifier | None = None,
    ) -> None:
        """Initialize ValidationService.

        Args:
            config: Settings (uses global settings if None)
            rules: Rules engine, defaults to the built-in rule set
            fact_checker: Fact checker, defaults to the bundled fact database
            calibrator: Confidence calibrator, defaults to a fresh prior model
            notifier: Subscriber fan-out
        """
        self.config = config or get_settings()
        self.rules = rules or ValidationRulesEngine()
        self.fact_checker = fact_checker or FactChecker(config=self.config)
        self.calibrator = calibrator or ConfidenceCalibrator(self.config)
        self.notifier = notifier or EventNotifier(timeout=self.config.notification_timeout)
        self.metrics = ServiceMetrics()
        self._history: dict[str, deque[ValidationResult]] = {}

    async def __aenter__(self) -> "ValidationService":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Flush pending notifications and close verifier clients."""
        await self.notifier.drain()
        await self.fact_checker.close()

    # Validation

    def default_options(self) -> ValidationOptions:
        return ValidationOptions(confidence_threshold=self.config.default_confidence_threshold)

    async def validate(
        self,
        response: Document,
        context: ValidationContext,
        options: ValidationOptions | None = None,
    ) -> ValidationResult:
        """Validate one response.

        High-confidence corrections may be written into ``response``
        in place. Failures inside the pipeline never propagate; they
        produce an invalid, zero-confidence result instead.

        Args:
            response: The document to validate
            context: Request context
            options: Per-call options (defaults from settings)

        Returns:
            ValidationResult

        Raises:
            InvalidRequestError: If the arguments are malformed
        """
        if not isinstance(context, ValidationContext):
            raise InvalidRequestError("context must be a ValidationContext", field="context", value=context)
        if options is not None and not isinstance(options, ValidationOptions):
            raise InvalidRequestError("options must be ValidationOptions", field="options", value=options)
        if not isinstance(response, dict):
            raise InvalidRequestError("response must be an object", field="response", value=type(response).__name__)
        options = options or self.default_options()

        start = time.perf_counter()
        audit: list[AuditEntry] = []
        try:
            result = await self._run_pipeline(response, context, options, audit, start)
        except Exception as e:
            logger.exception(
                f"Validation pipeline failed for request {context.request_id}",
                extra={"extra_data": {"request_id": context.request_id, "session_id": context.session_id}},
            )
            self.metrics.pipeline_failures += 1
            result = self._failure_result(e, audit, start)
            if options.enable_realtime_updates:
                self.notifier.notify("validation_error", {
                    "request_id": context.request_id,
                    "session_id": context.session_id,
                    "error": str(e),
                })
        else:
            if options.enable_realtime_updates:
                self.notifier.notify("validation_update", {
                    "request_id": context.request_id,
                    "session_id": context.session_id,
                    "result": result.to_dict(),
                })

        self.metrics.record(result)
        self._remember(context.session_id, result)
        return result

    async def _run_pipeline(
        self,
        response: Document,
        context: ValidationContext,
        options: ValidationOptions,
        audit: list[AuditEntry],
        start: float,
    ) -> ValidationResult:
        layers = await self._run_layers(response, context, options, audit)

        aggregation = self._aggregate(response, layers)
        audit.append(AuditEntry(
            layer="aggregate",
            output=aggregation.to_dict(),
            confidence=(
                sum(layer.confidence for layer in layers.values()) / len(layers) if layers else 1.0
            ),
            source="aggregator",
        ))

        corrections = self._correct(response, aggregation.errors, options)
        audit.append(AuditEntry(
            layer="correct",
            output={
                "corrections": [c.to_dict() for c in corrections],
                "applied": sum(1 for c in corrections if c.auto_applied),
            },
            confidence=(
                sum(c.confidence for c in corrections) / len(corrections) if corrections else 1.0
            ),
            source="correction_engine",
        ))

        confidence = await self.calibrator.calibrate(aggregation, context, corrections)
        audit.append(AuditEntry(
            layer="calibrate",
            output={
                "confidence": confidence,
                "auto_correct_threshold": self.calibrator.auto_correct_threshold,
            },
            confidence=confidence,
            source="confidence_calibrator",
        ))

        warnings = list(aggregation.warnings)
        if confidence < options.confidence_threshold:
            warnings.append(ValidationWarning(
                kind="potential_issue",
                field="confidence",
                message=f"Confidence {confidence:.2f} is below the threshold {options.confidence_threshold:.2f}",
                impact="high",
            ))

        is_valid = not any(e.severity == "critical" for e in aggregation.errors)
        audit.append(AuditEntry(
            layer="finalize",
            output={"is_valid": is_valid, "error_count": len(aggregation.errors), "warning_count": len(warnings)},
            confidence=confidence,
            source="validation_service",
        ))

        return ValidationResult(
            is_valid=is_valid,
            confidence=confidence,
            errors=aggregation.errors,
            warnings=warnings,
            corrections=corrections,
            metadata=ValidationMetadata(
                processing_time_ms=(time.perf_counter() - start) * 1000,
                layers=list(layers),
                sources_checked=aggregation.sources,
                rules_applied=aggregation.rules_applied,
                confidence_score=confidence,
            ),
            audit_trail=audit,
            accepted=is_valid and confidence >= options.confidence_threshold,
        )

    def _failure_result(self, error: Exception, audit: list[AuditEntry], start: float) -> ValidationResult:
        return ValidationResult(
            is_valid=False,
            confidence=0.0,
            errors=[ValidationIssue(
                kind="system",
                severity="critical",
                field="system",
                message=f"Validation pipeline failed: {error}",
                confidence=1.0,
                source="validation_service",
            )],
            metadata=ValidationMetadata(
                processing_time_ms=(time.perf_counter() - start) * 1000,
                layers=[entry.layer for entry in audit if entry.layer in LAYER_NAMES],
            ),
            audit_trail=list(audit),
        )

    # Layers

    def _layer_runners(self) -> dict[str, Callable[[Document, ValidationContext], Awaitable[LayerResult]]]:
        return {
            "syntax": self._syntax_layer,
            "semantic": self._semantic_layer,
            "business": self._business_layer,
            "factual": self._factual_layer,
            "consistency": self._consistency_layer,
        }

    async def _run_layers(
        self,
        response: Document,
        context: ValidationContext,
        options: ValidationOptions,
        audit: list[AuditEntry],
    ) -> dict[str, LayerResult]:
        """Run the enabled layers concurrently, auditing them as they finish.

        Returns:
            Layer results in canonical layer order
        """
        runners = self._layer_runners()
        tasks = [
            asyncio.create_task(runners[name](response, context))
            for name in LAYER_NAMES
            if name not in options.skip_layers
        ]

        finished: dict[str, LayerResult] = {}
        try:
            for next_done in asyncio.as_completed(tasks):
                layer = await next_done
                finished[layer.layer] = layer
                audit.append(AuditEntry(
                    layer=layer.layer,
                    output=layer.to_dict(),
                    confidence=layer.confidence,
                    source=LAYER_SOURCES[layer.layer],
                ))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        return {name: finished[name] for name in LAYER_NAMES if name in finished}

    async def _syntax_layer(self, response: Document, context: ValidationContext) -> LayerResult:
        errors = [
            *self.rules.validate_required_fields(response, context),
            *self.rules.validate_data_types(response, context),
            *self.rules.validate_formats(response, context),
        ]
        return LayerResult(
            layer="syntax",
            errors=errors,
            confidence=max(0.1, 0.95 - 0.1 * len(errors)),
            rules_applied=(
                len(self.rules.required_fields.get(context.response_type, ()))
                + len(self.rules.data_type_rules)
                + len(self.rules.format_rules)
            ),
        )

    async def _semantic_layer(self, response: Document, context: ValidationContext) -> LayerResult:
        intent = self.rules.score_intent(response, context)
        return LayerResult(
            layer="semantic",
            errors=self.rules.validate_semantics(response, context),
            warnings=self.rules.intent_warnings(intent),
            confidence=max(0.1, intent),
            details={"intent_score": intent},
        )

    async def _business_layer(self, response: Document, context: ValidationContext) -> LayerResult:
        errors = self.rules.apply_business_rules(response, context)
        return LayerResult(
            layer="business",
            errors=errors,
            confidence=0.3 if any(e.severity == "critical" for e in errors) else 0.9,
            rules_applied=self.rules.rules_applied,
        )

    async def _factual_layer(self, response: Document, context: ValidationContext) -> LayerResult:
        errors, sources = self.fact_checker.validate_facts(response, context)
        verification = await self.fact_checker.verify_with_external_sources(response, context)

        for conflict in verification.conflicts:
            errors.append(ValidationIssue(
                kind="factual",
                severity="major",
                field=conflict.field,
                message=f"Fact conflict detected: {conflict.message}",
                confidence=conflict.confidence,
                source=conflict.source,
            ))
        sources = list(dict.fromkeys([*sources, *verification.sources_used]))

        return LayerResult(
            layer="factual",
            errors=errors,
            confidence=max(0.1, 0.95 - 0.15 * len(errors)),
            sources=sources,
            details={
                "verification": verification.to_dict(),
                "source_reliability": self.fact_checker.source_reliability(sources),
                "external_confidence": verification.confidence,
            },
        )

    async def _consistency_layer(self, response: Document, context: ValidationContext) -> LayerResult:
        errors = self.rules.validate_consistency(response, context)
        return LayerResult(
            layer="consistency",
            errors=errors,
            confidence=max(0.2, 0.9 - 0.1 * len(errors)),
        )

    # Aggregate and correct

    def _aggregate(self, response: Document, layers: dict[str, LayerResult]) -> AggregatedResult:
        aggregation = AggregatedResult(layers=layers, field_count=len(response))
        for layer in layers.values():
            aggregation.errors.extend(layer.errors)
            aggregation.warnings.extend(layer.warnings)

        factual = layers.get("factual")
        if factual is not None:
            aggregation.source_reliability = factual.details["source_reliability"]
            aggregation.external_confidence = factual.details["external_confidence"]
        return aggregation

    def _correct(
        self,
        response: Document,
        errors: list[ValidationIssue],
        options: ValidationOptions,
    ) -> list[ValidationCorrection]:
        """Propose one correction per field and apply the confident ones in place."""
        best: dict[str, ValidationIssue] = {}
        for issue in errors:
            if issue.confidence <= self.config.correction_min_confidence or not issue.suggested_fix:
                continue
            current = best.get(issue.field)
            if current is None or issue.confidence > current.confidence:
                best[issue.field] = issue

        threshold = self.calibrator.auto_correct_threshold
        corrections = []
        for field_path, issue in best.items():
            original = get_path(response, field_path)
            correction = ValidationCorrection(
                field=field_path,
                original_value=original,
                corrected_value=coerce_like(original, issue.suggested_fix),
                confidence=issue.confidence,
                reason=issue.message,
            )
            if options.enable_auto_correction and issue.confidence > threshold:
                try:
                    set_path(response, field_path, correction.corrected_value)
                    correction.auto_applied = True
                except (KeyError, TypeError) as e:
                    logger.warning(
                        f"Could not apply correction to {field_path}: {e}",
                        extra={"extra_data": {"field": field_path}},
                    )
            corrections.append(correction)
        return corrections

    # Batch

    async def validate_batch(
        self,
        requests: Sequence[BatchRequest | dict[str, Any]],
        global_options: ValidationOptions | dict[str, Any] | None = None,
    ) -> BatchReport:
        """Validate up to ``max_batch_size`` requests.

        Requests run in chunks of ``batch_concurrency``; each chunk
        completes before the next starts. A failing item fills its own
        slot and never aborts the batch.

        Raises:
            InvalidRequestError: If the batch is empty or too large
        """
        if not isinstance(requests, (list, tuple)) or not 1 <= len(requests) <= self.config.max_batch_size:
            raise InvalidRequestError(
                f"Batch must contain between 1 and {self.config.max_batch_size} requests",
                field="requests",
                value=len(requests) if isinstance(requests, (list, tuple)) else requests,
            )
        if isinstance(global_options, dict):
            base = self.default_options().merged(global_options)
        elif global_options is None:
            base = self.default_options()
        elif isinstance(global_options, ValidationOptions):
            base = global_options
        else:
            raise InvalidRequestError(
                "global_options must be ValidationOptions or an object", field="global_options", value=global_options
            )

        start = time.perf_counter()
        report = BatchReport()
        size = self.config.batch_concurrency
        for offset in range(0, len(requests), size):
            chunk = requests[offset:offset + size]
            outcomes = await asyncio.gather(
                *(self._run_batch_item(offset + i, item, base) for i, item in enumerate(chunk))
            )
            report.results.extend(outcomes)

        successful = sum(1 for r in report.results if r.success)
        report.summary = BatchSummary(
            total=len(report.results),
            successful=successful,
            failed=len(report.results) - successful,
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )
        logger.info(
            f"Batch validated: {successful}/{len(report.results)} succeeded",
            extra={"extra_data": report.summary.to_dict()},
        )
        return report

    async def _run_batch_item(self, index: int, item: Any, base: ValidationOptions) -> BatchItemResult:
        try:
            request = item if isinstance(item, BatchRequest) else BatchRequest.from_dict(item)
            options = base.merged(request.options)
            result = await self.validate(request.response, request.context, options)
        except Exception as e:
            logger.warning(
                f"Batch item {index} failed: {e}",
                extra={"extra_data": {"index": index}},
            )
            return BatchItemResult(index=index, success=False, error=str(e))
        return BatchItemResult(index=index, success=True, result=result)

    # History, metrics, feedback

    def _remember(self, session_id: str, result: ValidationResult) -> None:
        history = self._history.get(session_id)
        if history is None:
            history = deque(maxlen=self.config.history_limit_per_session)
            self._history[session_id] = history
        history.append(result)

    def get_validation_history(self, session_id: str, limit: int = 50, offset: int = 0) -> HistoryPage:
        """Page through a session's stored results, oldest first.

        Raises:
            InvalidRequestError: If limit or offset is out of range
        """
        if limit < 1:
            raise InvalidRequestError("limit must be at least 1", field="limit", value=limit)
        if offset < 0:
            raise InvalidRequestError("offset must not be negative", field="offset", value=offset)
        entries = list(self._history.get(session_id, ()))
        return HistoryPage(
            history=entries[offset:offset + limit],
            total=len(entries),
            limit=limit,
            offset=offset,
        )

    def get_metrics(self) -> dict[str, Any]:
        """Running counters plus calibration metrics."""
        metrics = self.metrics.to_dict()
        metrics["subscribers"] = self.notifier.subscriber_count
        metrics["calibration"] = self.calibrator.get_calibration_metrics()
        return metrics

    def record_feedback(
        self,
        session_id: str,
        timestamp: datetime | str,
        outcome: Outcome,
        feedback_score: float | None = None,
    ) -> bool:
        """Attach a human outcome to the calibration reading closest to ``timestamp``."""
        return self.calibrator.record_feedback(session_id, timestamp, outcome, feedback_score)

    # Subscriptions

    async def subscribe(self, sink: EventSink) -> None:
        await self.notifier.subscribe(sink)

    def unsubscribe(self, sink: EventSink) -> bool:
        return self.notifier.unsubscribe(sink)
