"""Confidence calibration with feedback-driven retraining.

The ConfidenceCalibrator turns an aggregated validation outcome into a
single score in [0, 1]:

1. Eight factors are extracted (one per layer, plus session history,
   external verification and correction confidence).
2. The calibration network maps the factors to a base score.
3. Contextual multipliers adjust the base score (domain, role,
   complexity, session accuracy, source reliability).

Every score is kept as a ConfidenceReading. Feedback labels the
matching reading and becomes a training sample; once enough fresh
samples accumulate, the next calibration retrains a copy of the
network in a worker thread and swaps it in.
"""

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

import numpy as np

from staycheck.calibration.network import NeuralCalibrationModel, TrainingMetrics
from staycheck.core.config import StaycheckSettings, get_settings
from staycheck.core.documents import parse_datetime
from staycheck.core.exceptions import InvalidRequestError
from staycheck.core.logging import get_logger
from staycheck.core.types import AggregatedResult, ValidationContext, ValidationCorrection, ValidationIssue

logger = get_logger(__name__)

Outcome = Literal["correct", "incorrect", "partially_correct"]

OUTCOME_SCORES: dict[str, float] = {
    "correct": 1.0,
    "partially_correct": 0.7,
    "incorrect": 0.2,
}

SEVERITY_WEIGHTS: dict[str, float] = {
    "critical": 1.0,
    "major": 0.7,
    "minor": 0.3,
}

# Accuracy assumed for a session without labelled readings
DEFAULT_ACCURACY = 0.8
RECENT_WINDOW = 50


@dataclass
class ConfidenceFactors:
    """Inputs of the calibration network, each in [0, 1]."""
    syntax: float = 1.0
    semantic: float = 1.0
    business_rule: float = 1.0
    factual: float = 1.0
    consistency: float = 1.0
    historical_pattern: float = DEFAULT_ACCURACY
    external_source: float = 0.85
    correction: float = 1.0

    def as_array(self) -> np.ndarray:
        return np.array([
            self.syntax,
            self.semantic,
            self.business_rule,
            self.factual,
            self.consistency,
            self.historical_pattern,
            self.external_source,
            self.correction,
        ])

    def to_dict(self) -> dict[str, float]:
        return {
            "syntax": self.syntax,
            "semantic": self.semantic,
            "business_rule": self.business_rule,
            "factual": self.factual,
            "consistency": self.consistency,
            "historical_pattern": self.historical_pattern,
            "external_source": self.external_source,
            "correction": self.correction,
        }


@dataclass
class ConfidenceReading:
    """One calibrated score, optionally labelled by later feedback."""
    session_id: str
    request_id: str
    predicted_confidence: float
    factors: ConfidenceFactors
    timestamp: datetime = field(default_factory=datetime.now)
    actual_outcome: str | None = None
    feedback_score: float | None = None

    @property
    def labelled(self) -> bool:
        return self.actual_outcome is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "request_id": self.request_id,
            "predicted_confidence": self.predicted_confidence,
            "factors": self.factors.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "actual_outcome": self.actual_outcome,
            "feedback_score": self.feedback_score,
        }


@dataclass
class TrainingSample:
    inputs: np.ndarray
    target: float
    session_id: str
    timestamp: datetime = field(default_factory=datetime.now)


def _local_naive(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone().replace(tzinfo=None)


class ConfidenceCalibrator:
    """Scores aggregated validation outcomes and learns from feedback.

    Example:
        >>> calibrator = ConfidenceCalibrator()
        >>> score = await calibrator.calibrate(aggregation, context, corrections)
        >>> calibrator.record_feedback(context.session_id, datetime.now(), "correct")
    """

    def __init__(
        self,
        config: StaycheckSettings | None = None,
        model: NeuralCalibrationModel | None = None,
    ) -> None:
        """Initialize ConfidenceCalibrator.

        Args:
            config: Settings (uses global settings if None)
            model: Starting network (defaults to the seeded prior)
        """
        self.config = config or get_settings()
        self.model = model or NeuralCalibrationModel.prior(seed=self.config.model_seed)
        self._threshold = self.config.auto_correct_threshold
        self._readings: dict[str, deque[ConfidenceReading]] = {}
        self._training_data: list[TrainingSample] = []
        self._retrain_lock = asyncio.Lock()
        self._retrain_count = 0

    @property
    def auto_correct_threshold(self) -> float:
        """Issue confidence a correction must exceed to be applied in place."""
        return self._threshold

    @property
    def training_data(self) -> list[TrainingSample]:
        return list(self._training_data)

    @property
    def retrain_count(self) -> int:
        return self._retrain_count

    def readings(self, session_id: str) -> list[ConfidenceReading]:
        return list(self._readings.get(session_id, ()))

    @staticmethod
    def layer_factor(issues: list[ValidationIssue]) -> float:
        """Severity-weighted confidence of one layer's issues."""
        if not issues:
            return 1.0
        total_weight = 0.0
        penalty = 0.0
        for issue in issues:
            weight = SEVERITY_WEIGHTS.get(issue.severity, 0.3)
            total_weight += weight
            penalty += weight * (1.0 - issue.confidence)
        return max(0.0, 1.0 - penalty / max(total_weight, 1.0))

    def historical_accuracy(self, session_id: str, window: int | None = None) -> float:
        """Share of labelled readings whose outcome was "correct"."""
        readings = self.readings(session_id)
        if window is not None:
            readings = readings[-window:]
        labelled = [r for r in readings if r.labelled]
        if not labelled:
            return DEFAULT_ACCURACY
        return sum(1 for r in labelled if r.actual_outcome == "correct") / len(labelled)

    def extract_factors(
        self,
        aggregation: AggregatedResult,
        context: ValidationContext,
        corrections: list[ValidationCorrection],
    ) -> ConfidenceFactors:
        if corrections:
            correction = sum(c.confidence for c in corrections) / len(corrections)
        else:
            correction = 1.0
        return ConfidenceFactors(
            syntax=self.layer_factor(aggregation.errors_of("syntax")),
            semantic=self.layer_factor(aggregation.errors_of("semantic")),
            business_rule=self.layer_factor(aggregation.errors_of("business")),
            factual=self.layer_factor(aggregation.errors_of("factual")),
            consistency=self.layer_factor(aggregation.errors_of("consistency")),
            historical_pattern=self.historical_accuracy(context.session_id),
            external_source=aggregation.external_confidence,
            correction=correction,
        )

    def apply_context(
        self,
        score: float,
        factors: ConfidenceFactors,
        aggregation: AggregatedResult,
        context: ValidationContext,
    ) -> float:
        """Apply domain, role, complexity, history and source multipliers."""
        if context.domain == "property_management" and factors.business_rule < 0.9:
            score *= 0.85

        role = context.user_role or "guest"
        if role == "admin":
            score = min(1.0, score * 1.05)
        elif role == "guest":
            score *= 0.95

        fields = min(aggregation.field_count, self.config.complexity_field_cap)
        complexity = min(
            1.0,
            (len(aggregation.errors) + len(aggregation.warnings) + fields) / self.config.complexity_normalizer,
        )
        if complexity > 0.8:
            score *= 0.9

        if factors.historical_pattern > 0.9:
            score = min(1.0, score * 1.1)
        elif factors.historical_pattern < 0.7:
            score *= 0.85

        score *= 0.8 + 0.2 * aggregation.source_reliability
        return score

    def _adapt_threshold(self, session_id: str) -> None:
        recent = self.historical_accuracy(session_id, window=RECENT_WINDOW)
        threshold = self._threshold
        if recent > 0.95:
            threshold *= self.config.threshold_relax_factor
        elif recent < 0.8:
            threshold *= self.config.threshold_tighten_factor
        threshold = min(self.config.auto_correct_threshold_max, max(self.config.auto_correct_threshold_min, threshold))
        if threshold != self._threshold:
            logger.debug(
                "Auto-correct threshold adjusted",
                extra={"extra_data": {"session_id": session_id, "from": self._threshold, "to": threshold}},
            )
        self._threshold = threshold

    async def calibrate(
        self,
        aggregation: AggregatedResult,
        context: ValidationContext,
        corrections: list[ValidationCorrection],
    ) -> float:
        """Produce the final confidence for one validation call.

        Args:
            aggregation: Merged findings of every executed layer
            context: The request context
            corrections: Corrections proposed for this call

        Returns:
            Calibrated confidence in [0, 1]
        """
        factors = self.extract_factors(aggregation, context, corrections)
        base = self.model.predict(factors.as_array())
        score = self.apply_context(base, factors, aggregation, context)
        self._adapt_threshold(context.session_id)
        score = min(1.0, max(0.0, score))

        readings = self._readings.get(context.session_id)
        if readings is None:
            readings = deque(maxlen=self.config.readings_per_session)
            self._readings[context.session_id] = readings
        readings.append(
            ConfidenceReading(
                session_id=context.session_id,
                request_id=context.request_id,
                predicted_confidence=score,
                factors=factors,
            )
        )

        await self._maybe_retrain()
        return score

    def record_feedback(
        self,
        session_id: str,
        timestamp: datetime | str,
        outcome: Outcome,
        feedback_score: float | None = None,
    ) -> bool:
        """Label the reading closest to ``timestamp`` and keep it for training.

        Unlabelled readings within the match window are preferred; an
        already-labelled reading in the window is relabelled otherwise.

        Returns:
            True if a reading was matched
        """
        if outcome not in OUTCOME_SCORES:
            raise InvalidRequestError(
                f"outcome must be one of {', '.join(OUTCOME_SCORES)}", field="outcome", value=outcome
            )
        if feedback_score is not None and not 0.0 <= feedback_score <= 100.0:
            raise InvalidRequestError(
                "feedback_score must be within [0, 100]", field="feedback_score", value=feedback_score
            )
        if isinstance(timestamp, str):
            parsed = parse_datetime(timestamp)
            if parsed is None:
                raise InvalidRequestError("timestamp is not ISO 8601", field="timestamp", value=timestamp)
            timestamp = parsed
        moment = _local_naive(timestamp)

        window = self.config.feedback_match_window
        candidates = [
            r for r in self._readings.get(session_id, ())
            if abs((r.timestamp - moment).total_seconds()) <= window
        ]
        if not candidates:
            logger.debug(
                "No reading matched feedback",
                extra={"extra_data": {"session_id": session_id, "timestamp": moment.isoformat()}},
            )
            return False

        unlabelled = [r for r in candidates if not r.labelled]
        pool = unlabelled or candidates
        reading = min(pool, key=lambda r: abs((r.timestamp - moment).total_seconds()))
        reading.actual_outcome = outcome
        reading.feedback_score = feedback_score

        target = OUTCOME_SCORES[outcome] if feedback_score is None else feedback_score / 100.0
        self._training_data.append(
            TrainingSample(inputs=reading.factors.as_array(), target=target, session_id=session_id)
        )
        if len(self._training_data) > self.config.training_data_cap:
            del self._training_data[: self.config.training_data_drop]
        return True

    def fresh_sample_count(self) -> int:
        """Training samples recorded after the last training snapshot."""
        last_trained = self.model.metrics.last_trained
        return sum(1 for s in self._training_data if s.timestamp > last_trained)

    async def _maybe_retrain(self) -> None:
        if self._retrain_lock.locked():
            return
        if self.fresh_sample_count() < self.config.retrain_min_samples:
            return
        await self.retrain()

    async def retrain(self) -> TrainingMetrics | None:
        """Fit a copy of the network on all training samples and swap it in.

        Returns:
            The new training metrics, or None if there is nothing to train on
            or a retraining pass is already running
        """
        if self._retrain_lock.locked() or not self._training_data:
            return None

        async with self._retrain_lock:
            snapshot_at = datetime.now()
            samples = list(self._training_data)
            inputs = np.stack([s.inputs for s in samples])
            targets = np.array([s.target for s in samples])
            candidate = self.model.copy()

            logger.info(
                "Retraining calibration model",
                extra={"extra_data": {"samples": len(samples)}},
            )
            metrics = await asyncio.to_thread(
                candidate.fit,
                inputs,
                targets,
                self.config.training_max_epochs,
                self.config.training_batch_size,
                self.config.learning_rate,
                self.config.early_stop_loss,
                self.config.model_seed + self._retrain_count,
            )
            metrics.last_trained = snapshot_at
            self.model = candidate
            self._retrain_count += 1
            logger.info(
                "Calibration model retrained",
                extra={"extra_data": metrics.to_dict()},
            )
            return metrics

    def get_calibration_metrics(self) -> dict[str, Any]:
        """Summary of readings, feedback and the current model."""
        readings = [r for session in self._readings.values() for r in session]
        labelled = [r for r in readings if r.labelled]
        if labelled:
            accuracy = sum(1 for r in labelled if r.actual_outcome == "correct") / len(labelled)
            calibration_error = sum(
                abs(
                    r.predicted_confidence
                    - (OUTCOME_SCORES[r.actual_outcome] if r.feedback_score is None else r.feedback_score / 100.0)
                )
                for r in labelled
            ) / len(labelled)
        else:
            accuracy = 0.0
            calibration_error = 0.0

        return {
            "total_readings": len(readings),
            "labelled_readings": len(labelled),
            "accuracy": accuracy,
            "calibration_error": calibration_error,
            "training_samples": len(self._training_data),
            "retrain_count": self._retrain_count,
            "auto_correct_threshold": self._threshold,
            "model": self.model.metrics.to_dict(),
        }
