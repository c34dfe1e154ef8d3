"""Confidence calibration for staycheck.

This module provides:
- NeuralCalibrationModel: small numpy network scoring confidence factors
- ConfidenceCalibrator: contextual calibration, feedback and retraining
"""

from staycheck.calibration.calibrator import (
    ConfidenceCalibrator,
    ConfidenceFactors,
    ConfidenceReading,
    TrainingSample,
)
from staycheck.calibration.network import LAYER_SIZES, NeuralCalibrationModel, TrainingMetrics

__all__ = [
    "ConfidenceCalibrator",
    "ConfidenceFactors",
    "ConfidenceReading",
    "TrainingSample",
    "NeuralCalibrationModel",
    "TrainingMetrics",
    "LAYER_SIZES",
]
