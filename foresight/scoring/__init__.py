"""
Confidence scoring and calibration.
"""

from foresight.scoring.confidence_schemas import (
    CalibrationBin,
    CalibrationEntry,
    CalibrationMetrics,
    CalibrationSummary,
    ConfidenceComponents,
    ConfidenceFactor,
    ConfidenceScore,
    ReliabilityMetrics,
)
from foresight.scoring.confidence_scorer import CALIBRATION_KEY, ConfidenceScorer
from foresight.scoring.context_similarity import ContextSimilarityCalculator
from foresight.scoring.data_quality import assess_data_quality

__all__ = [
    "CALIBRATION_KEY",
    "CalibrationBin",
    "CalibrationEntry",
    "CalibrationMetrics",
    "CalibrationSummary",
    "ConfidenceComponents",
    "ConfidenceFactor",
    "ConfidenceScore",
    "ConfidenceScorer",
    "ContextSimilarityCalculator",
    "ReliabilityMetrics",
    "assess_data_quality",
]
