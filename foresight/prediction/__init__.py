"""
Prediction data model and value comparison helpers.
"""

from foresight.prediction.schemas import (
    AggregatedPrediction,
    AggregationMetadata,
    ModelPrediction,
    PredictionContext,
    WORKLOAD_LEVELS,
)
from foresight.prediction.similarity import (
    canonical_key,
    clamp,
    mean_pairwise_similarity,
    prediction_accuracy,
    prediction_similarity,
    same_kind,
)

__all__ = [
    "AggregatedPrediction",
    "AggregationMetadata",
    "ModelPrediction",
    "PredictionContext",
    "WORKLOAD_LEVELS",
    "canonical_key",
    "clamp",
    "mean_pairwise_similarity",
    "prediction_accuracy",
    "prediction_similarity",
    "same_kind",
]
