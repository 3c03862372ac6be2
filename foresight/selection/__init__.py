"""
Dynamic model selection.

Tracks smoothed per-predictor, per-context performance and picks which
predictor configurations to run next.
"""

from foresight.selection.context_classifier import ContextClassifier
from foresight.selection.model_selector import PERFORMANCE_KEY_PREFIX, DynamicModelSelector
from foresight.selection.selection_schemas import (
    ContextInsight,
    ContextPerformance,
    ContextType,
    ModelPerformanceMetrics,
    ModelRanking,
    ModelRecommendation,
    PerformanceObservation,
    PerformanceReport,
    SelectionCriteria,
)
from foresight.selection.strategies import (
    SELECTION_STRATEGIES,
    create_selection_strategy,
    model_score,
    strategy_name_for,
)

__all__ = [
    "PERFORMANCE_KEY_PREFIX",
    "SELECTION_STRATEGIES",
    "ContextClassifier",
    "ContextInsight",
    "ContextPerformance",
    "ContextType",
    "DynamicModelSelector",
    "ModelPerformanceMetrics",
    "ModelRanking",
    "ModelRecommendation",
    "PerformanceObservation",
    "PerformanceReport",
    "SelectionCriteria",
    "create_selection_strategy",
    "model_score",
    "strategy_name_for",
]
