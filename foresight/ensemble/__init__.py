"""
Model registry and ensemble aggregation.

Runs a configured set of predictors against one input and combines their
answers with weighted averaging, voting or stacking.
"""

from foresight.ensemble.aggregator import EnsembleAggregator
from foresight.ensemble.ensemble_schemas import (
    AggregationStrategy,
    EnsembleConfig,
    PerformanceRecord,
    PredictorConfig,
    PredictorPerformanceReport,
)
from foresight.ensemble.predictors import FunctionPredictor, Predictor
from foresight.ensemble.strategies import (
    StrategyResult,
    aggregate,
    combine_values,
    resolve_strategy,
    stacking,
    voting,
    weighted_average,
)

__all__ = [
    "AggregationStrategy",
    "EnsembleAggregator",
    "EnsembleConfig",
    "FunctionPredictor",
    "PerformanceRecord",
    "Predictor",
    "PredictorConfig",
    "PredictorPerformanceReport",
    "StrategyResult",
    "aggregate",
    "combine_values",
    "resolve_strategy",
    "stacking",
    "voting",
    "weighted_average",
]
