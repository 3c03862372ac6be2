"""
Aggregation strategies over the predictions that survived the threshold.

Every strategy is a pure function returning a StrategyResult; the aggregator
picks one with resolve_strategy and dispatches through aggregate().
"""

import statistics
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from loguru import logger

from foresight.ensemble.ensemble_schemas import AggregationStrategy
from foresight.prediction.schemas import ModelPrediction
from foresight.prediction.similarity import canonical_key, clamp, is_number, is_sequence

# Confidence variance under which the dynamic strategy averages
LOW_VARIANCE_THRESHOLD = 0.1
# Survivors needed before the dynamic strategy votes
MIN_VOTERS = 3


@dataclass(frozen=True)
class StrategyResult:
    """Combined value and confidence produced by one strategy."""

    value: Any
    confidence: float
    method: AggregationStrategy


class NotCombinableError(ValueError):
    """Raised when values have no weighted mean (mixed or categorical types)."""

    pass


def combine_values(values: Sequence[Any], weights: Sequence[float]) -> Any:
    """
    Weighted mean of prediction values.

    Numbers are averaged directly, sequences element-wise over the predictors
    that have each index, and dicts key-by-key over the predictors that have
    each key (recursively). A non-positive total weight falls back to uniform
    weights.

    Raises:
        NotCombinableError: If the values cannot be averaged
    """
    if not values:
        raise NotCombinableError("No values to combine")

    total = sum(weights)
    if total <= 0:
        weights = [1.0] * len(values)
        total = float(len(values))

    if all(is_number(v) for v in values):
        return sum(v * w for v, w in zip(values, weights)) / total

    if all(is_sequence(v) for v in values):
        longest = max(len(v) for v in values)
        combined = []
        for i in range(longest):
            present = [(v[i], w) for v, w in zip(values, weights) if i < len(v)]
            combined.append(combine_values([p[0] for p in present], [p[1] for p in present]))
        return combined

    if all(isinstance(v, dict) for v in values):
        keys: List[Any] = []
        for v in values:
            for key in v:
                if key not in keys:
                    keys.append(key)
        combined_map = {}
        for key in keys:
            present = [(v[key], w) for v, w in zip(values, weights) if key in v]
            combined_map[key] = combine_values(
                [p[0] for p in present], [p[1] for p in present]
            )
        return combined_map

    raise NotCombinableError(
        f"Cannot average values of types {sorted({type(v).__name__ for v in values})}"
    )


def _combine_or_strongest(values: Sequence[Any], weights: Sequence[float]) -> Any:
    try:
        return combine_values(values, weights)
    except NotCombinableError as e:
        logger.debug(f"Falling back to strongest prediction: {e}")
        best = max(range(len(values)), key=lambda i: weights[i])
        return values[best]


def weighted_average(predictions: Sequence[ModelPrediction]) -> StrategyResult:
    """Confidence-weighted mean; confidence is the mean survivor confidence."""
    method = AggregationStrategy.WEIGHTED_AVERAGE
    if len(predictions) == 1:
        return StrategyResult(predictions[0].value, predictions[0].confidence, method)

    confidences = [p.confidence for p in predictions]
    value = _combine_or_strongest([p.value for p in predictions], confidences)
    return StrategyResult(value, clamp(sum(confidences) / len(predictions)), method)


def voting(predictions: Sequence[ModelPrediction]) -> StrategyResult:
    """
    Confidence-weighted vote over structurally equal values.

    The group with the highest summed confidence wins (first seen on ties);
    confidence is the winning total divided by the number of survivors.
    """
    method = AggregationStrategy.VOTING
    if len(predictions) == 1:
        return StrategyResult(predictions[0].value, predictions[0].confidence, method)

    totals: Dict[Any, float] = {}
    representatives: Dict[Any, Any] = {}
    for prediction in predictions:
        key = canonical_key(prediction.value)
        if key not in totals:
            totals[key] = 0.0
            representatives[key] = prediction.value
        totals[key] += prediction.confidence

    best_key = None
    for key, total in totals.items():
        if best_key is None or total > totals[best_key]:
            best_key = key

    return StrategyResult(
        representatives[best_key], clamp(totals[best_key] / len(predictions)), method
    )


def stacking(
    predictions: Sequence[ModelPrediction],
    accuracies: Optional[Mapping[str, Optional[float]]] = None,
) -> StrategyResult:
    """
    Combine values weighted by historical accuracy in this context.

    Predictors without history fall back to their own confidence. Weights are
    normalised to sum to 1 (uniform when they are all zero); confidence is the
    weighted sum of survivor confidences.
    """
    method = AggregationStrategy.STACKING
    if len(predictions) == 1:
        return StrategyResult(predictions[0].value, predictions[0].confidence, method)

    accuracies = accuracies or {}
    raw_weights = []
    for prediction in predictions:
        accuracy = accuracies.get(prediction.predictor_id)
        raw_weights.append(accuracy if accuracy is not None else prediction.confidence)

    total = sum(raw_weights)
    if total > 0:
        weights = [w / total for w in raw_weights]
    else:
        weights = [1.0 / len(predictions)] * len(predictions)

    value = _combine_or_strongest([p.value for p in predictions], weights)
    confidence = sum(p.confidence * w for p, w in zip(predictions, weights))
    return StrategyResult(value, clamp(confidence), method)


def confidence_variance(predictions: Sequence[ModelPrediction]) -> float:
    """Population variance of survivor confidences (0 with fewer than two)."""
    if len(predictions) < 2:
        return 0.0
    return statistics.pvariance([p.confidence for p in predictions])


def resolve_strategy(
    strategy: AggregationStrategy, predictions: Sequence[ModelPrediction]
) -> AggregationStrategy:
    """Turn ``dynamic`` into a concrete strategy for these survivors."""
    if strategy is not AggregationStrategy.DYNAMIC:
        return strategy
    if confidence_variance(predictions) < LOW_VARIANCE_THRESHOLD:
        return AggregationStrategy.WEIGHTED_AVERAGE
    if len(predictions) >= MIN_VOTERS:
        return AggregationStrategy.VOTING
    return AggregationStrategy.STACKING


_STRATEGIES: Dict[AggregationStrategy, Callable[..., StrategyResult]] = {
    AggregationStrategy.WEIGHTED_AVERAGE: weighted_average,
    AggregationStrategy.VOTING: voting,
}


def aggregate(
    strategy: AggregationStrategy,
    predictions: Sequence[ModelPrediction],
    accuracies: Optional[Mapping[str, Optional[float]]] = None,
) -> StrategyResult:
    """
    Resolve ``strategy`` and combine ``predictions`` with it.

    Args:
        strategy: Configured strategy (``dynamic`` is resolved here)
        predictions: Non-empty list of surviving predictions
        accuracies: Historical accuracy per predictor id, used by stacking

    Returns:
        StrategyResult naming the concrete strategy used
    """
    if not predictions:
        raise ValueError("aggregate() needs at least one prediction")

    concrete = resolve_strategy(strategy, predictions)
    if concrete is AggregationStrategy.STACKING:
        return stacking(predictions, accuracies)
    return _STRATEGIES[concrete](predictions)
