"""
Selection strategies.

Each strategy is a pure function ``(candidates, context, criteria, history)``
returning the candidates it considers, best first. Only the ensemble
strategy's diversity pass admits candidates without performance history.
"""

from typing import Callable, Dict, List, Mapping, Optional, Sequence

from foresight.config import config
from foresight.ensemble.ensemble_schemas import PredictorConfig
from foresight.prediction.schemas import PredictionContext
from foresight.prediction.similarity import clamp
from foresight.selection.selection_schemas import (
    ContextType,
    ModelPerformanceMetrics,
    SelectionCriteria,
)

History = Mapping[str, ModelPerformanceMetrics]
SelectionStrategy = Callable[
    [Sequence[PredictorConfig], PredictionContext, SelectionCriteria, History],
    List[PredictorConfig],
]

UNKNOWN_CONTEXT_RELEVANCE = 0.1
BALANCED_CRITERIA = SelectionCriteria(
    accuracy=0.4, latency=0.3, resource_usage=0.2, context_relevance=0.1
)


def model_score(
    metrics: Optional[ModelPerformanceMetrics],
    context: PredictionContext,
    criteria: SelectionCriteria,
    latency_ceiling_ms: Optional[float] = None,
    resource_ceiling: Optional[float] = None,
) -> float:
    """
    Unified weighted score of a predictor in a context, in [0, 1].

    Context-specific accuracy and latency are used when the predictor has
    been observed in this context key; otherwise the overall averages.
    Latency and resource usage are normalised against their ceilings and
    relevance is the confidence of the context estimate. Returns 0 without
    history.
    """
    if metrics is None:
        return 0.0

    latency_ceiling_ms = latency_ceiling_ms or config.selection.latency_ceiling_ms
    resource_ceiling = resource_ceiling or config.selection.resource_ceiling

    context_perf = metrics.context_performance.get(context.context_key)
    if context_perf is not None:
        accuracy = context_perf.accuracy
        latency = context_perf.latency
        relevance = context_perf.confidence
    else:
        accuracy = metrics.accuracy
        latency = metrics.average_latency
        relevance = UNKNOWN_CONTEXT_RELEVANCE

    normalized = {
        "accuracy": clamp(accuracy),
        "latency": clamp(1.0 - latency / latency_ceiling_ms),
        "resource_usage": clamp(1.0 - metrics.resource_usage / resource_ceiling),
        "context_relevance": clamp(relevance),
    }
    weights = criteria.normalized()
    return clamp(sum(weights[name] * normalized[name] for name in weights))


def _with_history(
    candidates: Sequence[PredictorConfig], history: History
) -> List[PredictorConfig]:
    return [c for c in candidates if c.predictor_id in history]


def accuracy_first(
    candidates: Sequence[PredictorConfig],
    context: PredictionContext,
    criteria: SelectionCriteria,
    history: History,
) -> List[PredictorConfig]:
    """Highest smoothed accuracy first."""
    return sorted(
        _with_history(candidates, history),
        key=lambda c: history[c.predictor_id].accuracy,
        reverse=True,
    )


def speed_first(
    candidates: Sequence[PredictorConfig],
    context: PredictionContext,
    criteria: SelectionCriteria,
    history: History,
) -> List[PredictorConfig]:
    """Lowest smoothed latency first."""
    return sorted(
        _with_history(candidates, history),
        key=lambda c: history[c.predictor_id].average_latency,
    )


def balanced(
    candidates: Sequence[PredictorConfig],
    context: PredictionContext,
    criteria: SelectionCriteria,
    history: History,
) -> List[PredictorConfig]:
    """Fixed 0.4/0.3/0.2/0.1 weighting, ignoring the caller's criteria."""
    return sorted(
        _with_history(candidates, history),
        key=lambda c: model_score(history[c.predictor_id], context, BALANCED_CRITERIA),
        reverse=True,
    )


def context_aware(
    candidates: Sequence[PredictorConfig],
    context: PredictionContext,
    criteria: SelectionCriteria,
    history: History,
) -> List[PredictorConfig]:
    """Candidates observed in this context key, by accuracy x estimate confidence."""
    key = context.context_key
    observed = [
        c
        for c in _with_history(candidates, history)
        if key in history[c.predictor_id].context_performance
    ]

    def score(candidate: PredictorConfig) -> float:
        perf = history[candidate.predictor_id].context_performance[key]
        return perf.accuracy * perf.confidence

    return sorted(observed, key=score, reverse=True)


def ensemble(
    candidates: Sequence[PredictorConfig],
    context: PredictionContext,
    criteria: SelectionCriteria,
    history: History,
) -> List[PredictorConfig]:
    """
    Diverse selection for ensembling.

    First one representative per predictor type (first seen, history not
    required), then the remaining candidates with history by accuracy.
    """
    selected: List[PredictorConfig] = []
    seen_types = set()
    for candidate in candidates:
        if candidate.predictor_type not in seen_types:
            selected.append(candidate)
            seen_types.add(candidate.predictor_type)

    chosen_ids = {c.predictor_id for c in selected}
    remaining = [
        c for c in _with_history(candidates, history) if c.predictor_id not in chosen_ids
    ]
    remaining.sort(key=lambda c: history[c.predictor_id].accuracy, reverse=True)
    return selected + remaining


SELECTION_STRATEGIES: Dict[str, SelectionStrategy] = {
    "accuracy_first": accuracy_first,
    "speed_first": speed_first,
    "balanced": balanced,
    "context_aware": context_aware,
    "ensemble": ensemble,
}

STRATEGY_FOR_CONTEXT: Dict[ContextType, str] = {
    ContextType.HIGH_ACCURACY_REQUIRED: "accuracy_first",
    ContextType.REAL_TIME: "speed_first",
    ContextType.RESOURCE_CONSTRAINED: "balanced",
    ContextType.COMPLEX_TASK: "ensemble",
    ContextType.DEFAULT: "context_aware",
}


def strategy_name_for(context_type: ContextType) -> str:
    """Strategy used for a context class (``balanced`` for unknown classes)."""
    return STRATEGY_FOR_CONTEXT.get(context_type, "balanced")


def create_selection_strategy(name: str) -> SelectionStrategy:
    """
    Look up a selection strategy by name.

    Raises:
        ValueError: If the strategy name is unknown
    """
    if name not in SELECTION_STRATEGIES:
        raise ValueError(f"Unknown selection strategy: {name}")
    return SELECTION_STRATEGIES[name]
