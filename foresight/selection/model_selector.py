"""
Dynamic model selector.

Keeps exponentially smoothed per-predictor, per-context performance and
chooses which predictor configurations to run next. Performance history is
never deleted; the host ages it with decay().
"""

import statistics
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from foresight.config import config
from foresight.ensemble.ensemble_schemas import PredictorConfig
from foresight.errors import StorageFailure, ValidationError
from foresight.logging import get_component_logger
from foresight.persistence.state_store import StateStore, safe_get, safe_put
from foresight.prediction.schemas import PredictionContext
from foresight.prediction.similarity import clamp
from foresight.selection.context_classifier import ContextClassifier
from foresight.selection.selection_schemas import (
    ContextInsight,
    ContextPerformance,
    ModelPerformanceMetrics,
    ModelRanking,
    ModelRecommendation,
    PerformanceObservation,
    PerformanceReport,
    SelectionCriteria,
)
from foresight.selection.strategies import (
    create_selection_strategy,
    model_score,
    strategy_name_for,
)

logger = get_component_logger("selection")

PERFORMANCE_KEY_PREFIX = "selector/performance/"
FULL_CONFIDENCE_SAMPLES = 10
UNDERPERFORMING_RATIO = 0.8
HIGH_LATENCY_RATIO = 1.5
MIN_CONTEXT_DIVERSITY = 5


def _ema(current: float, new_value: float, alpha: float) -> float:
    return alpha * new_value + (1 - alpha) * current


class DynamicModelSelector:
    """
    Chooses predictor configurations from observed performance.

    Example:
        >>> selector = DynamicModelSelector()
        >>> selector.update_model_performance("fast", context, PerformanceObservation(0.9, 40))
        >>> selector.select_optimal_models(candidates, context, SelectionCriteria())
    """

    def __init__(
        self,
        store: Optional[StateStore] = None,
        ema_alpha: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the selector.

        Args:
            store: Host key-value store for performance history
            ema_alpha: Smoothing factor for the moving averages
            clock: Source of the current time
        """
        self.store = store
        self.ema_alpha = ema_alpha or config.selection.ema_alpha
        if not 0.0 < self.ema_alpha <= 1.0:
            raise ValidationError("ema_alpha must be in (0, 1]", rule="ema_alpha_range")
        self._clock = clock or datetime.now
        self.classifier = ContextClassifier()

        self._history: Dict[str, ModelPerformanceMetrics] = {}
        self._invocations: Dict[str, int] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_optimal_models(
        self,
        candidates: Sequence[PredictorConfig],
        context: PredictionContext,
        criteria: Optional[SelectionCriteria] = None,
        max_models: Optional[int] = None,
    ) -> List[PredictorConfig]:
        """
        Pick the predictor configurations to use in this context.

        The context is classified, the matching strategy orders the
        candidates, the list is truncated to ``max_models`` and finally
        stable-sorted by unified score.

        Args:
            candidates: Available predictor configurations
            context: Context of the upcoming prediction
            criteria: Weights for the unified score
            max_models: Maximum number of configurations to return

        Returns:
            Selected configurations, best first
        """
        criteria = criteria or SelectionCriteria()
        max_models = max_models or config.selection.max_models

        context_type = self.classifier.classify(context)
        strategy_name = strategy_name_for(context_type)
        strategy = create_selection_strategy(strategy_name)

        history = self._history_snapshot()
        ordered = strategy(candidates, context, criteria, history)[:max_models]
        ranked = sorted(
            ordered,
            key=lambda c: model_score(history.get(c.predictor_id), context, criteria),
            reverse=True,
        )

        logger.debug(
            f"Selected {[c.predictor_id for c in ranked]} for {context.context_key} "
            f"({context_type.value} -> {strategy_name})"
        )
        return ranked

    def _history_snapshot(self) -> Dict[str, ModelPerformanceMetrics]:
        with self._lock:
            return {
                pid: ModelPerformanceMetrics.from_dict(m.to_dict())
                for pid, m in self._history.items()
            }

    # ------------------------------------------------------------------
    # Performance updates
    # ------------------------------------------------------------------

    def update_model_performance(
        self,
        predictor_id: str,
        context: PredictionContext,
        observation: PerformanceObservation,
    ) -> ModelPerformanceMetrics:
        """
        Fold one observation into the predictor's smoothed metrics.

        The first observation seeds every average; later ones are blended in
        with ``ema_alpha``. The context-key entry is updated the same way and
        its confidence rises to 1 after ten samples. The whole update happens
        under one lock, then the metrics are persisted.

        Returns:
            Copy of the updated metrics
        """
        alpha = self.ema_alpha
        accuracy = clamp(observation.accuracy)
        success = 1.0 if observation.success else 0.0
        key = context.context_key

        with self._lock:
            metrics = self._history.get(predictor_id)
            if metrics is None:
                metrics = ModelPerformanceMetrics(
                    predictor_id=predictor_id,
                    accuracy=accuracy,
                    average_latency=observation.latency_ms,
                    memory_usage=observation.memory_usage,
                    cpu_usage=observation.cpu_usage,
                    success_rate=success,
                    invocation_count=self._invocations.get(predictor_id, 0),
                )
                self._history[predictor_id] = metrics
            else:
                metrics.accuracy = _ema(metrics.accuracy, accuracy, alpha)
                metrics.average_latency = _ema(
                    metrics.average_latency, observation.latency_ms, alpha
                )
                metrics.memory_usage = _ema(metrics.memory_usage, observation.memory_usage, alpha)
                metrics.cpu_usage = _ema(metrics.cpu_usage, observation.cpu_usage, alpha)
                metrics.success_rate = _ema(metrics.success_rate, success, alpha)
            metrics.observation_count += 1
            metrics.last_updated = self._clock()

            context_perf = metrics.context_performance.get(key)
            if context_perf is None:
                context_perf = ContextPerformance(
                    context_key=key,
                    accuracy=accuracy,
                    latency=observation.latency_ms,
                    sample_count=1,
                    confidence=min(1.0, 1 / FULL_CONFIDENCE_SAMPLES),
                )
                metrics.context_performance[key] = context_perf
            else:
                context_perf.accuracy = _ema(context_perf.accuracy, accuracy, alpha)
                context_perf.latency = _ema(context_perf.latency, observation.latency_ms, alpha)
                context_perf.sample_count += 1
                context_perf.confidence = min(
                    1.0, context_perf.sample_count / FULL_CONFIDENCE_SAMPLES
                )

            snapshot = metrics.to_dict()

        safe_put(self.store, f"{PERFORMANCE_KEY_PREFIX}{predictor_id}", snapshot)
        return ModelPerformanceMetrics.from_dict(snapshot)

    def record_invocations(
        self, predictor_ids: Iterable[str], context: PredictionContext
    ) -> None:
        """
        Count that predictors produced predictions (accuracy not yet known).

        Invocation counts never create performance history on their own.
        """
        with self._lock:
            for predictor_id in predictor_ids:
                self._invocations[predictor_id] = self._invocations.get(predictor_id, 0) + 1
                metrics = self._history.get(predictor_id)
                if metrics is not None:
                    metrics.invocation_count = self._invocations[predictor_id]

    def decay(self, factor: float) -> None:
        """
        Age every context estimate by multiplying its confidence by ``factor``.

        Meant to be called periodically by the host; history is never deleted.
        """
        if not 0.0 <= factor <= 1.0:
            raise ValidationError(f"Decay factor must be in [0, 1], got {factor}", rule="decay_factor")

        with self._lock:
            for metrics in self._history.values():
                for context_perf in metrics.context_performance.values():
                    context_perf.confidence *= factor
            snapshots = {pid: m.to_dict() for pid, m in self._history.items()}

        for predictor_id, snapshot in snapshots.items():
            safe_put(self.store, f"{PERFORMANCE_KEY_PREFIX}{predictor_id}", snapshot)
        logger.debug(f"Decayed {len(snapshots)} performance histories by {factor}")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_performance_history(self) -> Dict[str, ModelPerformanceMetrics]:
        return self._history_snapshot()

    def get_invocation_count(self, predictor_id: str) -> int:
        with self._lock:
            return self._invocations.get(predictor_id, 0)

    def get_model_recommendations(
        self,
        context: PredictionContext,
        criteria: Optional[SelectionCriteria] = None,
    ) -> List[ModelRecommendation]:
        """Every predictor with history, scored for this context, best first."""
        criteria = criteria or SelectionCriteria()
        key = context.context_key
        recommendations = []
        for predictor_id, metrics in self._history_snapshot().items():
            context_perf = metrics.context_performance.get(key)
            recommendations.append(
                ModelRecommendation(
                    predictor_id=predictor_id,
                    score=model_score(metrics, context, criteria),
                    reasoning=self._recommendation_reasoning(metrics, context_perf),
                    confidence=context_perf.confidence if context_perf else 0.1,
                    expected_accuracy=(
                        context_perf.accuracy if context_perf else metrics.accuracy
                    ),
                    expected_latency=(
                        context_perf.latency if context_perf else metrics.average_latency
                    ),
                    expected_resource_usage=metrics.resource_usage,
                )
            )
        return sorted(recommendations, key=lambda r: r.score, reverse=True)

    @staticmethod
    def _recommendation_reasoning(
        metrics: ModelPerformanceMetrics, context_perf: Optional[ContextPerformance]
    ) -> str:
        reasons = []
        if metrics.accuracy > 0.9:
            reasons.append("High accuracy (>90%)")
        if metrics.average_latency < 100:
            reasons.append("Low latency (<100ms)")
        if metrics.success_rate > 0.95:
            reasons.append("High reliability (>95% success rate)")
        if context_perf is not None and context_perf.confidence > 0.8:
            reasons.append("Strong performance in similar contexts")
        if metrics.resource_usage < 50:
            reasons.append("Efficient resource usage")
        return ", ".join(reasons) if reasons else "Standard performance metrics"

    def get_performance_report(self) -> PerformanceReport:
        """Rankings, per-context insights and system-level recommendations."""
        history = self._history_snapshot()
        report = PerformanceReport(total_models=len(history))
        if not history:
            return report

        report.average_accuracy = statistics.mean(m.accuracy for m in history.values())
        report.average_latency = statistics.mean(m.average_latency for m in history.values())

        ranked = sorted(history.values(), key=lambda m: m.accuracy, reverse=True)
        report.model_rankings = [
            ModelRanking(
                rank=i + 1,
                predictor_id=m.predictor_id,
                accuracy=m.accuracy,
                latency=m.average_latency,
                resource_usage=m.resource_usage,
                success_rate=m.success_rate,
                invocation_count=m.invocation_count,
            )
            for i, m in enumerate(ranked)
        ]

        by_context: Dict[str, Dict[str, float]] = {}
        for metrics in history.values():
            for key, context_perf in metrics.context_performance.items():
                by_context.setdefault(key, {})[metrics.predictor_id] = context_perf.accuracy

        for key, accuracies in by_context.items():
            average = statistics.mean(accuracies.values())
            report.context_insights[key] = ContextInsight(
                average_accuracy=average,
                sample_count=len(accuracies),
                best_model=max(accuracies, key=lambda pid: accuracies[pid]),
                performance=(
                    "above_average" if average > report.average_accuracy else "below_average"
                ),
            )

        report.recommendations = self._system_recommendations(report)
        return report

    @staticmethod
    def _system_recommendations(report: PerformanceReport) -> List[str]:
        recommendations = []

        underperforming = [
            r
            for r in report.model_rankings
            if r.accuracy < report.average_accuracy * UNDERPERFORMING_RATIO
        ]
        if underperforming:
            recommendations.append(
                f"Consider retraining or replacing {len(underperforming)} underperforming models"
            )

        slow = [
            r for r in report.model_rankings if r.latency > report.average_latency * HIGH_LATENCY_RATIO
        ]
        if slow:
            recommendations.append(f"Optimize {len(slow)} models with high latency")

        if len(report.context_insights) < MIN_CONTEXT_DIVERSITY:
            recommendations.append(
                "Increase context diversity to improve model selection accuracy"
            )
        return recommendations

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_state(self) -> int:
        """
        Restore performance history from the store.

        Returns:
            Number of predictors loaded
        """
        if self.store is None:
            return 0
        try:
            keys = self.store.keys(PERFORMANCE_KEY_PREFIX)
        except StorageFailure as e:
            logger.error(f"Could not list persisted performance history: {e}")
            return 0

        loaded: Dict[str, ModelPerformanceMetrics] = {}
        for key in keys:
            data: Any = safe_get(self.store, key)
            if data:
                metrics = ModelPerformanceMetrics.from_dict(data)
                loaded[metrics.predictor_id] = metrics

        with self._lock:
            self._history.update(loaded)
            for predictor_id, metrics in loaded.items():
                self._invocations[predictor_id] = max(
                    self._invocations.get(predictor_id, 0), metrics.invocation_count
                )

        logger.info(f"Loaded performance history for {len(loaded)} predictors")
        return len(loaded)
