"""
Multi-factor confidence scoring with a running calibration ledger.

The scorer turns a set of raw predictions into a ConfidenceScore: five
component signals, a weighted overall score, rule-based factors explaining
it, reliability estimates and calibration diagnostics. Calibration state is
a bounded FIFO ledger of (predicted confidence, actual accuracy) pairs plus
fixed-width confidence bins, updated atomically and persisted after each
update.
"""

import statistics
import threading
from collections import OrderedDict, deque
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence

from foresight.config import config
from foresight.logging import get_component_logger, performance_monitor
from foresight.persistence.state_store import StateStore, safe_get, safe_put
from foresight.prediction.schemas import ModelPrediction, PredictionContext
from foresight.prediction.similarity import clamp, mean_pairwise_similarity
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
from foresight.scoring.context_similarity import ContextSimilarityCalculator
from foresight.scoring.data_quality import assess_data_quality

logger = get_component_logger("scoring")

CALIBRATION_KEY = "scorer/calibration"

DEFAULT_COMPONENT_SCORE = 0.5
UNSEEN_CONTEXT_SCORE = 0.3
SIMILAR_CONTEXT_THRESHOLD = 0.6
FULL_HISTORY_SAMPLES = 10
FULL_COVERAGE_CONTEXTS = 10
CONSISTENCY_WINDOW = 100
MAX_SEEN_CONTEXTS = 500


class ConfidenceScorer:
    """
    Scores how far a set of predictions should be trusted.

    Example:
        >>> scorer = ConfidenceScorer()
        >>> score = scorer.calculate_confidence(predictions, context)
        >>> print(score.explanation())
    """

    def __init__(
        self,
        store: Optional[StateStore] = None,
        ledger_size: Optional[int] = None,
        num_bins: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
        weights: Optional[Dict[str, float]] = None,
    ):
        """
        Initialize the scorer.

        Args:
            store: Host key-value store for the calibration ledger
            ledger_size: Maximum ledger entries (oldest evicted first)
            num_bins: Number of fixed-width calibration bins over [0, 1]
            clock: Source of the current time
            weights: Component weights for the overall score
        """
        self.store = store
        self.ledger_size = ledger_size or config.scoring.ledger_size
        self.num_bins = num_bins or config.scoring.num_bins
        self.weights = dict(weights or config.scoring.component_weights)
        self._clock = clock or datetime.now
        self.similarity = ContextSimilarityCalculator()

        self._ledger: Deque[CalibrationEntry] = deque(maxlen=self.ledger_size)
        self._bins = self._empty_bins()
        self._seen_contexts: "OrderedDict[PredictionContext, None]" = OrderedDict()
        self._lock = threading.Lock()

    def _empty_bins(self) -> List[CalibrationBin]:
        return [
            CalibrationBin(bin_start=i / self.num_bins, bin_end=(i + 1) / self.num_bins)
            for i in range(self.num_bins)
        ]

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    @performance_monitor(threshold_ms=500.0, component="scoring")
    def calculate_confidence(
        self,
        predictions: Sequence[ModelPrediction],
        context: PredictionContext,
        historical_data: Optional[Sequence[Any]] = None,
    ) -> ConfidenceScore:
        """
        Compute the trust score for a set of predictions.

        Args:
            predictions: Predictions to score (usually the aggregation survivors)
            context: Context they were made in
            historical_data: Optional supporting records for the data quality signal

        Returns:
            ConfidenceScore with components, factors, reliability and calibration
        """
        with self._lock:
            ledger = list(self._ledger)
            bins = [b.model_copy() for b in self._bins]
            seen = list(self._seen_contexts)

        similar = self._similar_context_scores(context, seen)

        components = ConfidenceComponents(
            model_agreement=clamp(mean_pairwise_similarity([p.value for p in predictions])),
            historical_accuracy=self._historical_accuracy(predictions, context, ledger),
            data_quality=clamp(assess_data_quality(historical_data or [], self._clock())),
            context_match=clamp(statistics.mean(similar)) if similar else UNSEEN_CONTEXT_SCORE,
            prediction_stability=self._stability(predictions),
        )

        overall = clamp(
            sum(self.weights.get(name, 0.0) * score for name, score in components.as_dict().items())
        )

        score = ConfidenceScore(
            overall=overall,
            components=components,
            factors=self._identify_factors(predictions, context, components),
            reliability=ReliabilityMetrics(
                consistency=self._consistency(context, ledger),
                robustness=self._robustness(predictions),
                coverage=min(len(similar) / FULL_COVERAGE_CONTEXTS, 1.0),
            ),
            calibration=self._calibration_metrics(bins),
            weights=dict(self.weights),
            timestamp=self._clock(),
        )

        logger.debug(
            f"Confidence for {len(predictions)} predictions in {context.context_key}: "
            f"{overall:.3f}"
        )
        return score

    def _historical_accuracy(
        self,
        predictions: Sequence[ModelPrediction],
        context: PredictionContext,
        ledger: Sequence[CalibrationEntry],
    ) -> float:
        """Sample-weighted mean ledger accuracy of the predictors in this context."""
        key = context.context_key
        weighted_total = 0.0
        total_weight = 0.0
        for predictor_id in dict.fromkeys(p.predictor_id for p in predictions):
            accuracies = [
                e.actual_accuracy
                for e in ledger
                if e.predictor_id == predictor_id and e.context_key == key
            ]
            if not accuracies:
                continue
            weight = min(len(accuracies) / FULL_HISTORY_SAMPLES, 1.0)
            weighted_total += statistics.mean(accuracies) * weight
            total_weight += weight

        if total_weight == 0:
            return DEFAULT_COMPONENT_SCORE
        return clamp(weighted_total / total_weight)

    def _similar_context_scores(
        self, context: PredictionContext, seen: Sequence[PredictionContext]
    ) -> List[float]:
        scores = (self.similarity.calculate_similarity(context, other) for other in seen)
        return [s for s in scores if s >= SIMILAR_CONTEXT_THRESHOLD]

    @staticmethod
    def _confidence_variance(predictions: Sequence[ModelPrediction]) -> Optional[float]:
        if len(predictions) < 2:
            return None
        return statistics.pvariance([p.confidence for p in predictions])

    def _stability(self, predictions: Sequence[ModelPrediction]) -> float:
        variance = self._confidence_variance(predictions)
        if variance is None:
            return DEFAULT_COMPONENT_SCORE
        return clamp(1.0 / (1.0 + variance))

    def _robustness(self, predictions: Sequence[ModelPrediction]) -> float:
        variance = self._confidence_variance(predictions)
        if variance is None:
            return DEFAULT_COMPONENT_SCORE
        return clamp(1.0 - variance)

    def _consistency(
        self, context: PredictionContext, ledger: Sequence[CalibrationEntry]
    ) -> float:
        """Agreement between recent predicted confidences in the same context key."""
        key = context.context_key
        recent = [e.predicted_confidence for e in ledger if e.context_key == key]
        recent = recent[-CONSISTENCY_WINDOW:]
        return clamp(mean_pairwise_similarity(recent, default=DEFAULT_COMPONENT_SCORE))

    def _identify_factors(
        self,
        predictions: Sequence[ModelPrediction],
        context: PredictionContext,
        components: ConfidenceComponents,
    ) -> List[ConfidenceFactor]:
        """Rule-based annotations, strongest impact first."""
        factors: List[ConfidenceFactor] = []

        if components.model_agreement > 0.8:
            factors.append(
                ConfidenceFactor(
                    name="High Model Agreement",
                    impact=0.2,
                    description="Multiple models agree on the prediction",
                    weight=0.25,
                )
            )
        elif components.model_agreement < 0.3:
            factors.append(
                ConfidenceFactor(
                    name="Low Model Agreement",
                    impact=-0.3,
                    description="Models disagree significantly on the prediction",
                    weight=0.25,
                )
            )

        if components.historical_accuracy > 0.9:
            factors.append(
                ConfidenceFactor(
                    name="Strong Historical Performance",
                    impact=0.25,
                    description="Models have performed well in similar contexts",
                    weight=0.30,
                )
            )
        elif components.historical_accuracy < 0.5:
            factors.append(
                ConfidenceFactor(
                    name="Poor Historical Performance",
                    impact=-0.4,
                    description="Models have struggled in similar contexts",
                    weight=0.30,
                )
            )

        if components.data_quality < 0.4:
            factors.append(
                ConfidenceFactor(
                    name="Low Data Quality",
                    impact=-0.3,
                    description="Supporting data quality is insufficient",
                    weight=0.20,
                )
            )

        if components.context_match < 0.3:
            factors.append(
                ConfidenceFactor(
                    name="Novel Context",
                    impact=-0.2,
                    description="Current context differs from previously seen ones",
                    weight=0.15,
                )
            )

        if components.prediction_stability < 0.4:
            factors.append(
                ConfidenceFactor(
                    name="Unstable Predictions",
                    impact=-0.15,
                    description="Predictions show high variance",
                    weight=0.10,
                )
            )

        if len(predictions) == 1:
            factors.append(
                ConfidenceFactor(
                    name="Single Model",
                    impact=-0.1,
                    description="Only one model available for prediction",
                    weight=0.1,
                )
            )

        if context.workload_level == "high":
            factors.append(
                ConfidenceFactor(
                    name="High Workload Context",
                    impact=-0.05,
                    description="High workload may affect prediction accuracy",
                    weight=0.05,
                )
            )

        return sorted(factors, key=lambda f: abs(f.impact), reverse=True)

    @staticmethod
    def _calibration_metrics(bins: Sequence[CalibrationBin]) -> CalibrationMetrics:
        total = 0
        error = 0.0
        over = 0
        under = 0
        confidence_sum = 0.0
        for b in bins:
            if b.count == 0:
                continue
            total += b.count
            error += abs(b.average_confidence - b.average_accuracy) * b.count
            confidence_sum += b.average_confidence * b.count
            if b.average_confidence > b.average_accuracy:
                over += b.count
            elif b.average_confidence < b.average_accuracy:
                under += b.count

        if total == 0:
            return CalibrationMetrics(
                calibration_error=0.0, overconfidence=0.0, underconfidence=0.0, sharpness=0.5
            )
        return CalibrationMetrics(
            calibration_error=clamp(error / total),
            overconfidence=over / total,
            underconfidence=under / total,
            sharpness=clamp(confidence_sum / total),
        )

    # ------------------------------------------------------------------
    # Calibration ledger
    # ------------------------------------------------------------------

    def update_calibration(
        self,
        predictor_id: str,
        predicted_confidence: float,
        actual_accuracy: float,
        context: PredictionContext,
    ) -> None:
        """
        Record one predicted-confidence vs actual-accuracy observation.

        The ledger append, bin update and context bookkeeping happen under one
        lock; the snapshot is then persisted. A storage failure is logged and
        the in-memory state keeps serving.
        """
        confidence = clamp(float(predicted_confidence))
        accuracy = clamp(float(actual_accuracy))
        entry = CalibrationEntry(
            predicted_confidence=confidence,
            actual_accuracy=accuracy,
            context_key=context.context_key,
            predictor_id=predictor_id,
            timestamp=self._clock(),
        )

        with self._lock:
            self._ledger.append(entry)
            self._bins[self.bin_index(confidence)].add(confidence, accuracy)
            self._remember_context(context)
            snapshot = self._snapshot() if self.store is not None else None

        if snapshot is not None:
            safe_put(self.store, CALIBRATION_KEY, snapshot)

    def bin_index(self, confidence: float) -> int:
        return min(int(confidence * self.num_bins), self.num_bins - 1)

    def _remember_context(self, context: PredictionContext) -> None:
        self._seen_contexts[context] = None
        self._seen_contexts.move_to_end(context)
        while len(self._seen_contexts) > MAX_SEEN_CONTEXTS:
            self._seen_contexts.popitem(last=False)

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "ledger": [e.to_dict() for e in self._ledger],
            "bins": [b.model_dump() for b in self._bins],
            "contexts": [c.to_dict() for c in self._seen_contexts],
        }

    def load_state(self) -> bool:
        """
        Restore the ledger, bins and seen contexts from the store.

        Returns:
            True if persisted state was found and loaded
        """
        data = safe_get(self.store, CALIBRATION_KEY)
        if not data:
            return False

        ledger = [CalibrationEntry(**e) for e in data.get("ledger", [])]
        bins = self._empty_bins()
        for i, raw in enumerate(data.get("bins", [])[: self.num_bins]):
            bins[i] = CalibrationBin(**raw)
        contexts = [PredictionContext.from_dict(c) for c in data.get("contexts", [])]

        with self._lock:
            self._ledger = deque(ledger, maxlen=self.ledger_size)
            self._bins = bins
            self._seen_contexts = OrderedDict((c, None) for c in contexts[-MAX_SEEN_CONTEXTS:])

        logger.info(f"Loaded calibration state: {len(ledger)} ledger entries")
        return True

    def get_ledger(self) -> List[CalibrationEntry]:
        with self._lock:
            return list(self._ledger)

    def get_calibration_bins(self) -> List[CalibrationBin]:
        with self._lock:
            return [b.model_copy() for b in self._bins]

    def calibration_summary(self) -> CalibrationSummary:
        """Current calibration metrics and bins."""
        with self._lock:
            bins = [b.model_copy() for b in self._bins]
            size = len(self._ledger)
        return CalibrationSummary(
            ledger_size=size, metrics=self._calibration_metrics(bins), bins=bins
        )
