"""
A/B Testing Framework for competing ensemble configurations.

Each variant of a test wraps a complete ensemble configuration with its own
aggregator. Callers are deterministically bucketed into a variant, their
predictions are routed through that variant's aggregator and recorded, and
outcomes reported later are compared across variants with a pooled
two-proportion z-test.

Workflow:
1. create_test() validates the configuration and builds one aggregator per variant
2. get_prediction() assigns the caller and records an ABTestResult
3. record_outcome() fills in the caller's latest result
4. analyze_test() computes per-variant statistics and picks a winner
"""

import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from foresight.ensemble.aggregator import EnsembleAggregator
from foresight.ensemble.predictors import Predictor
from foresight.errors import InactiveTestError, StorageFailure, ValidationError
from foresight.experiments.ab_testing_schemas import (
    ABTestAnalysis,
    ABTestConfig,
    ABTestResult,
    TestStatus,
    VariantAnalysis,
)
from foresight.experiments.statistics import (
    assign_bucket,
    is_significant,
    proportion_confidence_interval,
    statistical_summary,
    two_proportion_z_test,
)
from foresight.logging import get_component_logger, log_experiment_event, track_operation
from foresight.persistence.state_store import StateStore, safe_get, safe_put
from foresight.prediction.schemas import AggregatedPrediction, PredictionContext
from foresight.prediction.similarity import prediction_accuracy, same_kind
from foresight.scoring.confidence_scorer import ConfidenceScorer
from foresight.selection.model_selector import DynamicModelSelector

logger = get_component_logger("experiments")

EXPERIMENT_KEY_PREFIX = "experiments/"
SPLIT_TOLERANCE = 0.01
SUMMARY_METRICS = ("confidence", "contributing_models_count", "latency_ms")
HIGH_VARIANCE_RATIO = 0.5


def config_key(test_id: str) -> str:
    return f"{EXPERIMENT_KEY_PREFIX}{test_id}/config"


def results_prefix(test_id: str) -> str:
    return f"{EXPERIMENT_KEY_PREFIX}{test_id}/results/"


def result_key(test_id: str, index: int) -> str:
    """Key of one result; zero padded so keys sort in arrival order."""
    return f"{results_prefix(test_id)}{index:08d}"


class ABTestingFramework:
    """
    Runs controlled experiments between ensemble configurations.

    Tests are never deleted; stop_test only closes the time window.
    """

    def __init__(
        self,
        predictors: Mapping[str, Predictor],
        selector: Optional[DynamicModelSelector] = None,
        scorer: Optional[ConfidenceScorer] = None,
        store: Optional[StateStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the framework.

        Args:
            predictors: Predictor registry shared by every variant's aggregator
            selector: Optional selector the variant aggregators report to
            scorer: Optional scorer the variant aggregators feed calibration to
            store: Host key-value store for test configurations and results
            clock: Source of the current time
        """
        self.predictors = dict(predictors)
        self.selector = selector
        self.scorer = scorer
        self.store = store
        self._clock = clock or datetime.now

        self._tests: Dict[str, ABTestConfig] = {}
        self._results: Dict[str, List[ABTestResult]] = {}
        self._aggregators: Dict[str, Dict[str, EnsembleAggregator]] = {}
        self._assignments: Dict[str, Dict[str, str]] = {}
        self._lock = threading.Lock()

        logger.info("Initialized ABTestingFramework")

    # ------------------------------------------------------------------
    # Test lifecycle
    # ------------------------------------------------------------------

    @track_operation("experiments", "create_test")
    def create_test(self, test_config: ABTestConfig) -> None:
        """
        Validate and register a test.

        Raises:
            ValidationError: Naming the violated rule in ``rule``
        """
        self.validate_config(test_config)

        aggregators = {
            variant.variant_id: self._build_aggregator(variant.ensemble_config)
            for variant in test_config.variants
        }

        with self._lock:
            if test_config.test_id in self._tests:
                raise ValidationError(
                    f"Test {test_config.test_id} already exists", rule="duplicate_test"
                )
            self._tests[test_config.test_id] = test_config
            self._results[test_config.test_id] = []
            self._aggregators[test_config.test_id] = aggregators
            self._assignments[test_config.test_id] = {}

        safe_put(self.store, config_key(test_config.test_id), test_config.to_dict())

        log_experiment_event(
            logger,
            "created",
            test_config.test_id,
            variants=[v.variant_id for v in test_config.variants],
        )

    def _build_aggregator(self, ensemble_config: Any) -> EnsembleAggregator:
        return EnsembleAggregator(
            ensemble_config,
            self.predictors,
            selector=self.selector,
            scorer=self.scorer,
            clock=self._clock,
        )

    @staticmethod
    def validate_config(test_config: ABTestConfig) -> None:
        """Check a test configuration, raising ValidationError on the first violation."""
        total = sum(test_config.traffic_split.values())
        if abs(total - 100) > SPLIT_TOLERANCE:
            raise ValidationError(
                f"Traffic split must sum to 100%, got {total}", rule="traffic_split_sum"
            )

        variant_ids = [v.variant_id for v in test_config.variants]
        if len(set(variant_ids)) != len(variant_ids):
            raise ValidationError("Variant ids must be unique", rule="duplicate_variant")

        for variant_id in variant_ids:
            if variant_id not in test_config.traffic_split:
                raise ValidationError(
                    f"Variant {variant_id} not found in traffic split", rule="variant_in_split"
                )

        unknown = [k for k in test_config.traffic_split if k not in variant_ids]
        if unknown:
            raise ValidationError(
                f"Traffic split references unknown variants: {unknown}",
                rule="split_has_unknown_variant",
            )

        if test_config.start_date >= test_config.end_date:
            raise ValidationError(
                "Start date must be before end date", rule="date_order"
            )

        if not test_config.control_variants:
            raise ValidationError(
                "At least one variant must be marked as control", rule="control_required"
            )

    def stop_test(self, test_id: str) -> None:
        """Close the test window now. Results are kept."""
        now = self._clock()
        with self._lock:
            test = self._require_test(test_id)
            if now < test.end_date:
                test.end_date = now
            test.stopped = True
            snapshot = test.to_dict()

        safe_put(self.store, config_key(test_id), snapshot)
        log_experiment_event(logger, "stopped", test_id)

    def get_active_tests(self) -> List[ABTestConfig]:
        now = self._clock()
        with self._lock:
            return [t for t in self._tests.values() if t.is_active(now)]

    def get_test(self, test_id: str) -> ABTestConfig:
        with self._lock:
            return self._require_test(test_id)

    def _require_test(self, test_id: str) -> ABTestConfig:
        test = self._tests.get(test_id)
        if test is None:
            raise ValidationError(f"Test {test_id} not found", rule="unknown_test")
        return test

    # ------------------------------------------------------------------
    # Assignment and prediction
    # ------------------------------------------------------------------

    def get_variant_assignment(self, test_id: str, user_id: str) -> str:
        """
        Variant a user is (or will be) assigned to.

        The first assignment is memoised and never changes for the test's
        lifetime.
        """
        with self._lock:
            test = self._require_test(test_id)
            assignments = self._assignments[test_id]
            variant_id = assignments.get(user_id)
            if variant_id is None:
                variant_id = self._select_variant(user_id, test)
                assignments[user_id] = variant_id
            return variant_id

    @staticmethod
    def _select_variant(user_id: str, test: ABTestConfig) -> str:
        bucket = assign_bucket(user_id, test.test_id)
        cumulative = 0.0
        for variant in test.variants:
            cumulative += test.traffic_split[variant.variant_id]
            if bucket < cumulative:
                return variant.variant_id
        return test.variants[0].variant_id

    def get_prediction(
        self,
        test_id: str,
        user_id: str,
        input_data: Any,
        context: PredictionContext,
        timeout: Optional[float] = None,
    ) -> AggregatedPrediction:
        """
        Route a prediction through the user's variant and record it.

        Raises:
            ValidationError: If the test is unknown
            InactiveTestError: If now is outside [start_date, end_date)
            NoViableModelsError: If the variant's ensemble produced no survivor
        """
        now = self._clock()
        test = self.get_test(test_id)
        if not test.is_active(now):
            raise InactiveTestError(test_id, now)

        variant_id = self.get_variant_assignment(test_id, user_id)
        aggregator = self._aggregators[test_id][variant_id]

        start = time.perf_counter()
        prediction = aggregator.predict(input_data, context, timeout=timeout)
        latency_ms = (time.perf_counter() - start) * 1000

        result = ABTestResult(
            test_id=test_id,
            variant_id=variant_id,
            user_id=user_id,
            prediction=prediction.value,
            context=context,
            timestamp=self._clock(),
            metrics={
                "confidence": prediction.confidence,
                "contributing_models_count": float(len(prediction.contributing_models)),
                "latency_ms": latency_ms,
            },
            contributions=[
                {
                    "predictor_id": p.predictor_id,
                    "value": p.value,
                    "confidence": p.confidence,
                    "latency_ms": p.latency_ms,
                }
                for p in prediction.predictions
            ],
        )

        with self._lock:
            self._results[test_id].append(result)
            index = len(self._results[test_id]) - 1
            document = result.to_dict()
        safe_put(self.store, result_key(test_id, index), document)

        logger.debug(f"Test {test_id}: user {user_id} served by variant {variant_id}")
        return prediction

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    def record_outcome(
        self,
        test_id: str,
        user_id: str,
        actual_outcome: Any,
        timestamp: Optional[datetime] = None,
    ) -> ABTestResult:
        """
        Attach the observed outcome to the user's most recent result.

        The latest result by timestamp wins (the later appended one on ties).
        The outcome is forwarded to the variant's aggregator for every
        contributing predictor whose value has the same kind as the outcome;
        a conversion flag only updates the experiment statistics.

        Raises:
            ValidationError: If the test is unknown or the user has no predictions
        """
        with self._lock:
            self._require_test(test_id)
            latest: Optional[ABTestResult] = None
            index = -1
            for position, result in enumerate(self._results[test_id]):
                if result.user_id != user_id:
                    continue
                if latest is None or result.timestamp >= latest.timestamp:
                    latest = result
                    index = position
            if latest is None:
                raise ValidationError(
                    f"User {user_id} has no predictions in test {test_id}",
                    rule="unknown_user",
                )

            accuracy = prediction_accuracy(latest.prediction, actual_outcome)
            latest.actual_outcome = actual_outcome
            latest.has_outcome = True
            latest.metrics["accuracy"] = accuracy
            if timestamp is not None:
                latest.metrics["outcome_delay_seconds"] = (
                    timestamp - latest.timestamp
                ).total_seconds()
            aggregator = self._aggregators[test_id][latest.variant_id]
            document = latest.to_dict()

        for contribution in latest.contributions:
            if not same_kind(contribution["value"], actual_outcome):
                continue
            aggregator.record_prediction_outcome(
                contribution["predictor_id"],
                contribution["value"],
                actual_outcome,
                latest.context,
                confidence=contribution.get("confidence"),
                latency_ms=contribution.get("latency_ms", 0.0),
            )

        safe_put(self.store, result_key(test_id, index), document)
        logger.debug(
            f"Recorded outcome for test {test_id}, variant {latest.variant_id}: "
            f"accuracy={accuracy:.3f}"
        )
        return latest

    def get_results(self, test_id: str) -> List[ABTestResult]:
        with self._lock:
            self._require_test(test_id)
            return list(self._results[test_id])

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    @track_operation("experiments", "analyze_test")
    def analyze_test(self, test_id: str) -> ABTestAnalysis:
        """
        Compute per-variant statistics, the winner and recommendations.

        Every configured variant is analysed, including ones without results.
        """
        now = self._clock()
        with self._lock:
            test = self._require_test(test_id)
            results = list(self._results[test_id])

        analyses: Dict[str, VariantAnalysis] = {}
        for variant in test.variants:
            variant_results = [r for r in results if r.variant_id == variant.variant_id]
            analyses[variant.variant_id] = self._analyze_variant(
                variant.variant_id, variant_results, test.confidence_level
            )

        if test.stopped:
            status = TestStatus.STOPPED
        elif now >= test.end_date:
            status = TestStatus.COMPLETED
        else:
            status = TestStatus.RUNNING

        winner = self._determine_winner(test, analyses)
        analysis = ABTestAnalysis(
            test_id=test_id,
            status=status,
            results=analyses,
            winner=winner,
            confidence=self._overall_confidence(analyses),
            recommendations=self._recommendations(test, analyses, winner),
            start_date=test.start_date,
            end_date=None if status is TestStatus.RUNNING else test.end_date,
        )

        log_experiment_event(logger, "analyzed", test_id, winner=winner, status=status.value)
        return analysis

    @staticmethod
    def _analyze_variant(
        variant_id: str, results: List[ABTestResult], confidence_level: float
    ) -> VariantAnalysis:
        with_outcome = [r for r in results if r.has_outcome]
        if not with_outcome:
            return VariantAnalysis(
                variant_id=variant_id,
                sample_size=0,
                conversion_rate=0.0,
                average_accuracy=0.0,
                confidence_interval=(0.0, 0.0),
                total_predictions=len(results),
            )

        conversions = sum(1 for r in with_outcome if r.actual_outcome is True)
        conversion_rate = conversions / len(with_outcome)
        accuracies = [r.metrics["accuracy"] for r in with_outcome if "accuracy" in r.metrics]
        average_accuracy = sum(accuracies) / len(accuracies) if accuracies else 0.0

        metrics = {}
        for name in SUMMARY_METRICS:
            values = [r.metrics[name] for r in results if name in r.metrics]
            if values:
                metrics[name] = statistical_summary(values)

        return VariantAnalysis(
            variant_id=variant_id,
            sample_size=len(with_outcome),
            conversion_rate=conversion_rate,
            average_accuracy=average_accuracy,
            confidence_interval=proportion_confidence_interval(
                conversion_rate, len(with_outcome), confidence_level
            ),
            metrics=metrics,
            total_predictions=len(results),
        )

    @staticmethod
    def _determine_winner(
        test: ABTestConfig, analyses: Dict[str, VariantAnalysis]
    ) -> Optional[str]:
        """Best non-control variant significantly beating the first control."""
        control = analyses[test.control_variants[0].variant_id]
        best: Optional[VariantAnalysis] = None
        for variant in test.variants:
            if variant.is_control:
                continue
            candidate = analyses[variant.variant_id]
            z = two_proportion_z_test(
                control.conversion_rate,
                control.sample_size,
                candidate.conversion_rate,
                candidate.sample_size,
            )
            if not is_significant(z, test.confidence_level):
                continue
            if candidate.conversion_rate <= control.conversion_rate:
                continue
            if best is None or candidate.conversion_rate > best.conversion_rate:
                best = candidate
        return best.variant_id if best else None

    @staticmethod
    def _overall_confidence(analyses: Dict[str, VariantAnalysis]) -> float:
        """Sample-size weighted mean of variant accuracies."""
        total = sum(a.sample_size for a in analyses.values())
        if total == 0:
            return 0.0
        return sum(a.average_accuracy * a.sample_size for a in analyses.values()) / total

    @staticmethod
    def _recommendations(
        test: ABTestConfig, analyses: Dict[str, VariantAnalysis], winner: Optional[str]
    ) -> List[str]:
        recommendations = []
        if winner:
            recommendations.append(
                f"Implement variant {winner} as it shows statistically significant improvement"
            )
        else:
            recommendations.append(
                "No statistically significant winner found. "
                "Consider extending test duration or increasing sample size"
            )

        if any(a.sample_size < test.minimum_sample_size for a in analyses.values()):
            recommendations.append(
                f"Some variants have fewer than {test.minimum_sample_size} outcomes. "
                "Consider running test longer for more reliable results"
            )

        for analysis in analyses.values():
            for name, summary in analysis.metrics.items():
                if summary.standard_deviation > summary.mean * HIGH_VARIANCE_RATIO:
                    recommendations.append(
                        f"High variance detected in {name} for variant "
                        f"{analysis.variant_id}. Investigate potential causes"
                    )
        return recommendations

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_state(self) -> int:
        """
        Restore tests and their results from the store.

        Assignments are recomputed from the hash on demand.

        Returns:
            Number of tests loaded
        """
        if self.store is None:
            return 0
        try:
            keys = [k for k in self.store.keys(EXPERIMENT_KEY_PREFIX) if k.endswith("/config")]
        except StorageFailure as e:
            logger.error(f"Could not list persisted experiments: {e}")
            return 0

        loaded = 0
        for key in keys:
            data = safe_get(self.store, key)
            if not data:
                continue
            test = ABTestConfig.from_dict(data)
            results = self._load_results(test.test_id)
            aggregators = {
                v.variant_id: self._build_aggregator(v.ensemble_config) for v in test.variants
            }
            with self._lock:
                self._tests[test.test_id] = test
                self._results[test.test_id] = results
                self._aggregators[test.test_id] = aggregators
                self._assignments.setdefault(test.test_id, {})
            loaded += 1

        logger.info(f"Loaded {loaded} experiments from store")
        return loaded

    def _load_results(self, test_id: str) -> List[ABTestResult]:
        try:
            keys = self.store.keys(results_prefix(test_id))
        except StorageFailure as e:
            logger.error(f"Could not list results of test {test_id}: {e}")
            return []
        documents = [safe_get(self.store, key) for key in keys]
        return [ABTestResult.from_dict(d) for d in documents if d]
