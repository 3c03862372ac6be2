"""
Ensemble aggregator.

Runs every enabled predictor of an ensemble concurrently against one
input/context pair, scores each answer, drops those below the confidence
floor and combines the survivors into a single AggregatedPrediction.

Predictor faults (exceptions, malformed output, timeouts) are isolated: they
become PredictorError records on the result and never abort the call unless
no predictor survives.
"""

from __future__ import annotations

import statistics
import threading
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import datetime
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Deque,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from foresight.config import config as global_config
from foresight.ensemble.ensemble_schemas import (
    EnsembleConfig,
    PerformanceRecord,
    PredictorConfig,
    PredictorPerformanceReport,
)
from foresight.ensemble.predictors import Predictor
from foresight.ensemble.strategies import aggregate
from foresight.errors import ForesightError, NoViableModelsError, PredictorError
from foresight.logging import get_component_logger, log_prediction_event, performance_monitor
from foresight.prediction.schemas import (
    AggregatedPrediction,
    AggregationMetadata,
    ModelPrediction,
    PredictionContext,
)
from foresight.prediction.similarity import clamp, is_number, prediction_accuracy
from foresight.selection.selection_schemas import PerformanceObservation

if TYPE_CHECKING:
    from foresight.scoring.confidence_scorer import ConfidenceScorer
    from foresight.selection.model_selector import DynamicModelSelector

logger = get_component_logger("ensemble")


class EnsembleAggregator:
    """
    Combines the outputs of several predictors into one decision.

    Example:
        >>> aggregator = EnsembleAggregator(
        ...     EnsembleConfig(predictors=[PredictorConfig("fast", "linear")]),
        ...     predictors={"linear": FunctionPredictor(lambda x, ctx: (x * 2, 0.9))},
        ... )
        >>> aggregator.predict(21, context).value
        42
    """

    def __init__(
        self,
        config: EnsembleConfig,
        predictors: Mapping[str, Predictor],
        selector: Optional["DynamicModelSelector"] = None,
        scorer: Optional["ConfidenceScorer"] = None,
        clock: Optional[Callable[[], datetime]] = None,
        history_size: Optional[int] = None,
        max_workers: Optional[int] = None,
    ):
        """
        Initialize the aggregator.

        Args:
            config: Ensemble configuration
            predictors: Registry of predictor implementations keyed by predictor type
            selector: Optional selector told about invocations and outcomes
            scorer: Optional scorer fed calibration observations on outcomes
            clock: Source of the current time
            history_size: Outcome records kept per predictor
            max_workers: Concurrent predictor invocations
        """
        self.config = config
        self._predictors = dict(predictors)
        self.selector = selector
        self.scorer = scorer
        self._clock = clock or datetime.now
        self.history_size = history_size or global_config.ensemble.history_size
        self._max_workers = max_workers or global_config.ensemble.max_workers

        self._history: Dict[str, Deque[PerformanceRecord]] = {}
        self._lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        # Calls abandoned after a timeout that are still running, by predictor id
        self._abandoned: Dict[str, Future] = {}

        logger.info(
            f"EnsembleAggregator initialized: {len(config.predictors)} predictors, "
            f"strategy={config.aggregation_strategy.value}, "
            f"threshold={config.confidence_threshold}"
        )

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="predictor_"
                )
            return self._executor

    def _submit(self, *args: Any) -> Tuple[Future, ThreadPoolExecutor]:
        while True:
            executor = self._get_executor()
            try:
                return executor.submit(_timed_call, *args), executor
            except RuntimeError:
                # Retired by a concurrent timeout; anything else is a real shutdown
                with self._executor_lock:
                    if self._executor is executor:
                        raise

    def _abandon(self, predictor_id: str, future: Future, executor: ThreadPoolExecutor) -> None:
        """
        Give up on a timed-out call.

        The worker keeps running, so the pool it occupies is retired and the
        next call gets a fresh one. The predictor is skipped until the
        abandoned call returns.
        """
        with self._executor_lock:
            self._abandoned[predictor_id] = future
            if self._executor is executor:
                executor.shutdown(wait=False)
                self._executor = None
        future.add_done_callback(lambda done: self._release(predictor_id, done))

    def _release(self, predictor_id: str, future: Future) -> None:
        with self._executor_lock:
            if self._abandoned.get(predictor_id) is future:
                del self._abandoned[predictor_id]

    def _is_busy(self, predictor_id: str) -> bool:
        with self._executor_lock:
            return predictor_id in self._abandoned

    def close(self) -> None:
        """Release the worker threads. Predictors still running are abandoned."""
        with self._executor_lock:
            if self._executor is not None:
                self._executor.shutdown(wait=False)
                self._executor = None

    def __enter__(self) -> "EnsembleAggregator":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    @performance_monitor(threshold_ms=2000.0, component="ensemble")
    def predict(
        self,
        input_data: Any,
        context: PredictionContext,
        timeout: Optional[float] = None,
    ) -> AggregatedPrediction:
        """
        Run the ensemble and combine the surviving predictions.

        Args:
            input_data: Input passed through to every predictor
            context: Situation the prediction is made in
            timeout: Per-predictor timeout in seconds (config default if None)

        Returns:
            AggregatedPrediction with the combined value and confidence

        Raises:
            NoViableModelsError: If no prediction reaches the confidence threshold
        """
        timeout = timeout if timeout is not None else self.config.predictor_timeout_seconds
        entries = [
            entry
            for entry in self.config.predictors
            if entry.enabled and entry.matches(context.filter_string)
        ]

        predictions, failures = self._invoke_all(entries, input_data, context, timeout)

        survivors = [
            p for p in predictions if p.confidence >= self.config.confidence_threshold
        ]
        if not survivors:
            attempted = [entry.predictor_id for entry in entries]
            logger.warning(
                f"No predictor met confidence threshold {self.config.confidence_threshold} "
                f"({len(predictions)} answered, {len(failures)} failed)"
            )
            raise NoViableModelsError(
                "No models meet confidence threshold",
                attempted=attempted,
                failures=failures,
            )

        accuracies = {
            p.predictor_id: self.historical_accuracy(p.predictor_id, context)
            for p in survivors
        }
        combined = aggregate(self.config.aggregation_strategy, survivors, accuracies)

        result = AggregatedPrediction(
            value=combined.value,
            confidence=combined.confidence,
            contributing_models=[p.predictor_id for p in survivors],
            aggregation_method=combined.method.value,
            metadata=AggregationMetadata(
                model_scores={p.predictor_id: p.confidence for p in survivors},
                context_match=clamp(self.context_match_factor(context)),
                timestamp=self._clock(),
            ),
            predictions=tuple(survivors),
            failures=tuple(failures),
        )

        log_prediction_event(
            logger,
            "aggregated",
            strategy=combined.method.value,
            survivors=len(survivors),
            failures=len(failures),
            confidence=result.confidence,
        )

        self._notify_invocations([p.predictor_id for p in survivors], context)
        return result

    def _invoke_all(
        self,
        entries: Sequence[PredictorConfig],
        input_data: Any,
        context: PredictionContext,
        timeout: float,
    ) -> Tuple[List[ModelPrediction], List[PredictorError]]:
        """Invoke predictors concurrently, keeping configuration order in the output."""
        failures: List[PredictorError] = []
        pending: List[Tuple[PredictorConfig, Future, ThreadPoolExecutor, float]] = []

        for entry in entries:
            predictor = self._predictors.get(entry.predictor_type)
            if predictor is None:
                failures.append(
                    self._record_failure(
                        entry.predictor_id,
                        "UnknownPredictorType",
                        f"No predictor registered for type '{entry.predictor_type}'",
                    )
                )
                continue
            if self._is_busy(entry.predictor_id):
                failures.append(
                    self._record_failure(
                        entry.predictor_id,
                        "PredictorBusy",
                        "Previous call is still running after a timeout",
                    )
                )
                continue
            future, executor = self._submit(predictor, input_data, context)
            pending.append((entry, future, executor, time.monotonic() + timeout))

        predictions: List[ModelPrediction] = []
        for entry, future, executor, deadline in pending:
            try:
                output, latency_ms = future.result(timeout=max(0.0, deadline - time.monotonic()))
            except FuturesTimeoutError:
                if not future.cancel():
                    self._abandon(entry.predictor_id, future, executor)
                failures.append(
                    self._record_failure(
                        entry.predictor_id,
                        "TimeoutError",
                        f"No answer within {timeout:.2f}s",
                    )
                )
                continue
            except Exception as e:
                failures.append(
                    self._record_failure(entry.predictor_id, type(e).__name__, str(e))
                )
                continue

            if not _is_valid_output(output):
                failures.append(
                    self._record_failure(
                        entry.predictor_id,
                        "InvalidPredictorOutput",
                        f"Expected (value, confidence), got {output!r}",
                    )
                )
                continue

            value, raw_confidence = output
            predictions.append(
                ModelPrediction(
                    predictor_id=entry.predictor_id,
                    value=value,
                    confidence=self.model_confidence(entry, context),
                    context=context,
                    timestamp=self._clock(),
                    raw_confidence=float(raw_confidence),
                    latency_ms=latency_ms,
                )
            )

        return predictions, failures

    def _record_failure(self, predictor_id: str, error_type: str, message: str) -> PredictorError:
        logger.warning(f"Predictor {predictor_id} failed: {error_type} - {message}")
        return PredictorError(predictor_id=predictor_id, error_type=error_type, message=message)

    def model_confidence(self, entry: PredictorConfig, context: PredictionContext) -> float:
        """
        Effective confidence of a predictor in a context.

        weight x historical accuracy (when known) x context-match factor,
        clamped to [0, 1].
        """
        confidence = entry.weight
        accuracy = self.historical_accuracy(entry.predictor_id, context)
        if accuracy is not None:
            confidence *= accuracy
        confidence *= self.context_match_factor(context)
        return clamp(confidence)

    def context_match_factor(self, context: PredictionContext) -> float:
        """Product of the context weights matching this context (1.0 if none do)."""
        tokens = (
            context.task_type,
            context.workload_level,
            f"hour_{context.time_bucket}",
        )
        factor = 1.0
        for token in tokens:
            if token in self.config.context_weights:
                factor *= self.config.context_weights[token]
        return factor

    def _notify_invocations(self, predictor_ids: List[str], context: PredictionContext) -> None:
        if self.selector is None:
            return
        try:
            self.selector.record_invocations(predictor_ids, context)
        except ForesightError as e:
            logger.error(f"Could not record invocations with selector: {e}")

    # ------------------------------------------------------------------
    # Outcomes and history
    # ------------------------------------------------------------------

    def record_prediction_outcome(
        self,
        predictor_id: str,
        predicted: Any,
        actual: Any,
        context: PredictionContext,
        confidence: Optional[float] = None,
        latency_ms: float = 0.0,
    ) -> float:
        """
        Record how accurate one predictor turned out to be.

        Args:
            predictor_id: Predictor that made the prediction
            predicted: Value it predicted
            actual: Observed outcome
            context: Context the prediction was made in
            confidence: Confidence attached to the prediction, fed to calibration
            latency_ms: Time the predictor took

        Returns:
            Accuracy in [0, 1]
        """
        accuracy = prediction_accuracy(predicted, actual)
        record = PerformanceRecord(
            predictor_id=predictor_id,
            accuracy=accuracy,
            context_key=context.context_key,
            timestamp=self._clock(),
        )
        with self._lock:
            history = self._history.get(predictor_id)
            if history is None:
                history = deque(maxlen=self.history_size)
                self._history[predictor_id] = history
            history.append(record)

        logger.debug(f"Recorded outcome for {predictor_id}: accuracy={accuracy:.3f}")

        if self.selector is not None:
            self.selector.update_model_performance(
                predictor_id,
                context,
                PerformanceObservation(accuracy=accuracy, latency_ms=latency_ms, success=True),
            )
        if self.scorer is not None and confidence is not None:
            self.scorer.update_calibration(predictor_id, confidence, accuracy, context)

        return accuracy

    def historical_accuracy(
        self, predictor_id: str, context: PredictionContext
    ) -> Optional[float]:
        """Mean recorded accuracy of a predictor for this context key, None if unknown."""
        with self._lock:
            history = list(self._history.get(predictor_id, ()))
        matching = [r.accuracy for r in history if r.context_key == context.context_key]
        if not matching:
            return None
        return statistics.mean(matching)

    def get_history(self, predictor_id: str) -> List[PerformanceRecord]:
        with self._lock:
            return list(self._history.get(predictor_id, ()))

    def get_model_performance_report(self) -> Dict[str, PredictorPerformanceReport]:
        """Accuracy summary for every configured predictor."""
        with self._lock:
            snapshot = {pid: list(records) for pid, records in self._history.items()}

        report: Dict[str, PredictorPerformanceReport] = {}
        for entry in self.config.predictors:
            records = snapshot.get(entry.predictor_id, [])
            accuracies = [r.accuracy for r in records]
            report[entry.predictor_id] = PredictorPerformanceReport(
                predictor_id=entry.predictor_id,
                average_accuracy=statistics.mean(accuracies) if accuracies else 0.0,
                min_accuracy=min(accuracies) if accuracies else 0.0,
                max_accuracy=max(accuracies) if accuracies else 0.0,
                sample_count=len(records),
                last_updated=records[-1].timestamp if records else None,
            )
        return report


def _timed_call(
    predictor: Predictor, input_data: Any, context: PredictionContext
) -> Tuple[Any, float]:
    start = time.perf_counter()
    output = predictor.predict(input_data, context)
    return output, (time.perf_counter() - start) * 1000


def _is_valid_output(output: Any) -> bool:
    return (
        isinstance(output, tuple)
        and len(output) == 2
        and is_number(output[1])
    )
