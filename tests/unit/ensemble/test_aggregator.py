"""
Unit tests for EnsembleAggregator.

Tests concurrent invocation, failure isolation, thresholding, per-predictor
confidence and outcome recording.
"""

import threading
import time

import pytest

from foresight.ensemble import (
    AggregationStrategy,
    EnsembleAggregator,
    EnsembleConfig,
    FunctionPredictor,
    PredictorConfig,
)
from foresight.errors import NoViableModelsError, PredictorFailure
from foresight.scoring import ConfidenceScorer
from foresight.selection import DynamicModelSelector


def _config(*entries, strategy=AggregationStrategy.WEIGHTED_AVERAGE, **kwargs):
    return EnsembleConfig(predictors=list(entries), aggregation_strategy=strategy, **kwargs)


class TestPredict:
    """Tests for EnsembleAggregator.predict."""

    def test_weighted_average_of_two_predictors(self, context, constant_predictor):
        config = _config(
            PredictorConfig("high", "high", weight=0.9),
            PredictorConfig("low", "low", weight=0.1),
            confidence_threshold=0.0,
        )
        predictors = {"high": constant_predictor(0.8), "low": constant_predictor(0.4)}
        with EnsembleAggregator(config, predictors) as aggregator:
            result = aggregator.predict(None, context)

        assert result.value == pytest.approx(0.76)
        assert result.contributing_models == ["high", "low"]
        assert result.aggregation_method == "weighted_average"
        assert result.metadata.model_scores == {"high": 0.9, "low": 0.1}

    def test_single_survivor_value_is_exact(self, context, constant_predictor):
        config = _config(
            PredictorConfig("a", "a", weight=0.9),
            PredictorConfig("b", "b", weight=0.1),
            confidence_threshold=0.5,
        )
        predictors = {"a": constant_predictor([1, 2, 3]), "b": constant_predictor([9, 9, 9])}
        with EnsembleAggregator(config, predictors) as aggregator:
            result = aggregator.predict(None, context)

        assert result.value == [1, 2, 3]
        assert result.confidence == pytest.approx(0.9)
        assert result.contributing_models == ["a"]

    def test_raw_confidence_is_kept_but_not_used(self, context, constant_predictor):
        config = _config(PredictorConfig("a", "a", weight=0.6))
        predictors = {"a": constant_predictor(5, confidence=0.1)}
        with EnsembleAggregator(config, predictors) as aggregator:
            result = aggregator.predict(None, context)

        assert result.predictions[0].raw_confidence == 0.1
        assert result.predictions[0].confidence == pytest.approx(0.6)

    def test_disabled_and_filtered_predictors_skipped(self, context, constant_predictor):
        calls = []

        def tracked(value):
            def fn(_input, _ctx):
                calls.append(value)
                return value, 1.0

            return FunctionPredictor(fn)

        config = _config(
            PredictorConfig("on", "on"),
            PredictorConfig("off", "off", enabled=False),
            PredictorConfig("writing_only", "writing", context_filters=["writing"]),
        )
        predictors = {"on": tracked("on"), "off": tracked("off"), "writing": tracked("writing")}
        with EnsembleAggregator(config, predictors) as aggregator:
            aggregator.predict(None, context)

        assert calls == ["on"]

    def test_input_is_passed_through(self, context):
        config = _config(PredictorConfig("double", "double"))
        predictors = {"double": FunctionPredictor(lambda x, _ctx: (x * 2, 0.9))}
        with EnsembleAggregator(config, predictors) as aggregator:
            assert aggregator.predict(21, context).value == 42

    def test_predictors_run_concurrently(self, context):
        barrier = threading.Barrier(2, timeout=2)

        def waits(_input, _ctx):
            barrier.wait()
            return 1, 1.0

        config = _config(PredictorConfig("a", "waits"), PredictorConfig("b", "waits"))
        with EnsembleAggregator(config, {"waits": FunctionPredictor(waits)}) as aggregator:
            result = aggregator.predict(None, context)

        assert result.contributing_models == ["a", "b"]


class TestFailureIsolation:
    """Tests that single predictor faults never fail the call."""

    def test_exception_recorded_as_failure(self, context, constant_predictor):
        def broken(_input, _ctx):
            raise RuntimeError("model crashed")

        config = _config(PredictorConfig("ok", "ok"), PredictorConfig("broken", "broken"))
        predictors = {"ok": constant_predictor(3), "broken": FunctionPredictor(broken)}
        with EnsembleAggregator(config, predictors) as aggregator:
            result = aggregator.predict(None, context)

        assert result.value == 3
        assert result.has_failures
        failure = result.failures[0]
        assert failure.predictor_id == "broken"
        assert failure.error_type == "RuntimeError"
        assert "model crashed" in failure.message

    def test_predictor_failure_is_isolated(self, context, constant_predictor):
        def gives_up(_input, _ctx):
            raise PredictorFailure("gives_up", "no data")

        config = _config(PredictorConfig("ok", "ok"), PredictorConfig("gives_up", "gives_up"))
        predictors = {"ok": constant_predictor(3), "gives_up": FunctionPredictor(gives_up)}
        with EnsembleAggregator(config, predictors) as aggregator:
            result = aggregator.predict(None, context)

        assert result.failures[0].error_type == "PredictorFailure"

    def test_timeout_recorded_as_failure(self, context, constant_predictor):
        def slow(_input, _ctx):
            time.sleep(0.5)
            return 1, 1.0

        config = _config(PredictorConfig("fast", "fast"), PredictorConfig("slow", "slow"))
        predictors = {"fast": constant_predictor(2), "slow": FunctionPredictor(slow)}
        with EnsembleAggregator(config, predictors) as aggregator:
            result = aggregator.predict(None, context, timeout=0.05)

        assert result.value == 2
        assert [f.error_type for f in result.failures] == ["TimeoutError"]

    def test_hung_predictor_does_not_starve_later_calls(self, context, constant_predictor):
        release = threading.Event()

        def hangs(_input, _ctx):
            release.wait(5)
            return 1, 1.0

        config = _config(PredictorConfig("hung", "hung"), PredictorConfig("fast", "fast"))
        predictors = {"hung": FunctionPredictor(hangs), "fast": constant_predictor(2)}
        try:
            with EnsembleAggregator(config, predictors, max_workers=2) as aggregator:
                results = [aggregator.predict(None, context, timeout=0.2) for _ in range(4)]
        finally:
            release.set()

        assert [r.contributing_models for r in results] == [["fast"]] * 4
        assert results[0].failures[0].error_type == "TimeoutError"
        assert [r.failures[0].error_type for r in results[1:]] == ["PredictorBusy"] * 3

    def test_predictor_rejoins_once_abandoned_call_returns(self, context, constant_predictor):
        release = threading.Event()
        calls = []

        def first_call_hangs(_input, _ctx):
            calls.append(1)
            if len(calls) == 1:
                release.wait(5)
            return 1, 1.0

        config = _config(PredictorConfig("slow", "slow"), PredictorConfig("fast", "fast"))
        predictors = {"slow": FunctionPredictor(first_call_hangs), "fast": constant_predictor(1)}
        with EnsembleAggregator(config, predictors) as aggregator:
            try:
                first = aggregator.predict(None, context, timeout=0.1)
            finally:
                release.set()

            deadline = time.monotonic() + 2.0
            result = aggregator.predict(None, context, timeout=1.0)
            while "slow" not in result.contributing_models and time.monotonic() < deadline:
                time.sleep(0.01)
                result = aggregator.predict(None, context, timeout=1.0)

        assert first.contributing_models == ["fast"]
        assert result.contributing_models == ["slow", "fast"]

    def test_malformed_output(self, context):
        config = _config(PredictorConfig("bad", "bad"), PredictorConfig("good", "good"))
        predictors = {
            "bad": FunctionPredictor(lambda _i, _c: "not a tuple"),
            "good": FunctionPredictor(lambda _i, _c: (1, 0.5)),
        }
        with EnsembleAggregator(config, predictors) as aggregator:
            result = aggregator.predict(None, context)

        assert result.failures[0].error_type == "InvalidPredictorOutput"

    def test_unknown_predictor_type(self, context, constant_predictor):
        config = _config(PredictorConfig("a", "a"), PredictorConfig("ghost", "missing"))
        with EnsembleAggregator(config, {"a": constant_predictor(1)}) as aggregator:
            result = aggregator.predict(None, context)

        assert result.failures[0].error_type == "UnknownPredictorType"

    def test_no_survivors_raises(self, context, constant_predictor):
        def broken(_input, _ctx):
            raise ValueError("bad input")

        config = _config(
            PredictorConfig("weak", "weak", weight=0.1),
            PredictorConfig("broken", "broken"),
            confidence_threshold=0.3,
        )
        predictors = {"weak": constant_predictor(1), "broken": FunctionPredictor(broken)}
        with EnsembleAggregator(config, predictors) as aggregator:
            with pytest.raises(NoViableModelsError) as exc_info:
                aggregator.predict(None, context)

        error = exc_info.value
        assert error.attempted == ["weak", "broken"]
        assert [f.predictor_id for f in error.failures] == ["broken"]
        assert "Attempted predictors" in str(error)


class TestModelConfidence:
    """Tests for per-predictor effective confidence."""

    def test_weight_times_history_times_context(self, context, constant_predictor):
        config = _config(
            PredictorConfig("a", "a", weight=0.8),
            context_weights={"coding": 0.5, "medium": 2.0, "hour_2": 0.9},
        )
        aggregator = EnsembleAggregator(config, {"a": constant_predictor(10)})
        aggregator.record_prediction_outcome("a", 9, 10, context)

        assert aggregator.context_match_factor(context) == pytest.approx(0.9)
        assert aggregator.model_confidence(config.predictors[0], context) == pytest.approx(
            0.8 * 0.9 * 0.9
        )

    def test_confidence_is_clamped(self, context, constant_predictor):
        config = _config(PredictorConfig("a", "a", weight=3.0))
        aggregator = EnsembleAggregator(config, {"a": constant_predictor(1)})
        assert aggregator.model_confidence(config.predictors[0], context) == 1.0

    def test_metadata_context_match_is_clamped(self, context, constant_predictor):
        config = _config(PredictorConfig("a", "a", weight=0.2), context_weights={"coding": 3.0})
        with EnsembleAggregator(config, {"a": constant_predictor(1)}) as aggregator:
            result = aggregator.predict(None, context)

        assert aggregator.context_match_factor(context) == pytest.approx(3.0)
        assert result.metadata.context_match == 1.0
        assert result.confidence == pytest.approx(0.6)

    def test_history_only_counts_same_context_key(self, context, constant_predictor):
        from foresight.prediction import PredictionContext

        other = PredictionContext(user_id="user-1", task_type="writing", hour_of_day=10)
        aggregator = EnsembleAggregator(
            _config(PredictorConfig("a", "a")), {"a": constant_predictor(1)}
        )
        aggregator.record_prediction_outcome("a", 5, 10, other)

        assert aggregator.historical_accuracy("a", other) == pytest.approx(0.5)
        assert aggregator.historical_accuracy("a", context) is None


class TestOutcomes:
    """Tests for outcome recording and its propagation."""

    def test_history_is_bounded(self, context, constant_predictor):
        aggregator = EnsembleAggregator(
            _config(PredictorConfig("a", "a")), {"a": constant_predictor(1)}, history_size=5
        )
        for actual in range(1, 11):
            aggregator.record_prediction_outcome("a", actual, actual, context)

        assert len(aggregator.get_history("a")) == 5

    def test_outcome_updates_selector_and_scorer(self, context, constant_predictor, fixed_clock):
        selector = DynamicModelSelector(clock=fixed_clock)
        scorer = ConfidenceScorer(clock=fixed_clock)
        aggregator = EnsembleAggregator(
            _config(PredictorConfig("a", "a")),
            {"a": constant_predictor(1)},
            selector=selector,
            scorer=scorer,
        )

        accuracy = aggregator.record_prediction_outcome(
            "a", 8, 10, context, confidence=0.9, latency_ms=12.0
        )

        assert accuracy == pytest.approx(0.8)
        metrics = selector.get_performance_history()["a"]
        assert metrics.accuracy == pytest.approx(0.8)
        assert metrics.average_latency == pytest.approx(12.0)
        ledger = scorer.get_ledger()
        assert len(ledger) == 1
        assert ledger[0].predicted_confidence == pytest.approx(0.9)

    def test_predict_records_invocations(self, context, constant_predictor):
        selector = DynamicModelSelector()
        config = _config(PredictorConfig("a", "a"), PredictorConfig("b", "b"))
        predictors = {"a": constant_predictor(1), "b": constant_predictor(1)}
        with EnsembleAggregator(config, predictors, selector=selector) as aggregator:
            aggregator.predict(None, context)
            aggregator.predict(None, context)

        assert selector.get_invocation_count("a") == 2
        assert selector.get_performance_history() == {}

    def test_performance_report(self, context, constant_predictor):
        config = _config(PredictorConfig("a", "a"), PredictorConfig("b", "b"))
        aggregator = EnsembleAggregator(
            config, {"a": constant_predictor(1), "b": constant_predictor(1)}
        )
        aggregator.record_prediction_outcome("a", 10, 10, context)
        aggregator.record_prediction_outcome("a", 5, 10, context)

        report = aggregator.get_model_performance_report()
        assert report["a"].average_accuracy == pytest.approx(0.75)
        assert report["a"].min_accuracy == pytest.approx(0.5)
        assert report["a"].sample_count == 2
        assert report["b"].sample_count == 0
        assert report["b"].last_updated is None
