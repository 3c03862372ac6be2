"""
Unit tests for ConfidenceScorer.

Tests component scoring, factors, the calibration ledger and persistence.
"""

from datetime import timedelta

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from foresight.errors import StorageFailure
from foresight.persistence import InMemoryStateStore
from foresight.prediction import ModelPrediction, PredictionContext
from foresight.scoring import CALIBRATION_KEY, ConfidenceScorer


class FailingStore(InMemoryStateStore):
    """Store whose writes always fail."""

    def put(self, key, value):
        raise StorageFailure(key, "write", "disk full")


class TestCalculateConfidence:
    """Tests for calculate_confidence."""

    def test_two_agreeing_predictors_on_fresh_scorer(self, make_prediction, context, fixed_clock):
        scorer = ConfidenceScorer(clock=fixed_clock)
        score = scorer.calculate_confidence(
            [make_prediction("a", 5, 0.9), make_prediction("b", 5, 0.8)], context
        )

        assert score.components.model_agreement == 1.0
        assert score.components.historical_accuracy == 0.5
        assert score.components.context_match == 0.3
        assert score.components.data_quality == 0.3
        # Defaults for history, data quality and context pull the score down
        assert score.overall < 0.8
        assert score.overall < 1.0
        assert score.overall == pytest.approx(0.605, abs=0.001)

    def test_single_prediction_defaults(self, make_prediction, context):
        scorer = ConfidenceScorer()
        score = scorer.calculate_confidence([make_prediction("a", 5, 0.9)], context)

        assert score.components.model_agreement == 0.5
        assert score.components.prediction_stability == 0.5
        assert score.reliability.robustness == 0.5
        assert "Single Model" in [f.name for f in score.factors]

    def test_disagreement_lowers_agreement(self, make_prediction, context):
        scorer = ConfidenceScorer()
        score = scorer.calculate_confidence(
            [make_prediction("a", "spam", 0.9), make_prediction("b", [1, 2], 0.9)], context
        )
        assert score.components.model_agreement < 0.5

    def test_historical_accuracy_from_ledger(self, make_prediction, context):
        scorer = ConfidenceScorer()
        for _ in range(10):
            scorer.update_calibration("a", 0.9, 0.95, context)

        score = scorer.calculate_confidence([make_prediction("a", 5, 0.9)], context)
        assert score.components.historical_accuracy == pytest.approx(0.95)
        assert "Strong Historical Performance" in [f.name for f in score.factors]

    def test_seen_context_improves_context_match(self, make_prediction, context):
        scorer = ConfidenceScorer()
        scorer.update_calibration("a", 0.9, 1.0, context)

        score = scorer.calculate_confidence([make_prediction("a", 5, 0.9)], context)
        assert score.components.context_match == pytest.approx(1.0)
        assert score.reliability.coverage == pytest.approx(0.1)

    def test_data_quality_uses_historical_records(self, make_prediction, context, fixed_now):
        scorer = ConfidenceScorer(clock=lambda: fixed_now)
        records = [
            {"value": i, "timestamp": (fixed_now - timedelta(days=1)).isoformat()}
            for i in range(10)
        ]
        score = scorer.calculate_confidence(
            [make_prediction("a", 5, 0.9)], context, historical_data=records
        )
        assert score.components.data_quality > 0.3

    def test_factors_sorted_by_impact(self, make_prediction):
        busy = PredictionContext(
            user_id="u", task_type="coding", hour_of_day=3, workload_level="high"
        )
        scorer = ConfidenceScorer()
        score = scorer.calculate_confidence(
            [ModelPrediction("a", 5, 0.9, busy)], busy
        )
        impacts = [abs(f.impact) for f in score.factors]
        assert impacts == sorted(impacts, reverse=True)
        assert "High Workload Context" in [f.name for f in score.factors]

    def test_explanation_mentions_components(self, make_prediction, context):
        score = ConfidenceScorer().calculate_confidence(
            [make_prediction("a", 5, 0.9), make_prediction("b", 5, 0.8)], context
        )
        text = score.explanation()
        assert "Overall Confidence" in text
        assert "Model Agreement" in text

    @settings(max_examples=50, deadline=None)
    @given(
        st.lists(
            st.tuples(
                st.one_of(st.integers(-100, 100), st.text(max_size=5)),
                st.floats(min_value=0.0, max_value=1.0),
            ),
            min_size=1,
            max_size=6,
        )
    )
    def test_overall_is_bounded(self, pairs):
        ctx = PredictionContext(user_id="u", task_type="coding", hour_of_day=10)
        predictions = [ModelPrediction(f"p{i}", v, c, ctx) for i, (v, c) in enumerate(pairs)]
        score = ConfidenceScorer().calculate_confidence(predictions, ctx)
        assert 0.0 <= score.overall <= 1.0
        for value in score.components.as_dict().values():
            assert 0.0 <= value <= 1.0


class TestCalibration:
    """Tests for the calibration ledger and bins."""

    def test_ledger_is_fifo_bounded(self, context):
        scorer = ConfidenceScorer()
        for i in range(1005):
            scorer.update_calibration(f"p{i}", 0.5, 0.5, context)

        ledger = scorer.get_ledger()
        assert len(ledger) == 1000
        assert ledger[0].predictor_id == "p5"
        assert ledger[-1].predictor_id == "p1004"

    def test_bins_track_running_averages(self, context):
        scorer = ConfidenceScorer()
        scorer.update_calibration("a", 0.85, 1.0, context)
        scorer.update_calibration("a", 0.75, 0.5, context)
        scorer.update_calibration("a", 1.0, 1.0, context)

        bins = scorer.get_calibration_bins()
        assert bins[8].count == 1
        assert bins[7].average_accuracy == pytest.approx(0.5)
        # Confidence 1.0 lands in the last bin
        assert bins[9].count == 1

    def test_calibration_metrics(self, make_prediction, context):
        scorer = ConfidenceScorer()
        scorer.update_calibration("a", 0.9, 0.5, context)
        scorer.update_calibration("a", 0.25, 0.5, context)

        metrics = scorer.calibration_summary().metrics
        assert metrics.calibration_error == pytest.approx((0.4 + 0.25) / 2)
        assert metrics.overconfidence == pytest.approx(0.5)
        assert metrics.underconfidence == pytest.approx(0.5)

    def test_inputs_are_clamped(self, context):
        scorer = ConfidenceScorer()
        scorer.update_calibration("a", 1.4, -0.2, context)
        entry = scorer.get_ledger()[0]
        assert entry.predicted_confidence == 1.0
        assert entry.actual_accuracy == 0.0

    def test_summary_text(self, context):
        scorer = ConfidenceScorer()
        scorer.update_calibration("a", 0.55, 0.6, context)
        assert "Ledger Entries: 1" in scorer.calibration_summary().summary()


class TestPersistence:
    """Tests for calibration persistence."""

    def test_state_survives_restart(self, context):
        store = InMemoryStateStore()
        scorer = ConfidenceScorer(store=store)
        scorer.update_calibration("a", 0.9, 0.8, context)
        scorer.update_calibration("b", 0.3, 0.4, context)

        restored = ConfidenceScorer(store=store)
        assert restored.load_state() is True
        assert [e.predictor_id for e in restored.get_ledger()] == ["a", "b"]
        assert restored.get_calibration_bins()[9].count == 1

    def test_load_without_state(self):
        assert ConfidenceScorer(store=InMemoryStateStore()).load_state() is False

    def test_storage_failure_keeps_serving(self, context):
        scorer = ConfidenceScorer(store=FailingStore())
        scorer.update_calibration("a", 0.9, 0.8, context)

        assert len(scorer.get_ledger()) == 1
        assert scorer.store.get(CALIBRATION_KEY) is None
