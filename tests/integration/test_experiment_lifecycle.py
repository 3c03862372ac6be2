"""
Integration tests for the A/B experiment lifecycle.

Runs realistic traffic through two ensemble variants, records conversions
and checks the statistical verdict.
"""

from datetime import datetime

import pytest

from foresight.ensemble import EnsembleConfig, FunctionPredictor, PredictorConfig
from foresight.experiments import ABTestConfig, ABTestingFramework, ABTestVariant, TestStatus
from foresight.persistence import InMemoryStateStore
from foresight.prediction import PredictionContext
from foresight.scoring import ConfidenceScorer
from foresight.selection import DynamicModelSelector

NOW = datetime(2026, 5, 10, 9, 30)


def _config(test_id, minimum_sample_size=100):
    return ABTestConfig(
        test_id=test_id,
        name="Recommendation ensemble",
        variants=[
            ABTestVariant(
                "control",
                "Single model",
                EnsembleConfig(predictors=[PredictorConfig("baseline", "baseline")]),
                is_control=True,
            ),
            ABTestVariant(
                "treatment",
                "Two model vote",
                EnsembleConfig(
                    predictors=[
                        PredictorConfig("baseline_t", "baseline"),
                        PredictorConfig("challenger", "challenger"),
                    ],
                    aggregation_strategy="voting",
                ),
            ),
        ],
        traffic_split={"control": 50.0, "treatment": 50.0},
        start_date=datetime(2026, 5, 1),
        end_date=datetime(2026, 6, 1),
        minimum_sample_size=minimum_sample_size,
    )


@pytest.fixture
def framework():
    predictors = {
        "baseline": FunctionPredictor(lambda _i, _c: ("show", 0.8)),
        "challenger": FunctionPredictor(lambda _i, _c: ("show", 0.9)),
    }
    return ABTestingFramework(
        predictors,
        selector=DynamicModelSelector(),
        scorer=ConfidenceScorer(),
        store=InMemoryStateStore(),
        clock=lambda: NOW,
    )


def _run_traffic(framework, test_id, per_variant, converts):
    """
    Send users until each variant has ``per_variant`` results.

    ``converts(variant_id, index)`` decides the outcome of the index-th user
    of a variant.
    """
    counts = {"control": 0, "treatment": 0}
    i = 0
    while min(counts.values()) < per_variant:
        user_id = f"user-{i}"
        i += 1
        variant_id = framework.get_variant_assignment(test_id, user_id)
        if counts[variant_id] >= per_variant:
            continue
        context = PredictionContext(user_id=user_id, task_type="shopping", hour_of_day=9)
        framework.get_prediction(test_id, user_id, {"cart": i}, context)
        framework.record_outcome(test_id, user_id, converts(variant_id, counts[variant_id]))
        counts[variant_id] += 1


class TestExperimentLifecycle:
    """End-to-end experiment tests."""

    def test_identical_conversion_rates_have_no_winner(self, framework):
        framework.create_test(_config("same"))
        _run_traffic(framework, "same", 200, lambda _v, index: index % 2 == 0)

        analysis = framework.analyze_test("same")

        assert analysis.results["control"].sample_size == 200
        assert analysis.results["treatment"].sample_size == 200
        assert analysis.results["control"].conversion_rate == pytest.approx(0.5)
        assert analysis.results["treatment"].conversion_rate == pytest.approx(0.5)
        assert analysis.winner is None
        assert any("No statistically significant winner" in r for r in analysis.recommendations)

    def test_clearly_better_variant_wins(self, framework):
        framework.create_test(_config("better", minimum_sample_size=50))

        def converts(variant_id, index):
            if variant_id == "treatment":
                return index % 10 != 0
            return index % 2 == 0

        _run_traffic(framework, "better", 60, converts)

        analysis = framework.analyze_test("better")

        assert analysis.winner == "treatment"
        assert analysis.status is TestStatus.RUNNING
        assert analysis.recommendations[0].startswith("Implement variant treatment")
        low, high = analysis.results["treatment"].confidence_interval
        assert 0.0 <= low < 0.9 < high <= 1.0

    def test_worse_variant_never_wins(self, framework):
        framework.create_test(_config("worse", minimum_sample_size=50))

        def converts(variant_id, index):
            if variant_id == "treatment":
                return index % 10 == 0
            return index % 10 != 0

        _run_traffic(framework, "worse", 60, converts)

        assert framework.analyze_test("worse").winner is None

    def test_outcomes_reach_selector_and_scorer(self, framework):
        framework.create_test(_config("learn"))
        _run_traffic(framework, "learn", 5, lambda _v, _i: "show")

        history = framework.selector.get_performance_history()
        assert set(history) == {"baseline", "baseline_t", "challenger"}
        assert history["challenger"].accuracy == pytest.approx(1.0)
        assert len(framework.scorer.get_ledger()) == 15

    def test_metrics_summaries(self, framework):
        framework.create_test(_config("metrics"))
        _run_traffic(framework, "metrics", 3, lambda _v, _i: True)

        treatment = framework.analyze_test("metrics").results["treatment"]
        assert treatment.metrics["contributing_models_count"].mean == 2.0
        assert treatment.metrics["confidence"].count == 3
        assert treatment.total_predictions == 3

    def test_conversions_on_numeric_scores_keep_variants_serving(self):
        framework = ABTestingFramework(
            {
                "baseline": FunctionPredictor(lambda _i, _c: (0.7, 0.9)),
                "challenger": FunctionPredictor(lambda _i, _c: (0.8, 0.9)),
            },
            clock=lambda: NOW,
        )
        framework.create_test(_config("scores", minimum_sample_size=50))

        _run_traffic(framework, "scores", 100, lambda _v, index: index % 3 == 0)

        analysis = framework.analyze_test("scores")
        for variant_id in ("control", "treatment"):
            assert analysis.results[variant_id].sample_size == 100
            assert analysis.results[variant_id].conversion_rate == pytest.approx(0.34)
        assert analysis.winner is None
