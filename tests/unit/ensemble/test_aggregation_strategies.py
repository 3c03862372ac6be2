"""
Unit tests for aggregation strategies.
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from foresight.ensemble import AggregationStrategy, aggregate, resolve_strategy
from foresight.ensemble.strategies import (
    NotCombinableError,
    combine_values,
    stacking,
    voting,
    weighted_average,
)
from foresight.prediction import ModelPrediction, PredictionContext

CONTEXT = PredictionContext(user_id="u", task_type="coding", hour_of_day=9)

numeric_predictions = st.lists(
    st.tuples(
        st.floats(min_value=-1e6, max_value=1e6, allow_nan=False),
        st.floats(min_value=0.0, max_value=1.0),
    ),
    min_size=1,
    max_size=8,
)


def _predictions(pairs):
    return [
        ModelPrediction(predictor_id=f"p{i}", value=v, confidence=c, context=CONTEXT)
        for i, (v, c) in enumerate(pairs)
    ]


class TestCombineValues:
    """Tests for combine_values."""

    def test_numbers(self):
        assert combine_values([0.8, 0.4], [0.9, 0.1]) == pytest.approx(0.76)

    def test_sequences_elementwise(self):
        assert combine_values([[1, 2], [3]], [1, 1]) == [2, 2]

    def test_dicts_per_key(self):
        result = combine_values([{"a": 1, "b": 4}, {"a": 3}], [1, 1])
        assert result == {"a": 2, "b": 4}

    def test_zero_weights_fall_back_to_uniform(self):
        assert combine_values([2, 4], [0, 0]) == 3

    def test_mixed_types_not_combinable(self):
        with pytest.raises(NotCombinableError):
            combine_values([1, "one"], [1, 1])


class TestWeightedAverage:
    """Tests for the weighted_average strategy."""

    def test_two_predictions(self, make_prediction):
        result = weighted_average(
            [make_prediction("a", 0.8, 0.9), make_prediction("b", 0.4, 0.1)]
        )
        assert result.value == pytest.approx(0.76)
        assert result.confidence == pytest.approx(0.5)
        assert result.method is AggregationStrategy.WEIGHTED_AVERAGE

    def test_categorical_falls_back_to_strongest(self, make_prediction):
        result = weighted_average(
            [make_prediction("a", "spam", 0.4), make_prediction("b", "ham", 0.7)]
        )
        assert result.value == "ham"


class TestVoting:
    """Tests for the voting strategy."""

    def test_heaviest_group_wins(self, make_prediction):
        result = voting(
            [
                make_prediction("a", "spam", 0.4),
                make_prediction("b", "spam", 0.4),
                make_prediction("c", "ham", 0.7),
            ]
        )
        assert result.value == "spam"
        assert result.confidence == pytest.approx(0.8 / 3)

    def test_ties_go_to_first_seen(self, make_prediction):
        result = voting([make_prediction("a", "x", 0.5), make_prediction("b", "y", 0.5)])
        assert result.value == "x"


class TestStacking:
    """Tests for the stacking strategy."""

    def test_weights_by_accuracy(self, make_prediction):
        predictions = [make_prediction("a", 10, 0.5), make_prediction("b", 20, 0.5)]
        result = stacking(predictions, {"a": 0.75, "b": 0.25})
        assert result.value == pytest.approx(12.5)
        assert result.confidence == pytest.approx(0.5)

    def test_missing_accuracy_uses_confidence(self, make_prediction):
        predictions = [make_prediction("a", 10, 0.6), make_prediction("b", 20, 0.2)]
        result = stacking(predictions, {"a": None})
        assert result.value == pytest.approx(12.5)


class TestResolveStrategy:
    """Tests for dynamic strategy resolution."""

    def test_fixed_strategy_is_kept(self, make_prediction):
        predictions = [make_prediction("a", 1, 0.9)]
        assert resolve_strategy(AggregationStrategy.VOTING, predictions) is AggregationStrategy.VOTING

    def test_low_variance_averages(self, make_prediction):
        predictions = [make_prediction("a", 1, 0.8), make_prediction("b", 2, 0.7)]
        assert (
            resolve_strategy(AggregationStrategy.DYNAMIC, predictions)
            is AggregationStrategy.WEIGHTED_AVERAGE
        )

    def test_high_variance_with_many_votes(self, make_prediction):
        predictions = [
            make_prediction("a", 1, 1.0),
            make_prediction("b", 1, 0.0),
            make_prediction("c", 2, 1.0),
        ]
        assert (
            resolve_strategy(AggregationStrategy.DYNAMIC, predictions)
            is AggregationStrategy.VOTING
        )

    def test_high_variance_with_few_stacks(self, make_prediction):
        predictions = [make_prediction("a", 1, 1.0), make_prediction("b", 2, 0.0)]
        assert (
            resolve_strategy(AggregationStrategy.DYNAMIC, predictions)
            is AggregationStrategy.STACKING
        )


class TestAggregateProperties:
    """Property tests over every strategy."""

    @given(numeric_predictions, st.sampled_from(list(AggregationStrategy)))
    def test_confidence_is_bounded(self, pairs, strategy):
        result = aggregate(strategy, _predictions(pairs))
        assert 0.0 <= result.confidence <= 1.0

    @given(
        st.one_of(st.floats(allow_nan=False), st.text(), st.lists(st.integers())),
        st.floats(min_value=0.0, max_value=1.0),
        st.sampled_from(list(AggregationStrategy)),
    )
    def test_single_survivor_is_returned_exactly(self, value, confidence, strategy):
        result = aggregate(strategy, _predictions([(value, confidence)]))
        assert result.value == value
        assert result.confidence == confidence

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            aggregate(AggregationStrategy.VOTING, [])
