"""
Unit tests for experiment statistics helpers.
"""

import math

import pytest
from hypothesis import assume, given
from hypothesis import strategies as st

from foresight.experiments import (
    assign_bucket,
    proportion_confidence_interval,
    statistical_summary,
    two_proportion_z_test,
    z_score_for,
)
from foresight.experiments.statistics import is_significant


class TestZScores:
    """Tests for critical z lookup."""

    @pytest.mark.parametrize("level, z", [(0.90, 1.645), (0.95, 1.96), (0.99, 2.576)])
    def test_known_levels(self, level, z):
        assert z_score_for(level) == z

    def test_unknown_level_defaults(self):
        assert z_score_for(0.8) == 1.96


class TestConfidenceInterval:
    """Tests for proportion_confidence_interval."""

    def test_empty_sample(self):
        assert proportion_confidence_interval(0.5, 0) == (0.0, 0.0)

    def test_known_value(self):
        low, high = proportion_confidence_interval(0.5, 100)
        assert low == pytest.approx(0.5 - 1.96 * 0.05)
        assert high == pytest.approx(0.5 + 1.96 * 0.05)

    def test_higher_level_is_wider(self):
        narrow = proportion_confidence_interval(0.3, 50, 0.90)
        wide = proportion_confidence_interval(0.3, 50, 0.99)
        assert wide[0] < narrow[0] and wide[1] > narrow[1]

    @given(
        st.floats(min_value=0.0, max_value=1.0),
        st.integers(min_value=1, max_value=100000),
    )
    def test_bounds_within_unit_interval(self, rate, n):
        low, high = proportion_confidence_interval(rate, n)
        assert 0.0 <= low <= high <= 1.0

    @given(
        st.floats(min_value=0.01, max_value=0.99),
        st.integers(min_value=2, max_value=10000),
        st.integers(min_value=1, max_value=10000),
    )
    def test_interval_widens_as_sample_shrinks(self, rate, larger, smaller):
        assume(smaller < larger)
        large_low, large_high = proportion_confidence_interval(rate, larger)
        small_low, small_high = proportion_confidence_interval(rate, smaller)
        assert (small_high - small_low) >= (large_high - large_low)


class TestZTest:
    """Tests for the pooled two-proportion z-test."""

    def test_identical_rates(self):
        assert two_proportion_z_test(0.5, 200, 0.5, 200) == 0.0

    def test_empty_sample(self):
        assert two_proportion_z_test(0.5, 0, 0.9, 100) == 0.0

    def test_zero_standard_error(self):
        assert two_proportion_z_test(1.0, 50, 1.0, 50) == 0.0

    def test_sign_follows_variant(self):
        better = two_proportion_z_test(0.5, 100, 0.7, 100)
        worse = two_proportion_z_test(0.7, 100, 0.5, 100)
        assert better > 0
        assert worse == pytest.approx(-better)
        pooled = 0.6
        expected = 0.2 / math.sqrt(pooled * (1 - pooled) * (2 / 100))
        assert better == pytest.approx(expected)

    def test_significance_threshold(self):
        assert is_significant(2.0, 0.95)
        assert not is_significant(2.0, 0.99)
        assert is_significant(-3.0, 0.95)


class TestStatisticalSummary:
    """Tests for statistical_summary."""

    def test_summary(self):
        summary = statistical_summary([1.0, 2.0, 3.0, 4.0])
        assert summary.mean == 2.5
        assert summary.median == 2.5
        assert summary.standard_deviation == pytest.approx(math.sqrt(1.25))
        assert (summary.min, summary.max, summary.count) == (1.0, 4.0, 4)

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            statistical_summary([])


class TestAssignBucket:
    """Tests for hash bucketing."""

    @given(st.text(), st.text())
    def test_bucket_is_stable_and_in_range(self, user_id, test_id):
        bucket = assign_bucket(user_id, test_id)
        assert 0 <= bucket < 100
        assert assign_bucket(user_id, test_id) == bucket

    def test_buckets_spread_across_users(self):
        buckets = {assign_bucket(f"user-{i}", "test") for i in range(500)}
        assert len(buckets) > 80
