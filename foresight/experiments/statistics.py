"""
Statistical helpers for experiment analysis.

Normal-approximation confidence intervals, the pooled two-proportion z-test
and stable hash-based traffic bucketing.
"""

import hashlib
import math
import statistics
from typing import Sequence, Tuple

from foresight.experiments.ab_testing_schemas import StatisticalSummary

Z_SCORES = {
    0.90: 1.645,
    0.95: 1.96,
    0.99: 2.576,
}
DEFAULT_Z_SCORE = 1.96
BUCKETS = 100


def z_score_for(confidence_level: float) -> float:
    """Critical z for a two-sided test (1.96 for levels not in the table)."""
    for level, z in Z_SCORES.items():
        if math.isclose(level, confidence_level):
            return z
    return DEFAULT_Z_SCORE


def proportion_confidence_interval(
    proportion: float, sample_size: int, confidence_level: float = 0.95
) -> Tuple[float, float]:
    """
    Normal-approximation interval for a proportion, clamped to [0, 1].

    Returns (0, 0) for an empty sample.
    """
    if sample_size <= 0:
        return (0.0, 0.0)
    margin = z_score_for(confidence_level) * math.sqrt(
        proportion * (1 - proportion) / sample_size
    )
    return (max(0.0, proportion - margin), min(1.0, proportion + margin))


def two_proportion_z_test(
    control_rate: float, control_size: int, variant_rate: float, variant_size: int
) -> float:
    """
    Pooled two-proportion z statistic of variant against control.

    Positive when the variant converts better. Returns 0 when either sample
    is empty or the standard error is 0.
    """
    if control_size <= 0 or variant_size <= 0:
        return 0.0
    pooled = (control_rate * control_size + variant_rate * variant_size) / (
        control_size + variant_size
    )
    standard_error = math.sqrt(
        pooled * (1 - pooled) * (1 / control_size + 1 / variant_size)
    )
    if standard_error == 0:
        return 0.0
    return (variant_rate - control_rate) / standard_error


def is_significant(z: float, confidence_level: float) -> bool:
    return abs(z) > z_score_for(confidence_level)


def statistical_summary(values: Sequence[float]) -> StatisticalSummary:
    """Mean, median, population standard deviation, min, max and count."""
    if not values:
        raise ValueError("statistical_summary() needs at least one value")
    return StatisticalSummary(
        mean=statistics.mean(values),
        median=statistics.median(values),
        standard_deviation=statistics.pstdev(values),
        min=min(values),
        max=max(values),
        count=len(values),
    )


def assign_bucket(user_id: str, test_id: str) -> int:
    """
    Stable bucket in [0, 100) for a user within a test.

    Pure function of its inputs, so it is reproducible across processes and
    needs no shared state.
    """
    digest = hashlib.sha256(f"{user_id}{test_id}".encode("utf-8")).hexdigest()
    return int(digest, 16) % BUCKETS
