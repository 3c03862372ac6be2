"""
A/B experimentation over ensemble configurations.
"""

from foresight.experiments.ab_testing import ABTestingFramework
from foresight.experiments.ab_testing_schemas import (
    ABTestAnalysis,
    ABTestConfig,
    ABTestResult,
    ABTestVariant,
    StatisticalSummary,
    TestStatus,
    VariantAnalysis,
)
from foresight.experiments.statistics import (
    assign_bucket,
    proportion_confidence_interval,
    statistical_summary,
    two_proportion_z_test,
    z_score_for,
)

__all__ = [
    "ABTestAnalysis",
    "ABTestConfig",
    "ABTestResult",
    "ABTestVariant",
    "ABTestingFramework",
    "StatisticalSummary",
    "TestStatus",
    "VariantAnalysis",
    "assign_bucket",
    "proportion_confidence_interval",
    "statistical_summary",
    "two_proportion_z_test",
    "z_score_for",
]
