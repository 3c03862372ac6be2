"""
Similarity between prediction contexts.
"""

from typing import Dict, Sequence, Tuple

from foresight.prediction.schemas import WORKLOAD_LEVELS, PredictionContext

RELATED_TASK_TYPES: Dict[str, Tuple[str, ...]] = {
    "coding": ("debugging", "testing", "reviewing"),
    "writing": ("editing", "proofreading", "research"),
    "analysis": ("research", "planning", "reporting"),
}


class ContextSimilarityCalculator:
    """
    Mean of four similarities between two contexts.

    Task type (1 same, 0.5 related, else 0), workload level (ordinal
    distance), hour of day (proximity over 24h) and recent activity (Jaccard).
    """

    def __init__(self, related_task_types: Dict[str, Tuple[str, ...]] = RELATED_TASK_TYPES):
        self.related_task_types = related_task_types

    def calculate_similarity(self, first: PredictionContext, second: PredictionContext) -> float:
        scores = (
            self.task_type_similarity(first.task_type, second.task_type),
            self.workload_similarity(first.workload_level, second.workload_level),
            1.0 - abs(first.hour_of_day - second.hour_of_day) / 24.0,
            self.activity_similarity(first.recent_activity, second.recent_activity),
        )
        return sum(scores) / len(scores)

    def task_type_similarity(self, first: str, second: str) -> float:
        if first == second:
            return 1.0
        if self.are_related(first, second):
            return 0.5
        return 0.0

    def are_related(self, first: str, second: str) -> bool:
        return second in self.related_task_types.get(
            first, ()
        ) or first in self.related_task_types.get(second, ())

    @staticmethod
    def workload_similarity(first: str, second: str) -> float:
        if first not in WORKLOAD_LEVELS or second not in WORKLOAD_LEVELS:
            return 0.0
        distance = abs(WORKLOAD_LEVELS.index(first) - WORKLOAD_LEVELS.index(second))
        return 1.0 - distance / (len(WORKLOAD_LEVELS) - 1)

    @staticmethod
    def activity_similarity(first: Sequence[str], second: Sequence[str]) -> float:
        union = set(first) | set(second)
        if not union:
            return 0.0
        return len(set(first) & set(second)) / len(union)
