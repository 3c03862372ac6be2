"""
Rule-based classification of prediction contexts.
"""

from foresight.prediction.schemas import PredictionContext
from foresight.selection.selection_schemas import ContextType

BUSY_ACTIVITY_COUNT = 10
COMPLEX_ACTIVITY_COUNT = 20


class ContextClassifier:
    """Maps a context to the situation class used to pick a selection strategy."""

    def classify(self, context: PredictionContext) -> ContextType:
        activity_count = len(context.recent_activity)
        task_type = context.task_type

        if context.workload_level == "high" and activity_count > BUSY_ACTIVITY_COUNT:
            return ContextType.HIGH_ACCURACY_REQUIRED
        if "real_time" in task_type or "live" in task_type:
            return ContextType.REAL_TIME
        if context.workload_level == "low":
            return ContextType.RESOURCE_CONSTRAINED
        if "complex" in task_type or activity_count > COMPLEX_ACTIVITY_COUNT:
            return ContextType.COMPLEX_TASK
        return ContextType.DEFAULT
