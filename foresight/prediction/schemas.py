"""
Core data structures shared by every layer of the prediction pipeline.

A PredictionContext describes the situation a prediction is made in, a
ModelPrediction is one predictor's answer, and an AggregatedPrediction is the
combined decision produced by the ensemble.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from foresight.errors import PredictorError, ValidationError
from foresight.prediction.similarity import clamp

WORKLOAD_LEVELS = ("low", "medium", "high")
MAX_RECENT_ACTIVITY = 50
HOURS_PER_BUCKET = 4


@dataclass(frozen=True)
class PredictionContext:
    """Immutable snapshot of the situation a prediction is made in."""

    user_id: str
    task_type: str
    hour_of_day: int
    workload_level: str = "medium"
    recent_activity: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not 0 <= self.hour_of_day <= 23:
            raise ValidationError(
                f"hour_of_day must be in [0, 23], got {self.hour_of_day}",
                rule="hour_of_day_range",
            )
        if self.workload_level not in WORKLOAD_LEVELS:
            raise ValidationError(
                f"workload_level must be one of {WORKLOAD_LEVELS}, got {self.workload_level!r}",
                rule="workload_level",
            )
        # Keep only the most recent tags
        activity = tuple(self.recent_activity)[-MAX_RECENT_ACTIVITY:]
        object.__setattr__(self, "recent_activity", activity)

    @property
    def time_bucket(self) -> int:
        return self.hour_of_day // HOURS_PER_BUCKET

    @property
    def context_key(self) -> str:
        """Coarse key used for grouping and lookups."""
        return f"{self.task_type}_{self.workload_level}_{self.time_bucket}"

    @property
    def filter_string(self) -> str:
        """String matched against predictor context filters."""
        return f"{self.task_type}_{self.workload_level}_{self.hour_of_day}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "task_type": self.task_type,
            "hour_of_day": self.hour_of_day,
            "workload_level": self.workload_level,
            "recent_activity": list(self.recent_activity),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PredictionContext":
        return cls(
            user_id=data["user_id"],
            task_type=data["task_type"],
            hour_of_day=int(data["hour_of_day"]),
            workload_level=data.get("workload_level", "medium"),
            recent_activity=tuple(data.get("recent_activity", ())),
        )


@dataclass(frozen=True)
class ModelPrediction:
    """One predictor's output for a single invocation.

    Attributes:
        predictor_id: Identifier of the predictor configuration
        value: The prediction (numeric, sequence or structured)
        confidence: Effective confidence in [0, 1] used for aggregation
        context: Context the prediction was produced under
        timestamp: When the prediction was produced
        raw_confidence: Confidence reported by the predictor itself
        latency_ms: Time the predictor took to answer
    """

    predictor_id: str
    value: Any
    confidence: float
    context: PredictionContext
    timestamp: datetime = field(default_factory=datetime.now)
    raw_confidence: Optional[float] = None
    latency_ms: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp(float(self.confidence)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predictor_id": self.predictor_id,
            "value": self.value,
            "confidence": self.confidence,
            "context": self.context.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "raw_confidence": self.raw_confidence,
            "latency_ms": self.latency_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelPrediction":
        return cls(
            predictor_id=data["predictor_id"],
            value=data["value"],
            confidence=data["confidence"],
            context=PredictionContext.from_dict(data["context"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            raw_confidence=data.get("raw_confidence"),
            latency_ms=data.get("latency_ms", 0.0),
        )


@dataclass(frozen=True)
class AggregationMetadata:
    """Bookkeeping attached to an aggregated prediction."""

    model_scores: Dict[str, float]
    context_match: float
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_scores": dict(self.model_scores),
            "context_match": self.context_match,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class AggregatedPrediction:
    """Combined decision produced by the ensemble aggregator."""

    value: Any
    confidence: float
    contributing_models: List[str]
    aggregation_method: str
    metadata: AggregationMetadata
    predictions: Tuple[ModelPrediction, ...] = ()
    failures: Tuple[PredictorError, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp(float(self.confidence)))

    @property
    def has_failures(self) -> bool:
        return len(self.failures) > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "value": self.value,
            "confidence": self.confidence,
            "contributing_models": list(self.contributing_models),
            "aggregation_method": self.aggregation_method,
            "metadata": self.metadata.to_dict(),
            "failures": [f.to_dict() for f in self.failures],
        }
