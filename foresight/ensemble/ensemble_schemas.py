"""
Data schemas for the ensemble aggregator.

These describe which predictors take part in an ensemble, how their outputs
are combined, and the accuracy records kept for each predictor.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from foresight.config import config
from foresight.errors import ValidationError


class AggregationStrategy(Enum):
    """Algorithms for combining several predictions into one."""

    WEIGHTED_AVERAGE = "weighted_average"
    VOTING = "voting"
    STACKING = "stacking"
    DYNAMIC = "dynamic"


@dataclass
class PredictorConfig:
    """
    One entry in an ensemble's ordered predictor list.

    Attributes:
        predictor_id: Identifier of this configuration (unique within an ensemble)
        predictor_type: Registry key of the predictor implementation to invoke
        weight: Base confidence multiplier for this predictor
        enabled: Disabled entries are never invoked
        context_filters: Substrings matched against the context filter string;
            an empty list matches every context
    """

    predictor_id: str
    predictor_type: str
    weight: float = 1.0
    enabled: bool = True
    context_filters: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.weight < 0:
            raise ValidationError(
                f"Predictor {self.predictor_id} has negative weight {self.weight}",
                rule="predictor_weight",
            )

    def matches(self, filter_string: str) -> bool:
        """True if this entry should run for a context with ``filter_string``."""
        if not self.context_filters:
            return True
        return any(f in filter_string for f in self.context_filters)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predictor_id": self.predictor_id,
            "predictor_type": self.predictor_type,
            "weight": self.weight,
            "enabled": self.enabled,
            "context_filters": list(self.context_filters),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PredictorConfig":
        return cls(
            predictor_id=data["predictor_id"],
            predictor_type=data["predictor_type"],
            weight=data.get("weight", 1.0),
            enabled=data.get("enabled", True),
            context_filters=list(data.get("context_filters", [])),
        )


@dataclass
class EnsembleConfig:
    """
    Configuration of one ensemble.

    Attributes:
        predictors: Ordered predictor entries
        aggregation_strategy: How surviving predictions are combined
        confidence_threshold: Predictions below this confidence are dropped
        context_weights: Context token (task type, workload level or
            ``hour_<bucket>``) to confidence multiplier
        predictor_timeout_seconds: Per-invocation timeout when the caller gives none
    """

    predictors: List[PredictorConfig] = field(default_factory=list)
    aggregation_strategy: AggregationStrategy = AggregationStrategy.DYNAMIC
    confidence_threshold: float = field(
        default_factory=lambda: config.ensemble.confidence_threshold
    )
    context_weights: Dict[str, float] = field(default_factory=dict)
    predictor_timeout_seconds: float = field(
        default_factory=lambda: config.ensemble.predictor_timeout_seconds
    )

    def __post_init__(self) -> None:
        if isinstance(self.aggregation_strategy, str):
            try:
                self.aggregation_strategy = AggregationStrategy(self.aggregation_strategy)
            except ValueError:
                raise ValidationError(
                    f"Unknown aggregation strategy: {self.aggregation_strategy}",
                    rule="aggregation_strategy",
                )
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValidationError(
                "confidence_threshold must be between 0.0 and 1.0",
                rule="confidence_threshold_range",
            )
        if self.predictor_timeout_seconds <= 0:
            raise ValidationError(
                "predictor_timeout_seconds must be positive", rule="predictor_timeout"
            )
        seen = set()
        for entry in self.predictors:
            if entry.predictor_id in seen:
                raise ValidationError(
                    f"Duplicate predictor id: {entry.predictor_id}",
                    rule="duplicate_predictor",
                )
            seen.add(entry.predictor_id)

    def get_predictor(self, predictor_id: str) -> Optional[PredictorConfig]:
        for entry in self.predictors:
            if entry.predictor_id == predictor_id:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predictors": [p.to_dict() for p in self.predictors],
            "aggregation_strategy": self.aggregation_strategy.value,
            "confidence_threshold": self.confidence_threshold,
            "context_weights": dict(self.context_weights),
            "predictor_timeout_seconds": self.predictor_timeout_seconds,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EnsembleConfig":
        return cls(
            predictors=[PredictorConfig.from_dict(p) for p in data.get("predictors", [])],
            aggregation_strategy=AggregationStrategy(
                data.get("aggregation_strategy", AggregationStrategy.DYNAMIC.value)
            ),
            confidence_threshold=data.get(
                "confidence_threshold", config.ensemble.confidence_threshold
            ),
            context_weights=dict(data.get("context_weights", {})),
            predictor_timeout_seconds=data.get(
                "predictor_timeout_seconds", config.ensemble.predictor_timeout_seconds
            ),
        )


@dataclass(frozen=True)
class PerformanceRecord:
    """Accuracy of one predictor on one resolved prediction."""

    predictor_id: str
    accuracy: float
    context_key: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predictor_id": self.predictor_id,
            "accuracy": self.accuracy,
            "context_key": self.context_key,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class PredictorPerformanceReport:
    """Summary of a predictor's recorded accuracy."""

    predictor_id: str
    average_accuracy: float
    min_accuracy: float
    max_accuracy: float
    sample_count: int
    last_updated: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predictor_id": self.predictor_id,
            "average_accuracy": self.average_accuracy,
            "min_accuracy": self.min_accuracy,
            "max_accuracy": self.max_accuracy,
            "sample_count": self.sample_count,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }
