"""
Data schemas for dynamic model selection.

The selector keeps one ModelPerformanceMetrics per predictor, smoothed with
exponential moving averages and broken down by context key.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from foresight.errors import ValidationError


class ContextType(Enum):
    """Situation classes that map to a selection strategy."""

    HIGH_ACCURACY_REQUIRED = "high_accuracy_required"
    REAL_TIME = "real_time"
    RESOURCE_CONSTRAINED = "resource_constrained"
    COMPLEX_TASK = "complex_task"
    DEFAULT = "default"


@dataclass
class SelectionCriteria:
    """Relative importance of each signal in the unified model score."""

    accuracy: float = 0.4
    latency: float = 0.3
    resource_usage: float = 0.2
    context_relevance: float = 0.1

    def __post_init__(self) -> None:
        weights = self.as_dict()
        if any(w < 0 for w in weights.values()):
            raise ValidationError(
                f"Selection criteria weights must be non-negative: {weights}",
                rule="criteria_weights",
            )
        if sum(weights.values()) <= 0:
            raise ValidationError(
                "At least one selection criteria weight must be positive",
                rule="criteria_weights",
            )

    def as_dict(self) -> Dict[str, float]:
        return {
            "accuracy": self.accuracy,
            "latency": self.latency,
            "resource_usage": self.resource_usage,
            "context_relevance": self.context_relevance,
        }

    def normalized(self) -> Dict[str, float]:
        """Weights rescaled to sum to 1."""
        weights = self.as_dict()
        total = sum(weights.values())
        return {name: w / total for name, w in weights.items()}


@dataclass
class PerformanceObservation:
    """One measured outcome of a predictor, fed to the selector."""

    accuracy: float
    latency_ms: float = 0.0
    memory_usage: float = 0.0
    cpu_usage: float = 0.0
    success: bool = True


@dataclass
class ContextPerformance:
    """
    Smoothed performance of one predictor within one context key.

    Attributes:
        context_key: Coarse context key
        accuracy: EMA of accuracy in this context
        latency: EMA of latency in this context (ms)
        sample_count: Observations folded in
        confidence: Trust in the estimate, grows with samples and shrinks on decay
    """

    context_key: str
    accuracy: float
    latency: float
    sample_count: int = 1
    confidence: float = 0.1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "context_key": self.context_key,
            "accuracy": self.accuracy,
            "latency": self.latency,
            "sample_count": self.sample_count,
            "confidence": self.confidence,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContextPerformance":
        return cls(
            context_key=data["context_key"],
            accuracy=data["accuracy"],
            latency=data["latency"],
            sample_count=data.get("sample_count", 1),
            confidence=data.get("confidence", 0.1),
        )


@dataclass
class ModelPerformanceMetrics:
    """Exponentially smoothed performance of one predictor."""

    predictor_id: str
    accuracy: float = 0.0
    average_latency: float = 0.0
    memory_usage: float = 0.0
    cpu_usage: float = 0.0
    success_rate: float = 0.0
    last_updated: datetime = field(default_factory=datetime.now)
    context_performance: Dict[str, ContextPerformance] = field(default_factory=dict)
    observation_count: int = 0
    invocation_count: int = 0

    @property
    def resource_usage(self) -> float:
        return (self.memory_usage + self.cpu_usage) / 2

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predictor_id": self.predictor_id,
            "accuracy": self.accuracy,
            "average_latency": self.average_latency,
            "memory_usage": self.memory_usage,
            "cpu_usage": self.cpu_usage,
            "success_rate": self.success_rate,
            "last_updated": self.last_updated.isoformat(),
            "context_performance": {
                k: v.to_dict() for k, v in self.context_performance.items()
            },
            "observation_count": self.observation_count,
            "invocation_count": self.invocation_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelPerformanceMetrics":
        return cls(
            predictor_id=data["predictor_id"],
            accuracy=data.get("accuracy", 0.0),
            average_latency=data.get("average_latency", 0.0),
            memory_usage=data.get("memory_usage", 0.0),
            cpu_usage=data.get("cpu_usage", 0.0),
            success_rate=data.get("success_rate", 0.0),
            last_updated=datetime.fromisoformat(data["last_updated"]),
            context_performance={
                k: ContextPerformance.from_dict(v)
                for k, v in data.get("context_performance", {}).items()
            },
            observation_count=data.get("observation_count", 0),
            invocation_count=data.get("invocation_count", 0),
        )


@dataclass
class ModelRecommendation:
    """A predictor suggested for a context, with the reasoning behind it."""

    predictor_id: str
    score: float
    reasoning: str
    confidence: float
    expected_accuracy: float
    expected_latency: float
    expected_resource_usage: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predictor_id": self.predictor_id,
            "score": self.score,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "expected_performance": {
                "accuracy": self.expected_accuracy,
                "latency": self.expected_latency,
                "resource_usage": self.expected_resource_usage,
            },
        }


@dataclass
class ModelRanking:
    """Position of a predictor in the overall accuracy ranking."""

    rank: int
    predictor_id: str
    accuracy: float
    latency: float
    resource_usage: float
    success_rate: float
    invocation_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rank": self.rank,
            "predictor_id": self.predictor_id,
            "accuracy": self.accuracy,
            "latency": self.latency,
            "resource_usage": self.resource_usage,
            "success_rate": self.success_rate,
            "invocation_count": self.invocation_count,
        }


@dataclass
class ContextInsight:
    """How predictors perform on average within one context key."""

    average_accuracy: float
    sample_count: int
    best_model: Optional[str]
    performance: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "average_accuracy": self.average_accuracy,
            "sample_count": self.sample_count,
            "best_model": self.best_model,
            "performance": self.performance,
        }


@dataclass
class PerformanceReport:
    """System-wide view of predictor performance."""

    total_models: int = 0
    average_accuracy: float = 0.0
    average_latency: float = 0.0
    model_rankings: List[ModelRanking] = field(default_factory=list)
    context_insights: Dict[str, ContextInsight] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_models": self.total_models,
            "average_accuracy": self.average_accuracy,
            "average_latency": self.average_latency,
            "model_rankings": [r.to_dict() for r in self.model_rankings],
            "context_insights": {k: v.to_dict() for k, v in self.context_insights.items()},
            "recommendations": list(self.recommendations),
        }

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            "Model Performance Report",
            f"  Models: {self.total_models}",
            f"  Average Accuracy: {self.average_accuracy:.1%}",
            f"  Average Latency: {self.average_latency:.1f}ms",
        ]
        for ranking in self.model_rankings:
            lines.append(
                f"  #{ranking.rank} {ranking.predictor_id}: "
                f"accuracy={ranking.accuracy:.2f} latency={ranking.latency:.1f}ms "
                f"success={ranking.success_rate:.1%}"
            )
        for recommendation in self.recommendations:
            lines.append(f"  - {recommendation}")
        return "\n".join(lines)
