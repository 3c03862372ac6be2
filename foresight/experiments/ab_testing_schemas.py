"""
Schemas for the A/B experimentation framework.

Defines experiments over whole ensemble configurations, the per-user
observations recorded while they run, and the statistical analysis of
their variants.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from foresight.config import config
from foresight.ensemble.ensemble_schemas import EnsembleConfig
from foresight.prediction.schemas import PredictionContext


class TestStatus(str, Enum):
    """Lifecycle state of an experiment."""

    __test__ = False

    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"


@dataclass
class ABTestVariant:
    """One ensemble configuration under experimental comparison."""

    variant_id: str
    name: str
    ensemble_config: EnsembleConfig
    description: str = ""
    is_control: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "name": self.name,
            "description": self.description,
            "ensemble_config": self.ensemble_config.to_dict(),
            "is_control": self.is_control,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ABTestVariant":
        return cls(
            variant_id=data["variant_id"],
            name=data["name"],
            description=data.get("description", ""),
            ensemble_config=EnsembleConfig.from_dict(data["ensemble_config"]),
            is_control=data.get("is_control", False),
        )


@dataclass
class ABTestConfig:
    """
    An experiment definition.

    Attributes:
        test_id: Unique experiment identifier
        name: Display name
        variants: Variants in assignment order
        traffic_split: Variant id to percentage of traffic (must sum to 100)
        start_date: First instant the test accepts predictions
        end_date: Instant the test closes (exclusive)
        success_metrics: Names of the metrics the test is judged on
        minimum_sample_size: Outcomes per variant before results are trusted
        confidence_level: Confidence level of the significance test
        stopped: True once the test was closed early by stop_test
    """

    test_id: str
    name: str
    variants: List[ABTestVariant]
    traffic_split: Dict[str, float]
    start_date: datetime
    end_date: datetime
    description: str = ""
    success_metrics: List[str] = field(default_factory=lambda: ["conversion_rate"])
    minimum_sample_size: int = field(
        default_factory=lambda: config.experiments.minimum_sample_size
    )
    confidence_level: float = field(default_factory=lambda: config.experiments.confidence_level)
    stopped: bool = False

    def get_variant(self, variant_id: str) -> Optional[ABTestVariant]:
        for variant in self.variants:
            if variant.variant_id == variant_id:
                return variant
        return None

    @property
    def control_variants(self) -> List[ABTestVariant]:
        return [v for v in self.variants if v.is_control]

    def is_active(self, at: datetime) -> bool:
        return self.start_date <= at < self.end_date

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "name": self.name,
            "description": self.description,
            "variants": [v.to_dict() for v in self.variants],
            "traffic_split": dict(self.traffic_split),
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "success_metrics": list(self.success_metrics),
            "minimum_sample_size": self.minimum_sample_size,
            "confidence_level": self.confidence_level,
            "stopped": self.stopped,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ABTestConfig":
        return cls(
            test_id=data["test_id"],
            name=data["name"],
            description=data.get("description", ""),
            variants=[ABTestVariant.from_dict(v) for v in data["variants"]],
            traffic_split=dict(data["traffic_split"]),
            start_date=datetime.fromisoformat(data["start_date"]),
            end_date=datetime.fromisoformat(data["end_date"]),
            success_metrics=list(data.get("success_metrics", ["conversion_rate"])),
            minimum_sample_size=data.get(
                "minimum_sample_size", config.experiments.minimum_sample_size
            ),
            confidence_level=data.get("confidence_level", config.experiments.confidence_level),
            stopped=data.get("stopped", False),
        )


@dataclass
class ABTestResult:
    """
    One (user, prediction) observation inside a test.

    Append-only; the outcome fields are filled in later by record_outcome.
    """

    test_id: str
    variant_id: str
    user_id: str
    prediction: Any
    context: PredictionContext
    timestamp: datetime = field(default_factory=datetime.now)
    metrics: Dict[str, float] = field(default_factory=dict)
    contributions: List[Dict[str, Any]] = field(default_factory=list)
    actual_outcome: Any = None
    has_outcome: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "variant_id": self.variant_id,
            "user_id": self.user_id,
            "prediction": self.prediction,
            "context": self.context.to_dict(),
            "timestamp": self.timestamp.isoformat(),
            "metrics": dict(self.metrics),
            "contributions": [dict(c) for c in self.contributions],
            "actual_outcome": self.actual_outcome,
            "has_outcome": self.has_outcome,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ABTestResult":
        return cls(
            test_id=data["test_id"],
            variant_id=data["variant_id"],
            user_id=data["user_id"],
            prediction=data["prediction"],
            context=PredictionContext.from_dict(data["context"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            metrics=dict(data.get("metrics", {})),
            contributions=[dict(c) for c in data.get("contributions", [])],
            actual_outcome=data.get("actual_outcome"),
            has_outcome=data.get("has_outcome", False),
        )


@dataclass
class StatisticalSummary:
    """Descriptive statistics of one metric."""

    mean: float
    median: float
    standard_deviation: float
    min: float
    max: float
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mean": self.mean,
            "median": self.median,
            "standard_deviation": self.standard_deviation,
            "min": self.min,
            "max": self.max,
            "count": self.count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatisticalSummary":
        return cls(**data)


@dataclass
class VariantAnalysis:
    """Statistics of one variant, recomputed on demand from its results."""

    variant_id: str
    sample_size: int
    conversion_rate: float
    average_accuracy: float
    confidence_interval: Tuple[float, float]
    metrics: Dict[str, StatisticalSummary] = field(default_factory=dict)
    total_predictions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant_id": self.variant_id,
            "sample_size": self.sample_size,
            "conversion_rate": self.conversion_rate,
            "average_accuracy": self.average_accuracy,
            "confidence_interval": list(self.confidence_interval),
            "metrics": {k: v.to_dict() for k, v in self.metrics.items()},
            "total_predictions": self.total_predictions,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VariantAnalysis":
        low, high = data["confidence_interval"]
        return cls(
            variant_id=data["variant_id"],
            sample_size=data["sample_size"],
            conversion_rate=data["conversion_rate"],
            average_accuracy=data["average_accuracy"],
            confidence_interval=(low, high),
            metrics={
                k: StatisticalSummary.from_dict(v) for k, v in data.get("metrics", {}).items()
            },
            total_predictions=data.get("total_predictions", 0),
        )


@dataclass
class ABTestAnalysis:
    """Outcome of analysing an experiment."""

    test_id: str
    status: TestStatus
    results: Dict[str, VariantAnalysis]
    confidence: float
    recommendations: List[str]
    start_date: datetime
    winner: Optional[str] = None
    end_date: Optional[datetime] = None

    def summary(self) -> str:
        """Generate human-readable summary of results."""
        lines = [
            f"A/B Test Analysis: {self.test_id} ({self.status.value})",
            f"  Winner: {self.winner or 'none'}",
            f"  Confidence: {self.confidence:.1%}",
            "",
            "Variants:",
        ]
        for analysis in self.results.values():
            low, high = analysis.confidence_interval
            lines.append(
                f"  {analysis.variant_id}: n={analysis.sample_size} "
                f"conversion={analysis.conversion_rate:.1%} "
                f"CI=[{low:.3f}, {high:.3f}] "
                f"accuracy={analysis.average_accuracy:.3f}"
            )
        if self.recommendations:
            lines.append("")
            lines.append("Recommendations:")
            lines.extend(f"  - {r}" for r in self.recommendations)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "status": self.status.value,
            "results": {k: v.to_dict() for k, v in self.results.items()},
            "winner": self.winner,
            "confidence": self.confidence,
            "recommendations": list(self.recommendations),
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ABTestAnalysis":
        return cls(
            test_id=data["test_id"],
            status=TestStatus(data["status"]),
            results={k: VariantAnalysis.from_dict(v) for k, v in data["results"].items()},
            winner=data.get("winner"),
            confidence=data["confidence"],
            recommendations=list(data.get("recommendations", [])),
            start_date=datetime.fromisoformat(data["start_date"]),
            end_date=datetime.fromisoformat(data["end_date"]) if data.get("end_date") else None,
        )
