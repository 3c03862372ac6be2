"""
Pydantic schemas for confidence scoring and calibration.

Defines the structured trust score attached to an aggregated prediction and
the calibration ledger entries it is derived from.
"""

from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class ConfidenceComponents(BaseModel):
    """The five signals combined into an overall confidence."""

    model_agreement: float = Field(ge=0.0, le=1.0, description="Mean pairwise value similarity")
    historical_accuracy: float = Field(
        ge=0.0, le=1.0, description="Sample-weighted ledger accuracy in this context"
    )
    data_quality: float = Field(ge=0.0, le=1.0, description="Quality of supporting data")
    context_match: float = Field(
        ge=0.0, le=1.0, description="Similarity to previously seen contexts"
    )
    prediction_stability: float = Field(
        ge=0.0, le=1.0, description="Inverse of survivor confidence variance"
    )

    def as_dict(self) -> Dict[str, float]:
        return {
            "model_agreement": self.model_agreement,
            "historical_accuracy": self.historical_accuracy,
            "data_quality": self.data_quality,
            "context_match": self.context_match,
            "prediction_stability": self.prediction_stability,
        }


class ConfidenceFactor(BaseModel):
    """
    Human-readable annotation explaining what raised or lowered confidence.

    Negative impact means the factor reduces confidence.
    """

    name: str = Field(description="Short factor name")
    impact: float = Field(ge=-1.0, le=1.0, description="Signed impact on confidence")
    description: str = Field(description="Explanation for operators")
    weight: float = Field(gt=0.0, description="Weight of the underlying component")


class ReliabilityMetrics(BaseModel):
    """How far the score itself can be relied on."""

    consistency: float = Field(
        ge=0.0, le=1.0, description="Agreement of past confidences in this context"
    )
    robustness: float = Field(
        ge=0.0, le=1.0, description="Stability of survivor confidences"
    )
    coverage: float = Field(
        ge=0.0, le=1.0, description="How well past contexts cover this one"
    )


class CalibrationMetrics(BaseModel):
    """Calibration diagnostics computed from the confidence bins."""

    calibration_error: float = Field(
        ge=0.0, le=1.0, description="Count-weighted mean |confidence - accuracy|"
    )
    overconfidence: float = Field(
        ge=0.0, le=1.0, description="Fraction of samples in overconfident bins"
    )
    underconfidence: float = Field(
        ge=0.0, le=1.0, description="Fraction of samples in underconfident bins"
    )
    sharpness: float = Field(ge=0.0, le=1.0, description="Count-weighted mean confidence")


class ConfidenceScore(BaseModel):
    """
    Multi-factor trust score for a set of predictions.

    Derived on demand; never persisted as-is.
    """

    overall: float = Field(ge=0.0, le=1.0, description="Weighted overall confidence")
    components: ConfidenceComponents
    factors: List[ConfidenceFactor] = Field(default_factory=list)
    reliability: ReliabilityMetrics
    calibration: CalibrationMetrics
    weights: Dict[str, float] = Field(
        default_factory=dict, description="Component weights used for the overall score"
    )
    timestamp: datetime = Field(
        default_factory=datetime.now, description="When the score was computed"
    )

    def explanation(self) -> str:
        """Generate human-readable confidence explanation."""
        lines = [f"Overall Confidence: {self.overall:.2f}"]
        lines.append("\nBreakdown:")
        for name, score in self.components.as_dict().items():
            weight = self.weights.get(name, 0.0)
            lines.append(
                f"  {name.replace('_', ' ').title()}: {score:.2f} "
                f"(weight: {weight:.2f}, contribution: {weight * score:.2f})"
            )
        if self.factors:
            lines.append("\nFactors:")
            for factor in self.factors:
                lines.append(f"  {factor.impact:+.2f} {factor.name}: {factor.description}")
        lines.append(
            f"\nReliability: consistency={self.reliability.consistency:.2f}, "
            f"robustness={self.reliability.robustness:.2f}, "
            f"coverage={self.reliability.coverage:.2f}"
        )
        lines.append(f"Calibration Error: {self.calibration.calibration_error:.3f}")
        return "\n".join(lines)


class CalibrationBin(BaseModel):
    """Running averages for one fixed-width confidence bucket."""

    bin_start: float = Field(ge=0.0, le=1.0)
    bin_end: float = Field(ge=0.0, le=1.0)
    count: int = Field(default=0, ge=0)
    average_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    average_accuracy: float = Field(default=0.0, ge=0.0, le=1.0)

    def add(self, confidence: float, accuracy: float) -> None:
        """Fold one observation into the running averages."""
        new_count = self.count + 1
        self.average_confidence = (self.average_confidence * self.count + confidence) / new_count
        self.average_accuracy = (self.average_accuracy * self.count + accuracy) / new_count
        self.count = new_count


class CalibrationEntry(BaseModel):
    """One (predicted confidence, actual accuracy) observation in the ledger."""

    predicted_confidence: float = Field(ge=0.0, le=1.0, description="Predicted confidence")
    actual_accuracy: float = Field(ge=0.0, le=1.0, description="Observed accuracy")
    context_key: str = Field(description="Context key the prediction was made in")
    predictor_id: str = Field(description="Predictor that made the prediction")
    timestamp: datetime = Field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predicted_confidence": self.predicted_confidence,
            "actual_accuracy": self.actual_accuracy,
            "context_key": self.context_key,
            "predictor_id": self.predictor_id,
            "timestamp": self.timestamp.isoformat(),
        }


class CalibrationSummary(BaseModel):
    """Snapshot of the calibration state for reporting."""

    ledger_size: int = Field(description="Entries currently in the ledger")
    metrics: CalibrationMetrics
    bins: List[CalibrationBin]

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            "Calibration Summary",
            f"  Ledger Entries: {self.ledger_size}",
            f"  Calibration Error: {self.metrics.calibration_error:.3f}",
            f"  Overconfident: {self.metrics.overconfidence:.1%}",
            f"  Underconfident: {self.metrics.underconfidence:.1%}",
            f"  Sharpness: {self.metrics.sharpness:.2f}",
        ]
        for b in self.bins:
            if b.count:
                lines.append(
                    f"  [{b.bin_start:.1f}, {b.bin_end:.1f}): n={b.count} "
                    f"conf={b.average_confidence:.2f} acc={b.average_accuracy:.2f}"
                )
        return "\n".join(lines)
