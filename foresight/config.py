"""
Configuration management for foresight.

This module provides centralized configuration for all components:
- Ensemble aggregation defaults
- Confidence scoring and calibration ledger
- Model selection smoothing and normalisation ceilings
- Experiment defaults
- Logging settings
"""

import os
from typing import Dict, Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()


class EnsembleSettings(BaseModel):
    """Defaults for the ensemble aggregator."""

    confidence_threshold: float = Field(
        default=0.3, ge=0.0, le=1.0, description="Minimum per-predictor confidence"
    )
    predictor_timeout_seconds: float = Field(
        default=5.0, gt=0.0, description="Timeout for a single predictor invocation"
    )
    max_workers: int = Field(
        default=8, gt=0, description="Concurrent predictor invocations per call"
    )
    history_size: int = Field(
        default=100, gt=0, description="Outcome records kept per predictor"
    )


class ScoringSettings(BaseModel):
    """Configuration for the confidence scorer."""

    ledger_size: int = Field(
        default=1000, gt=0, description="Maximum calibration ledger entries"
    )
    num_bins: int = Field(default=10, gt=0, description="Calibration bins over [0, 1]")
    component_weights: Dict[str, float] = Field(
        default_factory=lambda: {
            "model_agreement": 0.25,
            "historical_accuracy": 0.30,
            "data_quality": 0.20,
            "context_match": 0.15,
            "prediction_stability": 0.10,
        },
        description="Weights of the confidence components in the overall score",
    )


class SelectionSettings(BaseModel):
    """Configuration for the dynamic model selector."""

    ema_alpha: float = Field(
        default=0.1, gt=0.0, le=1.0, description="Smoothing factor for performance EMAs"
    )
    max_models: int = Field(default=3, gt=0, description="Default number of models to select")
    latency_ceiling_ms: float = Field(
        default=1000.0, gt=0.0, description="Latency treated as worst acceptable"
    )
    resource_ceiling: float = Field(
        default=100.0, gt=0.0, description="Resource usage treated as full budget"
    )


class ExperimentSettings(BaseModel):
    """Defaults for A/B experiments."""

    minimum_sample_size: int = Field(
        default=100, gt=0, description="Samples per variant before results are trusted"
    )
    confidence_level: float = Field(
        default=0.95, gt=0.0, lt=1.0, description="Confidence level for significance tests"
    )


class LogConfig(BaseModel):
    """Configuration for logging system."""

    level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: str = Field(
        default="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan> - "
        "<level>{message}</level>",
        description="Log message format",
    )
    rotation: str = Field(default="100 MB", description="Log file rotation size")
    retention: str = Field(default="1 month", description="Log file retention period")
    log_dir: str = Field(default="logs", description="Directory for log files")
    enable_file_logging: bool = Field(
        default=False, description="Whether to enable file logging"
    )
    enable_console_logging: bool = Field(
        default=True, description="Whether to enable console logging"
    )


class Config(BaseModel):
    """Main configuration object for foresight."""

    ensemble: EnsembleSettings = Field(default_factory=EnsembleSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    selection: SelectionSettings = Field(default_factory=SelectionSettings)
    experiments: ExperimentSettings = Field(default_factory=ExperimentSettings)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        return cls(
            ensemble=EnsembleSettings(
                confidence_threshold=float(
                    os.getenv("FORESIGHT_CONFIDENCE_THRESHOLD", "0.3")
                ),
                predictor_timeout_seconds=float(
                    os.getenv("FORESIGHT_PREDICTOR_TIMEOUT", "5.0")
                ),
                max_workers=int(os.getenv("FORESIGHT_MAX_WORKERS", "8")),
                history_size=int(os.getenv("FORESIGHT_HISTORY_SIZE", "100")),
            ),
            scoring=ScoringSettings(
                ledger_size=int(os.getenv("FORESIGHT_LEDGER_SIZE", "1000")),
            ),
            selection=SelectionSettings(
                ema_alpha=float(os.getenv("FORESIGHT_EMA_ALPHA", "0.1")),
                max_models=int(os.getenv("FORESIGHT_MAX_MODELS", "3")),
            ),
            experiments=ExperimentSettings(
                minimum_sample_size=int(os.getenv("FORESIGHT_MIN_SAMPLE_SIZE", "100")),
                confidence_level=float(os.getenv("FORESIGHT_CONFIDENCE_LEVEL", "0.95")),
            ),
            logging=LogConfig(
                level=cast(
                    Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                    os.getenv("LOG_LEVEL", "INFO"),
                ),
                log_dir=os.getenv("FORESIGHT_LOG_DIR", "logs"),
            ),
        )


# Global configuration instance
# This can be imported throughout the codebase
config = Config.from_env()
