"""
Shared fixtures for foresight tests.
"""

from datetime import datetime
from typing import Any, Callable

import pytest

from foresight.ensemble import FunctionPredictor
from foresight.prediction import ModelPrediction, PredictionContext

FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0)


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def context() -> PredictionContext:
    return PredictionContext(
        user_id="user-1",
        task_type="coding",
        hour_of_day=10,
        workload_level="medium",
        recent_activity=("edit", "compile"),
    )


@pytest.fixture
def constant_predictor() -> Callable[..., FunctionPredictor]:
    """Factory for predictors that always answer the same thing."""

    def make(value: Any, confidence: float = 0.9) -> FunctionPredictor:
        return FunctionPredictor(lambda _input, _ctx: (value, confidence), name=f"constant_{value}")

    return make


@pytest.fixture
def make_prediction(context: PredictionContext) -> Callable[..., ModelPrediction]:
    """Factory for ModelPrediction values in the default context."""

    def make(predictor_id: str, value: Any, confidence: float) -> ModelPrediction:
        return ModelPrediction(
            predictor_id=predictor_id,
            value=value,
            confidence=confidence,
            context=context,
            timestamp=FIXED_NOW,
        )

    return make
