"""
Predictor capability.

The aggregator only ever sees predictors through this interface; concrete
models are registered by type name and never inspected.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Tuple

from foresight.prediction.schemas import PredictionContext


class Predictor(ABC):
    """
    Opaque model producing a value and a self-reported confidence.

    Implementations must tolerate concurrent and repeated invocation with the
    same input.
    """

    @abstractmethod
    def predict(self, input_data: Any, context: PredictionContext) -> Tuple[Any, float]:
        """
        Produce a prediction.

        Args:
            input_data: Model-specific input
            context: Situation the prediction is requested in

        Returns:
            Tuple of (value, confidence in [0, 1])
        """
        pass


class FunctionPredictor(Predictor):
    """Adapts a plain callable ``fn(input, context) -> (value, confidence)``."""

    def __init__(self, fn: Callable[[Any, PredictionContext], Tuple[Any, float]], name: str = ""):
        self._fn = fn
        self.name = name or getattr(fn, "__name__", "function")

    def predict(self, input_data: Any, context: PredictionContext) -> Tuple[Any, float]:
        return self._fn(input_data, context)

    def __repr__(self) -> str:
        return f"FunctionPredictor({self.name})"
