"""
Custom exceptions for the prediction aggregation layer.

Provides specific error types for the different failure modes, plus a
value-form record used when a failure is recovered locally.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


class ForesightError(Exception):
    """Base exception for all foresight errors."""

    pass


class ValidationError(ForesightError):
    """Malformed configuration or unknown test/variant/predictor id."""

    def __init__(self, message: str, rule: str | None = None):
        super().__init__(message)
        self.rule = rule


@dataclass
class PredictorError:
    """Represents a failure of a single predictor during one aggregation.

    Attributes:
        predictor_id: Identifier of the predictor that failed
        error_type: Type/class of the error (e.g., 'TimeoutError', 'ValueError')
        message: Human-readable error message
        timestamp: Unix timestamp when the error occurred
    """

    predictor_id: str
    error_type: str
    message: str
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "predictor_id": self.predictor_id,
            "error_type": self.error_type,
            "message": self.message,
            "timestamp": self.timestamp,
        }


class NoViableModelsError(ForesightError):
    """Raised when no predictor survives the confidence threshold."""

    def __init__(
        self,
        message: str,
        attempted: Optional[List[str]] = None,
        failures: Optional[List[PredictorError]] = None,
    ):
        super().__init__(message)
        self.attempted = attempted or []
        self.failures = failures or []

    def __str__(self) -> str:
        parts = [self.args[0] if self.args else "No viable models"]
        if self.attempted:
            parts.append(f"Attempted predictors: {', '.join(self.attempted)}")
        if self.failures:
            summaries = [f"{f.predictor_id}: {f.error_type} - {f.message}" for f in self.failures]
            parts.append(f"Failures: {'; '.join(summaries)}")
        return " | ".join(parts)


class PredictorFailure(ForesightError):
    """A single predictor raised or did not answer within its timeout."""

    def __init__(self, predictor_id: str, reason: str):
        super().__init__(f"Predictor {predictor_id} failed: {reason}")
        self.predictor_id = predictor_id
        self.reason = reason


class InactiveTestError(ForesightError):
    """Prediction requested outside a test's time window."""

    def __init__(self, test_id: str, at: datetime):
        super().__init__(f"Test {test_id} is not active at {at.isoformat()}")
        self.test_id = test_id
        self.at = at


class StorageFailure(ForesightError):
    """A ledger read or write against the host store failed."""

    def __init__(self, key: str, operation: str, message: str = ""):
        detail = f": {message}" if message else ""
        super().__init__(f"Storage {operation} failed for '{key}'{detail}")
        self.key = key
        self.operation = operation
