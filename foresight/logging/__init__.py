"""
Logging infrastructure for foresight.

Provides structured logging with loguru, component-specific sinks and
decorators for tracing operations.
"""

from foresight.logging.decorators import performance_monitor, track_operation
from foresight.logging.logger import (
    ForesightLogger,
    get_component_logger,
    get_logger_instance,
    initialize_logging,
    log_experiment_event,
    log_prediction_event,
)

__all__ = [
    "ForesightLogger",
    "get_component_logger",
    "get_logger_instance",
    "initialize_logging",
    "log_experiment_event",
    "log_prediction_event",
    "performance_monitor",
    "track_operation",
]
