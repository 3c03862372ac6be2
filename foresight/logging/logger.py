"""
Logging infrastructure for the prediction layer.

Provides structured logging with:
- Component-specific sinks (ensemble, scoring, selection, experiments)
- Prediction and experiment event helpers
- Log rotation and retention
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from loguru import logger

COMPONENTS = ("ensemble", "scoring", "selection", "experiments")


class ForesightLogger:
    """
    Logger setup for foresight with component-specific sinks.

    Features:
    - Structured logging with bound component context
    - One rotating file per component plus an error log
    - Console output that can be switched off for embedding hosts
    """

    def __init__(
        self,
        log_dir: Optional[Path] = None,
        rotation: str = "100 MB",
        retention: str = "1 month",
        level: str = "INFO",
        format_string: Optional[str] = None,
        enable_file_logging: bool = True,
        enable_console_logging: bool = True,
    ):
        """
        Initialize the logger.

        Args:
            log_dir: Directory for log files
            rotation: When to rotate log files
            retention: How long to keep old logs
            level: Default log level
            format_string: Custom format string
            enable_file_logging: Whether to log to files
            enable_console_logging: Whether to log to console
        """
        self.log_dir = log_dir or Path("logs")
        self.rotation = rotation
        self.retention = retention
        self.level = level

        self.format_string = format_string or (
            "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[component]}</cyan> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
            "<level>{message}</level>"
        )

        # Records logged without bind() still need the component key
        logger.configure(extra={"component": "system"})
        logger.remove()

        if enable_console_logging:
            logger.add(
                sys.stderr,
                format=self.format_string,
                level=level,
                colorize=True,
            )

        if enable_file_logging:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._add_file_handlers()

        self.logger = logger.bind(component="system")

    def _add_file_handlers(self) -> None:
        """Add the main log, one log per component, and an error log."""
        logger.add(
            self.log_dir / "foresight.log",
            format=self.format_string,
            level=self.level,
            rotation=self.rotation,
            retention=self.retention,
            compression="zip",
        )

        for component in COMPONENTS:
            logger.add(
                self.log_dir / f"{component}.log",
                format=self.format_string,
                level="DEBUG",
                rotation=self.rotation,
                retention=self.retention,
                compression="zip",
                filter=lambda record, c=component: record["extra"].get("component") == c,
            )

        logger.add(
            self.log_dir / "errors.log",
            format=self.format_string,
            level="ERROR",
            rotation=self.rotation,
            retention=self.retention,
            compression="zip",
        )

    def get_logger(self, component: str) -> Any:
        """
        Get a logger bound to a specific component.

        Args:
            component: Component name (e.g., "ensemble", "scoring")

        Returns:
            Logger instance bound to the component
        """
        return logger.bind(component=component)


def get_component_logger(component: str = "system") -> Any:
    """
    Get a component-specific logger.

    Example:
        >>> log = get_component_logger("ensemble")
        >>> log.info("Aggregated prediction", strategy="voting")
    """
    return logger.bind(component=component)


def log_prediction_event(logger_instance: Any, event: str, **kwargs: Any) -> None:
    """
    Log an aggregation event with structured data.

    Args:
        logger_instance: Logger to use
        event: Event type (e.g., "aggregated", "predictor_failed")
        **kwargs: Additional context (strategy, survivors, confidence, ...)
    """
    logger_instance.debug(
        f"Prediction {event}",
        event=event,
        timestamp=datetime.now().isoformat(),
        **kwargs,
    )


def log_experiment_event(logger_instance: Any, event: str, test_id: str, **kwargs: Any) -> None:
    """
    Log an experiment lifecycle event.

    Args:
        logger_instance: Logger to use
        event: Event type (e.g., "created", "stopped", "analyzed")
        test_id: Experiment identifier
        **kwargs: Additional context
    """
    logger_instance.info(
        f"Experiment {test_id}: {event}",
        event=event,
        test_id=test_id,
        timestamp=datetime.now().isoformat(),
        **kwargs,
    )


_foresight_logger: Optional[ForesightLogger] = None


def initialize_logging(
    log_dir: Optional[Path] = None, level: str = "INFO", **kwargs: Any
) -> ForesightLogger:
    """
    Initialize the logging system.

    Hosts call this once at startup; the library itself never configures sinks.

    Args:
        log_dir: Directory for log files
        level: Default log level
        **kwargs: Additional configuration for ForesightLogger

    Returns:
        Configured ForesightLogger instance
    """
    global _foresight_logger
    _foresight_logger = ForesightLogger(log_dir=log_dir, level=level, **kwargs)
    return _foresight_logger


def get_logger_instance() -> Optional[ForesightLogger]:
    """Get the logger instance configured by initialize_logging, if any."""
    return _foresight_logger
