"""
Decorators for logging operations without cluttering business logic.
"""

import functools
import time
from typing import Any, Callable

from .logger import get_component_logger


def track_operation(component: str, operation: str) -> Callable:
    """
    Decorator to trace an operation of a component.

    Logs start, completion and failure (with the error type) at DEBUG level;
    exceptions are re-raised untouched.

    Args:
        component: Component name (e.g., "experiments")
        operation: Operation name (e.g., "create_test")

    Example:
        >>> @track_operation("experiments", "create_test")
        ... def create_test(self, config):
        ...     ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = get_component_logger(component)
            operation_id = time.time()
            log.debug(
                f"Operation started: {operation}",
                operation=operation,
                operation_id=operation_id,
                function=func.__name__,
            )

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log.debug(
                    f"Operation failed: {operation}",
                    operation=operation,
                    operation_id=operation_id,
                    function=func.__name__,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

            log.debug(
                f"Operation complete: {operation}",
                operation=operation,
                operation_id=operation_id,
                function=func.__name__,
            )
            return result

        return wrapper

    return decorator


def performance_monitor(threshold_ms: float = 1000.0, component: str = "system") -> Callable:
    """
    Decorator to monitor function performance.

    Logs warning if execution exceeds threshold.

    Args:
        threshold_ms: Warning threshold in milliseconds
        component: Component the timing is attributed to

    Example:
        >>> @performance_monitor(threshold_ms=500)
        ... def expensive_operation():
        ...     time.sleep(1)
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = get_component_logger(component)
            start_time = time.time()

            try:
                result = func(*args, **kwargs)
                elapsed_ms = (time.time() - start_time) * 1000

                if elapsed_ms > threshold_ms:
                    log.warning(
                        f"Performance threshold exceeded: {func.__name__}",
                        function=func.__name__,
                        elapsed_ms=elapsed_ms,
                        threshold_ms=threshold_ms,
                    )
                else:
                    log.debug(
                        f"Function executed: {func.__name__}",
                        function=func.__name__,
                        elapsed_ms=elapsed_ms,
                    )

                return result

            except Exception:
                elapsed_ms = (time.time() - start_time) * 1000
                log.debug(
                    f"Function failed: {func.__name__}",
                    function=func.__name__,
                    elapsed_ms=elapsed_ms,
                )
                raise

        return wrapper

    return decorator
