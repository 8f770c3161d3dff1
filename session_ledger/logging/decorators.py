"""
Decorators for automatic logging of store operations and slow calls.

These decorators enable traceability without cluttering business logic.
"""

import functools
import time
from typing import Any, Callable

from .logger import get_ledger_logger, log_store_operation


def track_store_operation(operation_type: str) -> Callable:
    """
    Decorator to track document store operations.

    Logs the start, completion and failure of the call. Exceptions are
    always re-raised.

    Args:
        operation_type: Type of operation (e.g., "get", "commit")

    Example:
        >>> @track_store_operation("commit")
        ... def _commit(self, txn):
        ...     ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = get_ledger_logger("store")
            start_time = time.perf_counter()

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                log_store_operation(
                    log,
                    operation=f"{operation_type}_error",
                    function=func.__name__,
                    error=str(e),
                    error_type=type(e).__name__,
                    elapsed_ms=(time.perf_counter() - start_time) * 1000,
                    success=False,
                )
                raise

            log_store_operation(
                log,
                operation=operation_type,
                function=func.__name__,
                elapsed_ms=(time.perf_counter() - start_time) * 1000,
                success=True,
            )
            return result

        return wrapper

    return decorator


def performance_monitor(threshold_ms: float = 1000.0) -> Callable:
    """
    Decorator to monitor function performance.

    Logs warning if execution exceeds threshold.

    Args:
        threshold_ms: Warning threshold in milliseconds

    Example:
        >>> @performance_monitor(threshold_ms=500)
        ... def get_user_sessions(...):
        ...     ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            log = get_ledger_logger("system")
            start_time = time.perf_counter()

            try:
                result = func(*args, **kwargs)
            except Exception:
                elapsed_ms = (time.perf_counter() - start_time) * 1000
                log.debug(
                    f"Function failed: {func.__name__}",
                    function=func.__name__,
                    elapsed_ms=elapsed_ms,
                )
                raise

            elapsed_ms = (time.perf_counter() - start_time) * 1000
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

        return wrapper

    return decorator
