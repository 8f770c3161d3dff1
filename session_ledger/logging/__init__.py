"""
Logging infrastructure for the session ledger.

Provides structured logging and decorators for tracking store calls.
"""

from .logger import (
    LedgerLogger,
    get_ledger_logger,
    initialize_logging,
    get_logger_instance,
    log_version_event,
    log_store_operation,
)

from .decorators import (
    track_store_operation,
    performance_monitor,
)

__all__ = [
    # Logger
    "LedgerLogger",
    "get_ledger_logger",
    "initialize_logging",
    "get_logger_instance",
    "log_version_event",
    "log_store_operation",
    # Decorators
    "track_store_operation",
    "performance_monitor",
]
