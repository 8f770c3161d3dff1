"""
Logging infrastructure for the session ledger.

Provides structured logging with:
- Component-specific sinks (ledger, sessions, store)
- Version lifecycle events
- Store operation tracking
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from loguru import logger

COMPONENTS = ("ledger", "sessions", "store")


class LedgerLogger:
    """
    Configures loguru sinks for the session ledger.

    Features:
    - Console sink with colorized output
    - Rotating main log plus one file per component
    - Separate error log (ERROR and above)
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
        Initialize the ledger logger.

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

        logger.remove()
        logger.configure(extra={"component": "system"})

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
        """Add the main, per-component and error file sinks."""
        logger.add(
            self.log_dir / "session_ledger.log",
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
        """Get a logger bound to a specific component."""
        return logger.bind(component=component)


def get_ledger_logger(component: str = "system") -> Any:
    """
    Get a component-specific logger.

    Args:
        component: Component name ("ledger", "sessions", "store")

    Returns:
        Logger instance

    Example:
        >>> log = get_ledger_logger("ledger")
        >>> log.info("Created version", session_id="abc", version_id="v2")
    """
    return logger.bind(component=component)


def log_version_event(
    logger_instance: Any, event: str, session_id: str, version_id: str, **kwargs: Any
) -> None:
    """
    Log a version lifecycle event (creation, revert, branch).

    Args:
        logger_instance: Logger to use
        event: Event type (e.g., "created", "reverted", "branched")
        session_id: Session the version belongs to
        version_id: Version identifier
        **kwargs: Additional context
    """
    logger_instance.info(
        f"Version {event}: {session_id}/{version_id}",
        event=event,
        session_id=session_id,
        version_id=version_id,
        timestamp=datetime.now(timezone.utc).isoformat(),
        **kwargs,
    )


def log_store_operation(logger_instance: Any, operation: str, **kwargs: Any) -> None:
    """
    Log a document store operation.

    Args:
        logger_instance: Logger to use
        operation: Operation type (e.g., "get", "commit", "query")
        **kwargs: Additional context
    """
    logger_instance.debug(
        f"Store operation: {operation}",
        operation=operation,
        timestamp=datetime.now(timezone.utc).isoformat(),
        **kwargs,
    )


# Global logger instance
_ledger_logger: Optional[LedgerLogger] = None


def initialize_logging(
    log_dir: Optional[Path] = None, level: str = "INFO", **kwargs: Any
) -> LedgerLogger:
    """
    Initialize the logging system.

    This should be called once at application startup.

    Args:
        log_dir: Directory for log files
        level: Default log level
        **kwargs: Additional configuration for LedgerLogger

    Returns:
        Configured LedgerLogger instance
    """
    global _ledger_logger
    _ledger_logger = LedgerLogger(log_dir=log_dir, level=level, **kwargs)
    return _ledger_logger


def get_logger_instance() -> Optional[LedgerLogger]:
    """Get the global logger instance."""
    return _ledger_logger
