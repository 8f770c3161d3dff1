"""
Configuration management for the session ledger.

This module provides centralized configuration for all components:
- Document store backend selection
- Version ledger limits and retry policy
- Logging settings
"""

import os
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field

# Load environment variables from .env file
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class StoreConfig(BaseModel):
    """Configuration for the backing document store."""

    backend: Literal["memory", "sql"] = Field(
        default="memory", description="Document store backend to use"
    )
    database_url: str = Field(
        default="sqlite:///session_ledger.db",
        description="SQLAlchemy database URL for the sql backend",
    )
    echo: bool = Field(
        default=False, description="Echo SQL statements (for debugging)"
    )


class LedgerConfig(BaseModel):
    """Configuration for version numbering, retention and listing."""

    max_versions: int = Field(
        default=50, gt=0, description="Retention cap on versions per session"
    )
    enforce_max_versions: bool = Field(
        default=False,
        description="Reject new versions once max_versions is reached",
    )
    default_branch: str = Field(default="main", description="Branch name for versions")
    history_limit: int = Field(
        default=50, gt=0, description="Default number of versions returned in history"
    )
    conflict_retries: int = Field(
        default=3,
        ge=0,
        description="Times a versioned mutation is retried after a write conflict",
    )
    preview_length: int = Field(
        default=100, gt=0, description="Characters kept in session list message previews"
    )
    page_size: int = Field(default=20, gt=0, description="Default session page size")


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
    """Main configuration object for the session ledger."""

    store: StoreConfig = Field(default_factory=StoreConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    logging: LogConfig = Field(default_factory=LogConfig)

    @classmethod
    def from_env(cls) -> "Config":
        """Create configuration from environment variables."""
        return cls(
            store=StoreConfig(
                backend=cast(
                    Literal["memory", "sql"],
                    os.getenv("LEDGER_STORE_BACKEND", "memory"),
                ),
                database_url=os.getenv(
                    "LEDGER_DATABASE_URL", "sqlite:///session_ledger.db"
                ),
                echo=_env_flag("LEDGER_DATABASE_ECHO"),
            ),
            ledger=LedgerConfig(
                max_versions=int(os.getenv("LEDGER_MAX_VERSIONS", "50")),
                enforce_max_versions=_env_flag("LEDGER_ENFORCE_MAX_VERSIONS"),
                conflict_retries=int(os.getenv("LEDGER_CONFLICT_RETRIES", "3")),
            ),
            logging=LogConfig(
                level=cast(
                    Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
                    os.getenv("LOG_LEVEL", "INFO"),
                ),
                log_dir=os.getenv("LOG_DIR", "logs"),
                enable_file_logging=_env_flag("LOG_TO_FILE"),
            ),
        )


# Global configuration instance
# This can be imported throughout the codebase
config = Config.from_env()
