"""
Unit tests for configuration system.

These tests verify that the configuration system works correctly
and can load settings from environment variables.
"""

import pytest

from session_ledger.config import Config, LedgerConfig, LogConfig, StoreConfig


def test_config_has_defaults() -> None:
    """Test that Config initializes with sensible defaults."""
    config = Config()

    assert config.store.backend == "memory"
    assert config.store.database_url == "sqlite:///session_ledger.db"

    assert config.ledger.max_versions == 50
    assert config.ledger.enforce_max_versions is False
    assert config.ledger.history_limit == 50
    assert config.ledger.page_size == 20

    assert config.logging.level == "INFO"


def test_ledger_config_defaults() -> None:
    """Test LedgerConfig default values."""
    ledger_config = LedgerConfig()

    assert ledger_config.default_branch == "main"
    assert ledger_config.conflict_retries == 3
    assert ledger_config.preview_length == 100


def test_store_config_rejects_unknown_backend() -> None:
    """Test that only known backends are accepted."""
    StoreConfig(backend="sql")

    with pytest.raises(Exception):  # Pydantic ValidationError
        StoreConfig(backend="firestore")


def test_ledger_config_ranges() -> None:
    """Test that caps and retries must be in valid range."""
    LedgerConfig(conflict_retries=0)

    with pytest.raises(Exception):  # Pydantic ValidationError
        LedgerConfig(max_versions=0)

    with pytest.raises(Exception):  # Pydantic ValidationError
        LedgerConfig(conflict_retries=-1)


def test_log_config_defaults() -> None:
    """Test LogConfig default values."""
    log_config = LogConfig()

    assert log_config.level == "INFO"
    assert log_config.rotation == "100 MB"
    assert log_config.retention == "1 month"
    assert log_config.enable_file_logging is False


def test_config_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test that Config.from_env() reads environment variables correctly."""
    monkeypatch.setenv("LEDGER_STORE_BACKEND", "sql")
    monkeypatch.setenv("LEDGER_DATABASE_URL", "sqlite:///custom.db")
    monkeypatch.setenv("LEDGER_MAX_VERSIONS", "10")
    monkeypatch.setenv("LEDGER_ENFORCE_MAX_VERSIONS", "true")
    monkeypatch.setenv("LEDGER_CONFLICT_RETRIES", "5")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("LOG_TO_FILE", "1")

    config = Config.from_env()

    assert config.store.backend == "sql"
    assert config.store.database_url == "sqlite:///custom.db"
    assert config.ledger.max_versions == 10
    assert config.ledger.enforce_max_versions is True
    assert config.ledger.conflict_retries == 5
    assert config.logging.level == "DEBUG"
    assert config.logging.enable_file_logging is True


def test_config_is_importable_from_top_level() -> None:
    """Test that config can be imported from session_ledger package."""
    from session_ledger import config

    assert isinstance(config, Config)
