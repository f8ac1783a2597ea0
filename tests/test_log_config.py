"""
Tests for log configuration and the logger setup.

Tests LogConfig, environment overrides and secret redaction.
"""
import sys
from pathlib import Path

import pytest
from loguru import logger

from crucible.utils.log_config import LogConfig, LogLevel, load_log_config
from crucible.utils.logger import (
    REDACTED,
    redact_sensitive_info,
    register_secret_value,
    setup_logger,
)


@pytest.fixture(autouse=True)
def clean_log_env(monkeypatch):
    """Remove CRUCIBLE_LOG_* variables."""
    for name in (
        "CRUCIBLE_LOG_DIR",
        "CRUCIBLE_LOG_LEVEL",
        "CRUCIBLE_LOG_FILE_LEVEL",
        "CRUCIBLE_LOG_ROTATION",
        "CRUCIBLE_LOG_RETENTION",
        "CRUCIBLE_LOG_COMPRESSION",
        "CRUCIBLE_LOG_JSON",
        "CRUCIBLE_LOG_CONSOLE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def restore_logger():
    """Put the default stderr sink back after setup_logger ran."""
    yield
    logger.remove()
    logger.add(sys.stderr)


class TestLogLevel:
    """Tests for LogLevel enum."""

    def test_valid_levels(self):
        """Test valid log levels."""
        assert LogLevel.from_string("DEBUG") == LogLevel.DEBUG
        assert LogLevel.from_string("debug") == LogLevel.DEBUG
        assert LogLevel.from_string("SUCCESS") == LogLevel.SUCCESS

    def test_level_aliases(self):
        """Test log level aliases."""
        assert LogLevel.from_string("WARN") == LogLevel.WARNING
        assert LogLevel.from_string("ERR") == LogLevel.ERROR
        assert LogLevel.from_string("FATAL") == LogLevel.CRITICAL

    def test_invalid_level(self):
        """Test invalid log level raises error."""
        with pytest.raises(ValueError, match="Unknown log level"):
            LogLevel.from_string("INVALID")


class TestLogConfig:
    """Tests for the LogConfig model."""

    def test_default_values(self):
        """Test default configuration values."""
        config = LogConfig()

        assert config.file_name == "crucible.log"
        assert config.file_level == LogLevel.DEBUG
        assert config.console_level == LogLevel.WARNING
        assert config.compression == "gz"
        assert config.console is False
        assert config.log_dir == Path.cwd() / ".crucible" / "logs"

    def test_log_path_property(self):
        config = LogConfig(log_dir="/tmp/logs", file_name="test.log")
        assert config.log_path == Path("/tmp/logs/test.log")

    def test_levels_are_parsed(self):
        """Level fields accept any spelling and aliases."""
        config = LogConfig(console_level="warn", file_level="info")
        assert config.console_level == LogLevel.WARNING
        assert config.file_level == LogLevel.INFO

    def test_invalid_levels(self):
        """Invalid levels are reported with the field name."""
        with pytest.raises(ValueError, match="console_level"):
            LogConfig(console_level="INVALID")
        with pytest.raises(ValueError, match="Unknown log level"):
            LogConfig(file_level="INVALID")

    def test_invalid_compression(self):
        with pytest.raises(ValueError, match="compression"):
            LogConfig(compression="bz2")
        assert LogConfig(compression="none").compression is None

    def test_unknown_fields_are_ignored(self):
        """Unknown keys are dropped, defaults still apply."""
        config = LogConfig.model_validate({"log_dir": "/custom/logs", "unknown_field": "value"})
        assert config.log_dir == Path("/custom/logs")
        assert config.console_level == LogLevel.WARNING
        assert not hasattr(config, "unknown_field")

    def test_for_root(self, tmp_path):
        """Logs default to the project's dot directory."""
        config = LogConfig.for_root(tmp_path)
        assert config.log_path == tmp_path / ".crucible" / "logs" / "crucible.log"

    def test_env_overrides(self, monkeypatch, tmp_path):
        """CRUCIBLE_LOG_* variables win over defaults."""
        monkeypatch.setenv("CRUCIBLE_LOG_DIR", str(tmp_path))
        monkeypatch.setenv("CRUCIBLE_LOG_LEVEL", "debug")
        monkeypatch.setenv("CRUCIBLE_LOG_COMPRESSION", "none")
        monkeypatch.setenv("CRUCIBLE_LOG_JSON", "yes")
        monkeypatch.setenv("CRUCIBLE_LOG_ROTATION", "5 MB")

        config = load_log_config()
        assert config.log_dir == tmp_path
        assert config.console_level == LogLevel.DEBUG
        assert config.rotation == "5 MB"
        assert config.compression is None
        assert config.json_logs is True

        assert LogConfig.for_root(Path("/elsewhere")).log_dir == tmp_path


class TestRedaction:
    """Tests for secret redaction."""

    def test_assignments_are_redacted(self):
        """password=... style values are masked."""
        text = redact_sensitive_info("connecting with password=hunter2 and token: 'abc123'")
        assert "hunter2" not in text
        assert "abc123" not in text
        assert f"password={REDACTED}" in text

    def test_registered_values_are_redacted(self):
        """Registered secret values are masked anywhere in a message."""
        register_secret_value("sup3r-s3cret")
        assert redact_sensitive_info("value is sup3r-s3cret!") == f"value is {REDACTED}!"

    def test_short_values_are_not_registered(self):
        register_secret_value("abc")
        assert redact_sensitive_info("abcdef") == "abcdef"

    def test_empty_text(self):
        assert redact_sensitive_info("") == ""


class TestSetupLogger:
    """Tests for setup_logger."""

    def test_creates_log_directory(self, tmp_path, restore_logger):
        """The file sink lives under the project root."""
        config = setup_logger(root_dir=tmp_path)
        assert config.log_dir == tmp_path / ".crucible" / "logs"
        assert config.log_dir.is_dir()

    def test_explicit_config(self, tmp_path, restore_logger):
        """An explicit config is used as given."""
        config = LogConfig(log_dir=tmp_path / "logs", compression=None)
        assert setup_logger(config=config) is config
        assert (tmp_path / "logs").is_dir()
