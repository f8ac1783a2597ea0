"""
Logging configuration for Crucible.

Log files live next to the state files, under ``<root>/.crucible/logs``.
Every field can be overridden with a ``CRUCIBLE_LOG_*`` environment variable:

    CRUCIBLE_LOG_DIR          directory for crucible.log
    CRUCIBLE_LOG_LEVEL        stderr level (only when the console sink is on)
    CRUCIBLE_LOG_FILE_LEVEL   file level
    CRUCIBLE_LOG_ROTATION     rotate after this size ("10 MB")
    CRUCIBLE_LOG_RETENTION    drop rotated files older than this ("1 week")
    CRUCIBLE_LOG_COMPRESSION  zip, gz or none
    CRUCIBLE_LOG_JSON         write JSON lines to the file
    CRUCIBLE_LOG_CONSOLE      also log to stderr
"""

from __future__ import annotations

import os
from enum import StrEnum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from crucible.config.constants import DOT_DIR_NAME, ENV_PREFIX, LOG_DIR_NAME

_LEVEL_ALIASES = {"WARN": "WARNING", "ERR": "ERROR", "FATAL": "CRITICAL"}


class LogLevel(StrEnum):
    """loguru level names."""

    TRACE = "TRACE"
    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @classmethod
    def _missing_(cls, value: object) -> LogLevel | None:
        if not isinstance(value, str):
            return None
        name = value.upper()
        name = _LEVEL_ALIASES.get(name, name)
        return cls.__members__.get(name)

    @classmethod
    def from_string(cls, level: str) -> LogLevel:
        """Case-insensitive lookup accepting WARN, ERR and FATAL."""
        try:
            return cls(level)
        except ValueError:
            raise ValueError(f"Unknown log level: {level}") from None


def _default_log_dir() -> Path:
    return Path.cwd() / DOT_DIR_NAME / LOG_DIR_NAME


class LogConfig(BaseModel):
    """File and console sink settings."""

    model_config = ConfigDict(extra="ignore")

    log_dir: Path = Field(default_factory=_default_log_dir, description="Log file directory")
    file_name: str = Field(default="crucible.log", description="Log file name")
    console_level: LogLevel = Field(default=LogLevel.WARNING, description="stderr level")
    file_level: LogLevel = Field(default=LogLevel.DEBUG, description="File level")
    rotation: str = Field(default="10 MB", description="Rotate the file after this size")
    retention: str = Field(default="1 week", description="Keep rotated files this long")
    compression: Literal["zip", "gz"] | None = Field(
        default="gz", description="Compression of rotated files"
    )
    json_logs: bool = Field(default=False, description="Write JSON lines to the file")
    console: bool = Field(default=False, description="Also log to stderr")

    @field_validator("console_level", "file_level", mode="before")
    @classmethod
    def _parse_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return LogLevel.from_string(value)
        return value

    @field_validator("compression", mode="before")
    @classmethod
    def _parse_compression(cls, value: Any) -> Any:
        if isinstance(value, str) and value.lower() in ("", "none"):
            return None
        return value

    @property
    def log_path(self) -> Path:
        return self.log_dir / self.file_name

    @classmethod
    def for_root(cls, root_dir: Path | str, **overrides: Any) -> LogConfig:
        """Logs under ``<root_dir>/.crucible/logs`` unless the environment says otherwise."""
        data = _env_config()
        data.setdefault("log_dir", Path(root_dir) / DOT_DIR_NAME / LOG_DIR_NAME)
        data.update(overrides)
        return cls.model_validate(data)


_ENV_MAPPINGS = {
    f"{ENV_PREFIX}LOG_DIR": "log_dir",
    f"{ENV_PREFIX}LOG_LEVEL": "console_level",
    f"{ENV_PREFIX}LOG_FILE_LEVEL": "file_level",
    f"{ENV_PREFIX}LOG_ROTATION": "rotation",
    f"{ENV_PREFIX}LOG_RETENTION": "retention",
    f"{ENV_PREFIX}LOG_COMPRESSION": "compression",
    f"{ENV_PREFIX}LOG_JSON": "json_logs",
    f"{ENV_PREFIX}LOG_CONSOLE": "console",
}


def _env_config() -> dict[str, Any]:
    return {
        key: os.environ[env_var]
        for env_var, key in _ENV_MAPPINGS.items()
        if env_var in os.environ
    }


def load_log_config() -> LogConfig:
    """LogConfig from ``CRUCIBLE_LOG_*`` variables and defaults."""
    return LogConfig.model_validate(_env_config())
