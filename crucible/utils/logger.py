"""
Centralized logging for Crucible.

Provides:
- A rotating file sink under <root>/.crucible/logs
- An optional stderr sink
- Redaction of secret values and secret-looking assignments

Engine modules simply ``from loguru import logger``; ``setup_logger`` is called
once by the application entry point.
"""

import json
import re
import sys
from pathlib import Path
from threading import Lock
from typing import Any, Optional

from loguru import logger

from crucible.utils.log_config import LogConfig, load_log_config

REDACTED = "[REDACTED]"

_SENSITIVE_ASSIGNMENT = re.compile(
    r"(?P<key>\b(?:password|passwd|secret|token|api[_-]?key|private[_-]?key)\b"
    r"[\"']?\s*[:=]\s*)(?P<quote>[\"']?)(?P<value>[^\s\"',}]+)(?P=quote)",
    re.IGNORECASE,
)

_known_secrets: set[str] = set()
_known_lock = Lock()


def register_secret_value(value: str) -> None:
    """Redact this exact value from every future log line."""
    # Very short strings produce too many false positives
    if value and len(value) >= 4:
        with _known_lock:
            _known_secrets.add(value)


def redact_sensitive_info(text: str) -> str:
    """Replace known secret values and ``password=...`` style values."""
    if not text:
        return text
    redacted = text
    with _known_lock:
        known = sorted(_known_secrets, key=len, reverse=True)
    for value in known:
        redacted = redacted.replace(value, REDACTED)
    return _SENSITIVE_ASSIGNMENT.sub(
        lambda m: f"{m.group('key')}{m.group('quote')}{REDACTED}{m.group('quote')}",
        redacted,
    )


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_sensitive_info(value)
    if isinstance(value, dict):
        return {k: _redact_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_redact_value(v) for v in value)
    return value


def _redaction_patcher(record) -> None:
    record["message"] = redact_sensitive_info(record["message"])
    for key in list(record["extra"].keys()):
        record["extra"][key] = _redact_value(record["extra"][key])


def setup_logger(
    root_dir: Optional[Path] = None,
    verbose: bool = False,
    config: Optional[LogConfig] = None,
) -> LogConfig:
    """
    Configure loguru sinks for a run.

    Rules:
    1. FILE: always log to <log_dir>/crucible.log (rotated).
    2. CONSOLE: only when verbose or CRUCIBLE_LOG_CONSOLE is set; resource
       transitions are printed by TaskDisplay instead.

    Args:
        root_dir: Project root; logs go to <root_dir>/.crucible/logs
        verbose: Enable DEBUG console logging
        config: Optional LogConfig override (for testing)
    """
    logger.remove()

    if config is None:
        config = LogConfig.for_root(root_dir) if root_dir is not None else load_log_config()

    config.log_dir.mkdir(parents=True, exist_ok=True)

    def format_record(record):
        if config.json_logs:
            entry = {
                "timestamp": record["time"].isoformat(),
                "level": record["level"].name,
                "message": record["message"],
                "module": record["name"],
                "line": record["line"],
            }
            # Escape braces: loguru formats the returned string again
            return json.dumps(entry).replace("{", "{{").replace("}", "}}") + "\n"
        return (
            "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | "
            "{name}:{function}:{line} - {message}\n"
        )

    logger.add(
        config.log_path,
        rotation=config.rotation,
        retention=config.retention,
        level=config.file_level.value,
        format=format_record,
        compression=config.compression,
        enqueue=True,
    )

    if verbose or config.console:
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
                "<level>{message}</level>"
            ),
            level="DEBUG" if verbose else config.console_level.value,
            colorize=True,
        )

    logger.configure(patcher=_redaction_patcher)
    return config
