"""
Crucible Config - Environment loader.

Priority:
1. Explicit keyword overrides
2. Environment variables (CRUCIBLE_*)
3. System keyring (password only)
4. Defaults
"""

from __future__ import annotations

import os
from typing import Any

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from crucible.config.constants import DEFAULT_STAGE_FALLBACK, ENV_PREFIX
from crucible.config.models import RunConfig
from crucible.core.exceptions import ConfigurationError, InvalidConfigError
from crucible.core.types import Phase
from crucible.secrets.store import get_password_store

_BOOL_FIELDS = ("adopt", "force", "local", "watch", "quiet", "destroy_orphans")

_ENV_MAPPINGS = {
    f"{ENV_PREFIX}PHASE": "phase",
    f"{ENV_PREFIX}STAGE": "stage",
    f"{ENV_PREFIX}PASSWORD": "password",
    f"{ENV_PREFIX}ADOPT": "adopt",
    f"{ENV_PREFIX}FORCE": "force",
    f"{ENV_PREFIX}LOCAL": "local",
    f"{ENV_PREFIX}WATCH": "watch",
    f"{ENV_PREFIX}QUIET": "quiet",
    f"{ENV_PREFIX}PROFILE": "profile",
    f"{ENV_PREFIX}ROOT_DIR": "root_dir",
    f"{ENV_PREFIX}DESTROY_ORPHANS": "destroy_orphans",
    f"{ENV_PREFIX}APP": "app",
}


def _parse_bool(value: str) -> bool:
    return value.lower() in ("1", "true", "yes", "on")


def default_stage() -> str:
    """Stage used when none is configured: $CRUCIBLE_STAGE, $USER, $USERNAME, "dev"."""
    return (
        os.environ.get(f"{ENV_PREFIX}STAGE")
        or os.environ.get("USER")
        or os.environ.get("USERNAME")
        or DEFAULT_STAGE_FALLBACK
    )


def _env_config() -> dict[str, Any]:
    data: dict[str, Any] = {}
    for env_var, key in _ENV_MAPPINGS.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        data[key] = _parse_bool(value) if key in _BOOL_FIELDS else value

    store: dict[str, Any] = {}
    if store_type := os.environ.get(f"{ENV_PREFIX}STATE_STORE"):
        store["type"] = store_type
    if state_file := os.environ.get(f"{ENV_PREFIX}STATE_FILE"):
        store["state_file"] = state_file
    if store:
        data["state_store"] = store
    return data


def load_run_config(app_name: str | None = None, **overrides: Any) -> RunConfig:
    """
    Build the RunConfig for an app.

    Args:
        app_name: Application name, used for keyring lookup and app selection.
        **overrides: Explicit values; ``None`` values are ignored.

    Raises:
        InvalidConfigError: If a value fails validation.
    """
    data = _env_config()
    data.update({k: v for k, v in overrides.items() if v is not None})

    if "password" not in data and app_name:
        stored = get_password_store().get(app_name)
        if stored:
            logger.debug(f"🔒 Using keyring password for '{app_name}'")
            data["password"] = stored

    try:
        config = RunConfig.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidConfigError(f"Invalid run configuration: {e}") from e

    # Selecting another app of a monorepo turns this one into a reader
    if config.app is not None and app_name is not None and config.app != app_name:
        config = config.model_copy(update={"phase": Phase.READ})
    return config


def is_selected(config: RunConfig, app_name: str) -> bool | None:
    """True/False when an app was selected, None when running without selection."""
    if config.app is None:
        return None
    return config.app == app_name


def check_ci_state_store(uses_default_store: bool) -> None:
    """
    Refuse to run in CI with the local filesystem store.

    Local state is lost when the CI machine goes away, which orphans
    infrastructure. Disable with CRUCIBLE_CI_STATE_STORE_CHECK=false.
    """
    if not uses_default_store or not os.environ.get("CI"):
        return
    if os.environ.get(f"{ENV_PREFIX}CI_STATE_STORE_CHECK", "").lower() == "false":
        return
    raise ConfigurationError(
        "You are running Crucible in a CI environment with the default local "
        "state store. This can lead to orphaned infrastructure. Configure a "
        "persistent state store, or set CRUCIBLE_CI_STATE_STORE_CHECK=false.",
        {"ci": os.environ.get("CI")},
    )
