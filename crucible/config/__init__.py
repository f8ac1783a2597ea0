"""
Crucible Config - Configuration management.
"""

from crucible.config.loader import (
    check_ci_state_store,
    default_stage,
    is_selected,
    load_run_config,
)
from crucible.config.models import RunConfig, StateStoreConfig

__all__ = [
    "RunConfig",
    "StateStoreConfig",
    "check_ci_state_store",
    "default_stage",
    "is_selected",
    "load_run_config",
]
