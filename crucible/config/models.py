"""
Crucible Config - Configuration models.

Pydantic models for the run-level controls consumed when building the root
scope. Any front end (script, CLI, test) may supply them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator

from crucible.core.types import DestroyStrategy, Phase


class StateStoreConfig(BaseModel):
    """State store selection."""

    type: Literal["filesystem", "sqlite", "memory"] = Field(
        default="filesystem", description="State store backend"
    )
    state_file: Path | None = Field(
        default=None, description="SQLite database file (sqlite backend only)"
    )


class RunConfig(BaseModel):
    """Run-wide flags for one reconciliation run."""

    phase: Phase = Field(default=Phase.UP, description="up, destroy or read")
    stage: str | None = Field(default=None, description="Logical deployment name")
    password: SecretStr | None = Field(
        default=None, description="Passphrase used to encrypt secrets in state"
    )
    adopt: bool = Field(default=False, description="Adopt pre-existing external objects")
    force: bool = Field(default=False, description="Update resources even when unchanged")
    local: bool = Field(default=False, description="Emulate resources locally where possible")
    watch: bool = Field(default=False, description="Push local changes reactively")
    quiet: bool = Field(default=False, description="Suppress per-resource messages")
    profile: str | None = Field(default=None, description="Credential profile name")
    root_dir: Path = Field(default_factory=Path.cwd, description="Project root directory")
    destroy_orphans: bool = Field(
        default=True, description="Delete resources no longer declared"
    )
    destroy_strategy: DestroyStrategy = Field(
        default=DestroyStrategy.SEQUENTIAL, description="Scope teardown strategy"
    )
    app: str | None = Field(
        default=None, description="Selected app in a monorepo; other apps run in read phase"
    )
    state_store: StateStoreConfig = Field(default_factory=StateStoreConfig)

    @field_validator("stage")
    @classmethod
    def _stage_not_blank(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("stage cannot be blank")
        return value

    def password_value(self) -> str | None:
        """Unwrapped password, or None."""
        return self.password.get_secret_value() if self.password else None
