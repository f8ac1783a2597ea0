"""
Tests for run configuration.
"""

import os
from unittest.mock import patch

import pytest

from crucible.config import (
    RunConfig,
    check_ci_state_store,
    default_stage,
    is_selected,
    load_run_config,
)
from crucible.core.exceptions import ConfigurationError, InvalidConfigError
from crucible.core.types import DestroyStrategy, Phase
from crucible.secrets.store import PasswordStore, get_password_store


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove every CRUCIBLE_* variable and CI markers."""
    for name in list(os.environ):
        if name.startswith("CRUCIBLE_") or name == "CI":
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def memory_passwords():
    """Password store that never touches the system keyring."""
    with patch.object(PasswordStore, "_check_keyring", return_value=False):
        yield get_password_store()


class TestLoadRunConfig:
    """Tests for load_run_config."""

    def test_defaults(self, memory_passwords):
        """Without env or overrides the defaults apply."""
        config = load_run_config("app")
        assert config.phase == Phase.UP
        assert config.force is False
        assert config.destroy_orphans is True
        assert config.destroy_strategy == DestroyStrategy.SEQUENTIAL
        assert config.state_store.type == "filesystem"
        assert config.password is None

    def test_env_variables(self, monkeypatch, memory_passwords):
        """CRUCIBLE_* variables are read."""
        monkeypatch.setenv("CRUCIBLE_PHASE", "destroy")
        monkeypatch.setenv("CRUCIBLE_STAGE", "prod")
        monkeypatch.setenv("CRUCIBLE_FORCE", "true")
        monkeypatch.setenv("CRUCIBLE_QUIET", "1")
        monkeypatch.setenv("CRUCIBLE_STATE_STORE", "sqlite")
        monkeypatch.setenv("CRUCIBLE_STATE_FILE", "/tmp/state.sqlite")

        config = load_run_config("app")
        assert config.phase == Phase.DESTROY
        assert config.stage == "prod"
        assert config.force is True
        assert config.quiet is True
        assert config.state_store.type == "sqlite"
        assert str(config.state_store.state_file) == "/tmp/state.sqlite"

    def test_overrides_win(self, monkeypatch, memory_passwords):
        """Keyword overrides beat environment variables; None is ignored."""
        monkeypatch.setenv("CRUCIBLE_STAGE", "prod")
        config = load_run_config("app", stage="dev", force=None)
        assert config.stage == "dev"
        assert config.force is False

    def test_password_is_secret(self, memory_passwords):
        """The password is wrapped and never printed."""
        config = load_run_config("app", password="hunter2")
        assert "hunter2" not in repr(config)
        assert config.password_value() == "hunter2"

    def test_password_from_store(self, memory_passwords):
        """A stored password is used when none is configured."""
        memory_passwords.set("app", "from-store")
        config = load_run_config("app")
        assert config.password_value() == "from-store"

    def test_invalid_phase(self, memory_passwords):
        """Invalid values raise InvalidConfigError."""
        with pytest.raises(InvalidConfigError):
            load_run_config("app", phase="explode")

    def test_blank_stage(self, memory_passwords):
        """A blank stage is rejected."""
        with pytest.raises(InvalidConfigError):
            load_run_config("app", stage="  ")

    def test_other_app_selected_reads(self, monkeypatch, memory_passwords):
        """Selecting another app turns this one into a reader."""
        monkeypatch.setenv("CRUCIBLE_APP", "frontend")
        config = load_run_config("backend")
        assert config.phase == Phase.READ
        assert is_selected(config, "backend") is False
        assert is_selected(load_run_config("frontend"), "frontend") is True

    def test_no_selection(self):
        """Without app selection every app is neither selected nor excluded."""
        assert is_selected(RunConfig(), "app") is None


class TestDefaultStage:
    """Tests for default_stage."""

    def test_env_stage_first(self, monkeypatch):
        monkeypatch.setenv("CRUCIBLE_STAGE", "qa")
        assert default_stage() == "qa"

    def test_user_fallback(self, monkeypatch):
        monkeypatch.setenv("USER", "alice")
        assert default_stage() == "alice"

    def test_dev_fallback(self, monkeypatch):
        monkeypatch.delenv("USER", raising=False)
        monkeypatch.delenv("USERNAME", raising=False)
        assert default_stage() == "dev"


class TestCiGuard:
    """Tests for the CI state store guard."""

    def test_outside_ci(self):
        """Nothing happens outside CI."""
        check_ci_state_store(True)

    def test_ci_with_default_store(self, monkeypatch):
        """CI with the local store is refused."""
        monkeypatch.setenv("CI", "true")
        with pytest.raises(ConfigurationError, match="CI environment"):
            check_ci_state_store(True)

    def test_ci_with_custom_store(self, monkeypatch):
        """CI with a persistent store is fine."""
        monkeypatch.setenv("CI", "true")
        check_ci_state_store(False)

    def test_ci_check_disabled(self, monkeypatch):
        """The guard can be switched off."""
        monkeypatch.setenv("CI", "true")
        monkeypatch.setenv("CRUCIBLE_CI_STATE_STORE_CHECK", "false")
        check_ci_state_store(True)
