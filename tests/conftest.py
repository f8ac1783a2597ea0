"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from crucible.context import Context
from crucible.core.registry import get_registry
from crucible.core.types import LifecyclePhase, Phase
from crucible.resource import resource
from crucible.scope import Scope
from crucible.secrets.store import reset_password_store
from crucible.state.memory import MemoryStateStore, reset_memory_state
from crucible.utils.display import TaskDisplay

pytest_plugins = ("pytest_asyncio",)

TEST_PASSWORD = "test-password"


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset process-wide state before and after each test."""
    reset_memory_state()
    reset_password_store()
    TaskDisplay.reset_instance()
    yield
    reset_memory_state()
    reset_password_store()
    TaskDisplay.reset_instance()


@pytest.fixture(autouse=True)
def registry_cleanup():
    """Unregister every kind a test registered."""
    registry = get_registry()
    before = set(registry.list_all())
    yield
    for kind in set(registry.list_all()) - before:
        registry.unregister(kind)


@pytest.fixture
def make_stage(tmp_path: Path) -> Callable[..., Scope]:
    """
    Build a fresh root + stage scope pair (one "run" of the app).

    Each call returns a new stage scope; with the in-memory store the
    records of earlier calls are visible, like a rerun of the program.
    """

    def factory(
        phase: Phase | str = Phase.UP,
        stage: str = "test",
        app: str = "app",
        state_store: Any = MemoryStateStore,
        **options: Any,
    ) -> Scope:
        options.setdefault("password", TEST_PASSWORD)
        options.setdefault("quiet", True)
        root = Scope(
            app,
            stage=stage,
            phase=phase,
            root_dir=tmp_path,
            state_store=state_store,
            **options,
        )
        return Scope(stage, parent=root)

    return factory


@pytest.fixture
def events() -> list[str]:
    """Handler call log shared with the box providers."""
    return []


@pytest.fixture
def box(events: list[str]):
    """
    A ``test::Box`` provider recording every handler call.

    Props: ``value`` (stored in the output), ``name`` (changing it requests
    a replacement), ``force`` (forced replacement).
    """

    @resource("test::Box")
    async def Box(ctx: Context, id: str, props: dict[str, Any]):
        props = props or {}
        if ctx.phase == LifecyclePhase.DELETE:
            events.append(f"delete:{id}:{ctx.output.get('value')}")
            ctx.destroy()
        if ctx.phase == LifecyclePhase.UPDATE and (ctx.props or {}).get("name") != props.get("name"):
            ctx.replace(force=props.get("force", False))
        events.append(f"{ctx.phase}:{id}:{props.get('value')}")
        return {"value": props.get("value"), "name": props.get("name")}

    return Box
