"""
Crucible - Application entry points.

Usage:
    from crucible import crucible, resource, run

    app = await crucible("my-app")
    bucket = await Bucket("assets", {"region": "eu"})
    await run("backend", deploy_backend)
    await app.finalize()
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Awaitable, Callable
from functools import partial
from pathlib import Path
from typing import Any, TypeVar

from loguru import logger

from crucible.config.loader import check_ci_state_store, is_selected, load_run_config
from crucible.config.models import StateStoreConfig
from crucible.core.types import DestroyStrategy, Phase
from crucible.engine.destroy import destroy
from crucible.scope import Scope, StateStoreFactory, run_scope
from crucible.secrets.secret import secret
from crucible.state.filesystem import FileSystemStateStore
from crucible.state.memory import MemoryStateStore
from crucible.state.sqlite import SqliteStateStore
from crucible.utils.logger import register_secret_value, setup_logger

T = TypeVar("T")

__all__ = ["crucible", "destroy", "run", "secret", "store_factory"]


def store_factory(config: StateStoreConfig) -> StateStoreFactory:
    """State store factory for a configured backend."""
    if config.type == "memory":
        return MemoryStateStore
    if config.type == "sqlite":
        return partial(SqliteStateStore, db_path=config.state_file)
    return FileSystemStateStore


def _install_signal_handlers(root: Scope) -> None:
    loop = asyncio.get_running_loop()

    def on_signal(signum: signal.Signals) -> None:
        logger.info(f"🛑 Received {signum.name}, running cleanup hooks")
        asyncio.ensure_future(root.cleanup())

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, on_signal, signum)
        except (NotImplementedError, RuntimeError):
            # Windows loops and non-main threads cannot install handlers
            logger.debug(f"Signal handler for {signum.name} not installed")


async def crucible(
    app_name: str,
    *,
    phase: Phase | str | None = None,
    stage: str | None = None,
    password: str | None = None,
    quiet: bool | None = None,
    force: bool | None = None,
    adopt: bool | None = None,
    local: bool | None = None,
    watch: bool | None = None,
    profile: str | None = None,
    root_dir: Path | str | None = None,
    destroy_orphans: bool | None = None,
    destroy_strategy: DestroyStrategy | str | None = None,
    state_store: StateStoreFactory | None = None,
    verbose: bool = False,
    exit_on_destroy: bool = True,
) -> Scope:
    """
    Create the root scope of an app and its stage scope.

    Options not given are read from ``CRUCIBLE_*`` environment variables
    (see ``load_run_config``). The stage scope becomes the current scope of
    the calling task, so resources declared afterwards land in it.

    In the destroy phase the whole stage is torn down immediately; with
    ``exit_on_destroy`` the process then exits.

    Returns:
        The root scope. Call ``await app.finalize()`` (or use it as an
        async context manager) when all resources are declared.

    Raises:
        ConfigurationError: In CI with the default local state store.
        InvalidConfigError: If an option fails validation.
    """
    config = load_run_config(
        app_name,
        phase=phase,
        stage=stage,
        password=password,
        quiet=quiet,
        force=force,
        adopt=adopt,
        local=local,
        watch=watch,
        profile=profile,
        root_dir=root_dir,
        destroy_orphans=destroy_orphans,
        destroy_strategy=destroy_strategy,
    )
    check_ci_state_store(state_store is None and config.state_store.type == "filesystem")
    setup_logger(root_dir=config.root_dir, verbose=verbose)

    secret_password = config.password_value()
    if secret_password:
        register_secret_value(secret_password)

    root = Scope(
        app_name,
        stage=config.stage,
        phase=config.phase,
        password=secret_password,
        state_store=state_store or store_factory(config.state_store),
        quiet=config.quiet,
        local=config.local,
        watch=config.watch,
        force=config.force,
        adopt=config.adopt,
        profile=config.profile,
        destroy_strategy=config.destroy_strategy,
        destroy_orphans=config.destroy_orphans,
        root_dir=config.root_dir,
        is_selected=is_selected(config, app_name),
    )
    stage_scope = Scope(root.stage, parent=root)
    logger.info(f"🚀 {app_name} ({root.stage}) starting in {root.phase} phase")

    root.enter()
    stage_scope.enter()
    _install_signal_handlers(root)

    if root.phase == Phase.DESTROY:
        await destroy(stage_scope)
        logger.info(f"✅ {app_name} ({root.stage}) destroyed")
        if exit_on_destroy:
            raise SystemExit(0)

    return root


async def run(
    name: str,
    fn: Callable[[Scope], Awaitable[T]],
    *,
    scope: Scope | None = None,
    **options: Any,
) -> T:
    """
    Run ``fn`` in a named child scope of ``scope`` (default: current).

    Resources declared inside belong to the child scope; dropping the whole
    ``run()`` from a later run prunes them together.
    """
    return await run_scope(name, fn, parent=scope, **options)
