"""
Crucible - Scope tree.

A Scope is a node of the ownership tree: the app (root), a stage, a named
``run()`` grouping, or the nested scope of a resource whose handler declares
more resources. Each scope owns a state store for its records, tracks what
was declared in it during this run, and prunes what was not at finalize.

The scope that resource factories declare into is held in a ContextVar, so
it is task-local: tasks inherit the scope that was current when they were
created. Every public entry point also accepts an explicit ``scope=``.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Awaitable, Callable
from contextvars import ContextVar, Token
from pathlib import Path
from typing import Any, TypedDict, TypeVar

from loguru import logger

from crucible.config.constants import DOT_DIR_NAME, PENDING_DELETIONS_KEY, SCOPE_KIND
from crucible.config.loader import default_stage
from crucible.core.exceptions import (
    LifecycleError,
    ResourceKindConflictError,
    RootScopeStateAttemptError,
)
from crucible.core.symbols import RESOURCE_ID
from crucible.core.types import DestroyStrategy, Phase, ResourceStatus
from crucible.engine.outcome import DestroyedSignal, ReplacedSignal
from crucible.resource import PendingResource, Resource, make_markers
from crucible.state.base import State, StateStore
from crucible.state.filesystem import FileSystemStateStore
from crucible.state.instrumented import InstrumentedStateStore
from crucible.utils.display import get_display
from crucible.utils.validation import validate_resource_id

T = TypeVar("T")

StateStoreFactory = Callable[["Scope"], StateStore]
CleanupFn = Callable[[], Awaitable[None]]

PendingDeletion = TypedDict("PendingDeletion", {"resource": Resource, "oldProps": Any})

_current_scope: ContextVar[Scope | None] = ContextVar("crucible_scope", default=None)

_PHYSICAL_NAME_UNSAFE = re.compile(r"[^a-z0-9_-]", re.IGNORECASE)


def _inherit(value: T | None, parent: Scope | None, attr: str, default: T) -> T:
    if value is not None:
        return value
    if parent is not None:
        return getattr(parent, attr)
    return default


class Scope:
    """
    Node of the scope tree.

    Options not given explicitly are inherited from the parent.

    Usage:
        root = Scope("my-app", phase=Phase.UP, password="...")
        stage = Scope("dev", parent=root, stage="dev")

        async with stage:
            bucket = await Bucket("assets", {"region": "eu"})
    """

    KIND = SCOPE_KIND

    def __init__(
        self,
        name: str,
        parent: Scope | None = None,
        *,
        stage: str | None = None,
        phase: Phase | str | None = None,
        password: str | None = None,
        state_store: StateStoreFactory | None = None,
        quiet: bool | None = None,
        local: bool | None = None,
        watch: bool | None = None,
        force: bool | None = None,
        adopt: bool | None = None,
        profile: str | None = None,
        destroy_strategy: DestroyStrategy | str | None = None,
        destroy_orphans: bool | None = None,
        root_dir: Path | str | None = None,
        dot_dir: Path | str | None = None,
        is_selected: bool | None = None,
    ):
        if parent is not None:
            validate_resource_id(name, "Scope")
        elif not name:
            raise LifecycleError("Scope name is required")

        self.scope_name = name
        self.name = name
        self.parent = parent

        resolved_phase = _inherit(phase, parent, "phase", None)
        if resolved_phase is None:
            raise LifecycleError("Phase is required", {"scope": name})
        self.phase = Phase(resolved_phase)

        self.root_dir = Path(_inherit(root_dir, parent, "root_dir", Path.cwd()))
        self.dot_dir = Path(_inherit(dot_dir, parent, "dot_dir", self.root_dir / DOT_DIR_NAME))
        self.stage: str = _inherit(stage, parent, "stage", None) or default_stage()
        self.password: str | None = _inherit(password, parent, "password", None)
        self.quiet: bool = _inherit(quiet, parent, "quiet", False)
        self.local: bool = _inherit(local, parent, "local", False)
        self.watch: bool = _inherit(watch, parent, "watch", False)
        self.force: bool = _inherit(force, parent, "force", False)
        self.adopt: bool = _inherit(adopt, parent, "adopt", False)
        self.profile: str | None = _inherit(profile, parent, "profile", None)
        self.destroy_strategy = DestroyStrategy(
            _inherit(destroy_strategy, parent, "destroy_strategy", DestroyStrategy.SEQUENTIAL)
        )
        self.destroy_orphans: bool = _inherit(destroy_orphans, parent, "destroy_orphans", True)
        self.is_selected: bool | None = _inherit(is_selected, parent, "is_selected", None)

        self.resources: dict[str, PendingResource] = {}
        self.children: dict[str, Scope] = {}
        if parent is not None:
            parent.children[name] = self

        self.state_store: StateStoreFactory = _inherit(
            state_store, parent, "state_store", FileSystemStateStore
        )
        self.state = InstrumentedStateStore(self.state_store(self))

        self._seq = 0
        self._errored = False
        self._skipped = False
        self._finalized = False
        self._deferred: list[Callable[[], Awaitable[None]]] = []
        self._cleanups: list[CleanupFn] = []
        self._data_lock = asyncio.Lock()
        self._tokens: list[Token] = []

        if self.local and parent is None:
            logger.warning("⚠️ Local mode is experimental")

    # =========================================================================
    # Ambient scope
    # =========================================================================

    @staticmethod
    def get_current() -> Scope | None:
        """The scope of the running task, if any."""
        return _current_scope.get()

    @staticmethod
    def current() -> Scope:
        """
        The scope of the running task.

        Raises:
            LifecycleError: If called outside any scope.
        """
        scope = _current_scope.get()
        if scope is None:
            raise LifecycleError("Not running within a Crucible scope")
        return scope

    async def run(self, fn: Callable[[Scope], Awaitable[T]]) -> T:
        """Run ``fn(self)`` with this scope as the current scope."""
        token = _current_scope.set(self)
        try:
            return await fn(self)
        finally:
            _current_scope.reset(token)

    def enter(self) -> None:
        """Make this scope current for the rest of the running task."""
        self._tokens.append(_current_scope.set(self))

    def exit(self) -> None:
        if self._tokens:
            _current_scope.reset(self._tokens.pop())

    async def __aenter__(self) -> Scope:
        self.enter()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                self.fail()
            await self.finalize()
        finally:
            self.exit()

    # =========================================================================
    # Identity
    # =========================================================================

    @property
    def root(self) -> Scope:
        scope = self
        while scope.parent is not None:
            scope = scope.parent
        return scope

    @property
    def app_name(self) -> str:
        return self.root.scope_name

    @property
    def chain(self) -> list[str]:
        """Names from the root down to this scope."""
        if self.parent is None:
            return [self.scope_name]
        return [*self.parent.chain, self.scope_name]

    def fqn(self, resource_id: str) -> str:
        """Fully-qualified name of a resource declared in this scope."""
        return "/".join([*self.chain, resource_id])

    def seq(self) -> int:
        """Next sequence number; never reused within this scope object."""
        value = self._seq
        self._seq += 1
        return value

    def create_physical_name(self, resource_id: str, delimiter: str = "-") -> str:
        """
        Deterministic external name: ``<app>-<nested scopes>-<id>-<stage>``.

        Characters other than letters, digits, ``_`` and ``-`` are replaced
        with ``delimiter``.
        """
        parts = [self.app_name, *self.chain[2:], resource_id, self.stage]
        return delimiter.join(_PHYSICAL_NAME_UNSAFE.sub(delimiter, part) for part in parts)

    @property
    def is_errored(self) -> bool:
        return self._errored

    @property
    def is_skipped(self) -> bool:
        return self._skipped

    # =========================================================================
    # Store
    # =========================================================================

    async def init(self) -> None:
        await self.state.init()

    async def deinit(self) -> None:
        """Drop this scope's record from the parent and release its store."""
        if self.parent is not None:
            await self.parent.state.delete(self.scope_name)
        await self.state.deinit()

    async def has(self, resource_id: str, kind: str | None = None) -> bool:
        state = await self.state.get(resource_id)
        return state is not None and (kind is None or state.kind == kind)

    async def delete_resource(self, resource_id: str) -> None:
        await self.state.delete(resource_id)
        self.resources.pop(resource_id, None)

    # =========================================================================
    # Scoped data (stored in the parent's record for this scope)
    # =========================================================================

    async def _with_scope_state(
        self,
        fn: Callable[[State, Callable[[State], Awaitable[None]]], Awaitable[T]],
    ) -> T:
        async with self._data_lock:
            parent = self.parent
            if parent is None:
                raise RootScopeStateAttemptError()

            state = await parent.state.get(self.scope_name)
            if state is None and parent.parent is None:
                # Stage scopes get their record lazily
                fqn = parent.fqn(self.scope_name)
                seq = parent.seq()
                state = State(
                    kind=SCOPE_KIND,
                    id=self.scope_name,
                    fqn=fqn,
                    seq=seq,
                    status=ResourceStatus.CREATED,
                    data={},
                    props={},
                    output=Resource(
                        None,
                        make_markers(SCOPE_KIND, self.scope_name, fqn, seq, self, self.destroy_strategy),
                    ),
                )
            if state is None:
                raise RootScopeStateAttemptError()

            async def persist(updated: State) -> None:
                await parent.state.set(self.scope_name, updated)

            return await fn(state, persist)

    async def get(self, key: str) -> Any:
        async def read(state: State, _persist) -> Any:
            return state.data.get(key)

        return await self._with_scope_state(read)

    async def set(self, key: str, value: Any) -> None:
        async def write(state: State, persist) -> None:
            state.data[key] = value
            await persist(state)

        await self._with_scope_state(write)

    async def update(self, key: str, fn: Callable[[Any], Any]) -> Any:
        """
        Replace ``key`` with ``fn(current)`` as one locked read-modify-write.

        Nothing is written when the new value equals the current one.
        """

        async def modify(state: State, persist) -> Any:
            current = state.data.get(key)
            value = fn(current)
            if value == current:
                return value
            state.data[key] = value
            await persist(state)
            return value

        return await self._with_scope_state(modify)

    async def delete(self, key: str) -> None:
        async def remove(state: State, persist) -> None:
            state.data.pop(key, None)
            await persist(state)

        await self._with_scope_state(remove)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def fail(self) -> None:
        logger.error(f"❌ Scope failed: {'/'.join(self.chain)}")
        self._errored = True

    def skip(self) -> None:
        self._skipped = True

    def defer(self, fn: Callable[[], Awaitable[T]]) -> asyncio.Future[T]:
        """
        Run ``fn`` when this scope finalizes.

        Returns a future resolved with its result once finalize has run it.
        """
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()

        async def runner() -> None:
            try:
                result = await self.run(lambda _scope: fn())
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
                return
            if not future.done():
                future.set_result(result)

        self._deferred.append(runner)
        return future

    async def finalize(self, force: bool = False, noop: bool = False) -> None:
        """
        Finish this scope's run.

        Waits for declared resources and deferred work, then (unless errored
        or skipped) destroys orphans: records in the store that were not
        declared during this run. Root and stage scopes are always forced:
        they also sweep pending deletions and finalize their children.

        Cleanup hooks do not run here. They run only when the process exits,
        through the root's ``cleanup()``.
        """
        from crucible.engine.destroy import destroy_all

        should_force = force or self.parent is None or self.parent.parent is None
        if self.phase == Phase.READ:
            return
        if self._finalized and not should_force:
            return
        self._finalized = True

        await asyncio.gather(
            *(pending.task for pending in list(self.resources.values())),
            return_exceptions=True,
        )
        deferred, self._deferred = self._deferred, []
        await asyncio.gather(*(fn() for fn in deferred))

        if self._errored:
            logger.warning(f"⚠️ Scope {'/'.join(self.chain)} is in error, skipping finalize")
            return
        if self._skipped:
            return

        stored_ids = await self.state.list()
        orphan_ids = [rid for rid in stored_ids if rid not in self.resources]

        if should_force:
            await self.destroy_pending_deletions()
            await asyncio.gather(
                *(child.finalize(force=True, noop=noop) for child in list(self.children.values()))
            )

        if not self.destroy_orphans or not orphan_ids:
            return

        stage_fqn = self.root.fqn(self.stage)
        states = await self.state.get_batch(orphan_ids)
        orphans = [
            state.output
            for state in states.values()
            if state.output is not None
            and not (state.kind == SCOPE_KIND and state.fqn == stage_fqn)
        ]
        if orphans:
            logger.info(f"🧹 Pruning {len(orphans)} orphan(s) in {'/'.join(self.chain)}")
            await destroy_all(
                orphans,
                quiet=self.quiet,
                strategy=self.destroy_strategy,
                noop=noop,
                best_effort=True,
            )

    async def destroy_pending_deletions(self) -> None:
        """Delete old instances queued by non-forced replacements."""
        from crucible.engine.destroy import ReplaceTarget, destroy

        try:
            pending: list[PendingDeletion] = await self.get(PENDING_DELETIONS_KEY) or []
        except RootScopeStateAttemptError:
            return

        corrupted = False
        for entry in pending:
            old = entry.get("resource")
            if not isinstance(old, Resource) or RESOURCE_ID not in old.markers:
                logger.warning(
                    "⚠️ A replaced resource pending deletion is corrupted and will NOT be deleted"
                )
                corrupted = True
                continue
            # Deserialization binds the record to the parent's scope
            live = self.resources.get(old.id)
            old.scope = live.scope if live is not None else self
            await destroy(
                old,
                quiet=self.quiet,
                strategy=DestroyStrategy.SEQUENTIAL,
                replace=ReplaceTarget(props=entry.get("oldProps"), output=old),
            )

        if corrupted:
            await self.update(
                PENDING_DELETIONS_KEY,
                lambda remaining: [
                    e for e in remaining or [] if isinstance(e.get("resource"), Resource)
                ],
            )

    # =========================================================================
    # Cleanup hooks
    # =========================================================================

    def on_cleanup(self, fn: CleanupFn) -> None:
        """Register a hook run by ``cleanup()`` (always held by the root)."""
        if self.parent is not None:
            self.root.on_cleanup(fn)
            return
        self._cleanups.append(fn)

    async def cleanup(self) -> None:
        """Run every cleanup hook; only meaningful on the root."""
        if self.parent is not None or not self._cleanups:
            return
        if not self.quiet:
            get_display().console.print("[dim]Exiting...[/dim]")
        results = await asyncio.gather(*(fn() for fn in self._cleanups), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                logger.warning(f"⚠️ Cleanup hook failed: {result}")

    def clear(self) -> None:
        """Forget declared resources and children of this subtree."""
        for child in self.children.values():
            child.clear()
        self.resources.clear()
        self.children.clear()

    def __repr__(self) -> str:
        return f"Scope({'/'.join(self.chain)})"


async def run_scope(
    name: str,
    fn: Callable[[Scope], Awaitable[T]],
    *,
    parent: Scope | None = None,
    is_resource: bool = False,
    noop: bool = False,
    **options: Any,
) -> T:
    """
    Create a child scope, run ``fn`` in it and finalize it.

    Plain scopes (``is_resource=False``) are recorded in the parent's store
    under ``name`` with kind ``crucible::Scope`` so that a later run which no
    longer declares them prunes them.

    Raises:
        ResourceKindConflictError: If ``name`` is already a resource record.
    """
    parent = parent or Scope.current()
    scope = Scope(name, parent=parent, **options)
    try:
        if not is_resource:
            await _record_scope(scope)
        return await scope.run(fn)
    except (ReplacedSignal, DestroyedSignal):
        scope.skip()
        raise
    except BaseException:
        scope.fail()
        raise
    finally:
        await scope.finalize(noop=noop)


async def _record_scope(scope: Scope) -> None:
    parent = scope.parent
    assert parent is not None
    seq = parent.seq()
    fqn = parent.fqn(scope.scope_name)
    markers = make_markers(SCOPE_KIND, scope.scope_name, fqn, seq, scope, scope.destroy_strategy)
    output = Resource(None, markers)

    previous = await parent.state.get(scope.scope_name)
    if previous is None:
        await parent.state.set(
            scope.scope_name,
            State(
                kind=SCOPE_KIND,
                id=scope.scope_name,
                fqn=fqn,
                seq=seq,
                status=ResourceStatus.CREATED,
                data={},
                props={},
                output=output,
            ),
        )
    elif previous.kind != SCOPE_KIND:
        raise ResourceKindConflictError(scope.scope_name, previous.kind, SCOPE_KIND)

    parent.resources[scope.scope_name] = PendingResource.resolved(markers, output)
