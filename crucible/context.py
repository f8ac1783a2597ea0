"""
Crucible - Handler context.

A Context is handed to a provider handler for exactly one invocation. It
exposes the phase, the prior output and props, private scratch storage, and
the replace/destroy controls.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from loguru import logger

from crucible.core.exceptions import LifecycleError, ReplaceInCreatePhaseError
from crucible.core.types import DestroyStrategy, LifecyclePhase
from crucible.engine.outcome import DestroyedSignal, ReplacedSignal
from crucible.resource import Resource, make_markers

if TYPE_CHECKING:
    from crucible.scope import Scope
    from crucible.state.base import State

P = TypeVar("P")
O = TypeVar("O", bound=Resource)

CleanupFn = Callable[[], Awaitable[None] | None]


class Context(Generic[P, O]):
    """
    Per-invocation handle passed to provider handlers.

    Attributes:
        phase: create, update or delete.
        output: Prior output (None on create).
        props: Prior props (None on create).
        is_replacement: True when creating the replacement of an old instance.
    """

    def __init__(
        self,
        *,
        scope: Scope,
        phase: LifecyclePhase,
        kind: str,
        resource_id: str,
        fqn: str,
        seq: int,
        state: State,
        props: P | None,
        destroy_strategy: DestroyStrategy = DestroyStrategy.SEQUENTIAL,
        is_replacement: bool = False,
        detached: bool = False,
    ):
        self.scope = scope
        self.phase = LifecyclePhase(phase)
        self.kind = kind
        self.id = resource_id
        self.fqn = fqn
        self.seq = seq
        self.props = props
        self.is_replacement = is_replacement
        self.destroy_strategy = destroy_strategy
        self._state = state
        self._detached = detached
        self._replace_requested = False

        if self.phase == LifecyclePhase.CREATE:
            self.output: O | None = None
        else:
            self.output = state.output

    @property
    def stage(self) -> str:
        return self.scope.stage

    @property
    def quiet(self) -> bool:
        return self.scope.quiet

    @property
    def adopt(self) -> bool:
        """Whether pre-existing external objects may be taken over."""
        return self.scope.adopt

    # =========================================================================
    # Private data
    # =========================================================================

    async def get(self, key: str, default: Any = None) -> Any:
        """Read a value from this resource's private data."""
        return self._state.data.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        """Store a value in this resource's private data (persisted immediately)."""
        self._state.data[key] = value
        await self._persist(key)

    async def delete(self, key: str) -> Any:
        """Remove a key from private data, returning its old value."""
        value = self._state.data.pop(key, None)
        await self._persist(key)
        return value

    async def _persist(self, key: str) -> None:
        # Replacement cleanups work on a detached state that has no record
        if self._detached:
            return
        current = await self.scope.state.get(self.id)
        if current is None:
            return
        if key in self._state.data:
            current.data[key] = self._state.data[key]
        else:
            current.data.pop(key, None)
        await self.scope.state.set(self.id, current)

    # =========================================================================
    # Control signals
    # =========================================================================

    def replace(self, force: bool = False):
        """
        Request delete-and-recreate instead of an in-place update.

        Args:
            force: Delete the old instance before creating the new one.
                Otherwise the old instance is deleted at the end of the run.

        Raises:
            ReplaceInCreatePhaseError: If called while creating.
        """
        if self.phase == LifecyclePhase.CREATE:
            raise ReplaceInCreatePhaseError(self.kind, self.fqn)
        if self.phase == LifecyclePhase.DELETE:
            raise LifecycleError(
                f"Cannot replace resource {self.fqn} while it is being deleted",
                {"kind": self.kind, "fqn": self.fqn},
            )
        if self._replace_requested:
            logger.warning(f"⚠️ Resource {self.kind} {self.fqn} is already marked as REPLACE")
        self._replace_requested = True
        raise ReplacedSignal(force)

    def destroy(self, retain_children: bool = False):
        """
        End a delete handler.

        Args:
            retain_children: Drop the state of nested resources but keep
                their infrastructure.
        """
        raise DestroyedSignal(retain_children)

    def on_cleanup(self, fn: CleanupFn) -> None:
        """Register a process-exit hook; runs at most once however often it fires."""
        started: list[asyncio.Future[Any]] = []

        async def call() -> None:
            result = fn()
            if isinstance(result, Awaitable):
                await result

        async def once() -> None:
            if not started:
                started.append(asyncio.ensure_future(call()))
            await started[0]

        self.scope.root.on_cleanup(once)

    # =========================================================================
    # Output envelope
    # =========================================================================

    def create(self, props: Mapping[str, Any] | None = None, id: str | None = None) -> O:
        """Build the output Resource (user data plus identity markers)."""
        markers = make_markers(
            kind=self.kind,
            resource_id=id or self.id,
            fqn=self.fqn,
            seq=self.seq,
            scope=self.scope,
            destroy_strategy=self.destroy_strategy,
        )
        return Resource(props, markers)  # type: ignore[return-value]

    def __call__(self, props: Mapping[str, Any] | None = None, id: str | None = None) -> O:
        return self.create(props, id=id)

    def __repr__(self) -> str:
        return f"Context({self.phase} {self.kind} {self.fqn})"
