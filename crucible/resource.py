"""
Crucible - Resources and provider factories.

``@resource("domain::Name")`` turns an async lifecycle handler into a factory.
Calling the factory declares a resource in the current scope: it reserves a
sequence number immediately (so declaration order is the creation order) and
starts applying the resource in a task. The returned PendingResource is
awaitable for the applied output.
"""

from __future__ import annotations

import asyncio
from collections.abc import Generator, Mapping
from typing import TYPE_CHECKING, Any, Generic, Protocol, TypeVar

from loguru import logger

from crucible.core.exceptions import ResourceKindConflictError
from crucible.core.registry import Handler, Provider, ProviderOptions, get_registry
from crucible.core.symbols import (
    DESTROY_STRATEGY,
    RESOURCE_FQN,
    RESOURCE_ID,
    RESOURCE_KIND,
    RESOURCE_SCOPE,
    RESOURCE_SEQ,
    Symbol,
)
from crucible.core.types import DestroyStrategy
from crucible.utils.validation import validate_resource_id

if TYPE_CHECKING:
    from crucible.scope import Scope

P = TypeVar("P")
O = TypeVar("O")


def make_markers(
    kind: str,
    resource_id: str,
    fqn: str,
    seq: int,
    scope: Scope | None,
    destroy_strategy: DestroyStrategy | str = DestroyStrategy.SEQUENTIAL,
) -> dict[Symbol, Any]:
    """Identity markers attached to every resource."""
    return {
        RESOURCE_KIND: kind,
        RESOURCE_ID: resource_id,
        RESOURCE_FQN: fqn,
        RESOURCE_SEQ: seq,
        RESOURCE_SCOPE: scope,
        DESTROY_STRATEGY: DestroyStrategy(destroy_strategy),
    }


class _Identity:
    """Typed accessors over the ``markers`` mapping."""

    markers: dict[Symbol, Any]

    @property
    def kind(self) -> str:
        return self.markers[RESOURCE_KIND]

    @property
    def id(self) -> str:
        return self.markers[RESOURCE_ID]

    @property
    def fqn(self) -> str:
        return self.markers[RESOURCE_FQN]

    @property
    def seq(self) -> int:
        return self.markers[RESOURCE_SEQ]

    @property
    def scope(self) -> Scope:
        return self.markers[RESOURCE_SCOPE]

    @scope.setter
    def scope(self, value: Scope) -> None:
        self.markers[RESOURCE_SCOPE] = value

    @property
    def destroy_strategy(self) -> DestroyStrategy:
        return DestroyStrategy(self.markers.get(DESTROY_STRATEGY) or DestroyStrategy.SEQUENTIAL)


class Resource(_Identity, dict[str, Any]):
    """
    A provider's output plus its identity markers.

    The mapping itself only holds user data; identity lives in ``markers``
    so iterating, diffing or comparing outputs never sees it.
    """

    def __init__(
        self,
        data: Mapping[str, Any] | None = None,
        markers: Mapping[Symbol, Any] | None = None,
    ):
        super().__init__(data or {})
        self.markers = dict(markers or {})

    def __repr__(self) -> str:
        kind = self.markers.get(RESOURCE_KIND, "?")
        fqn = self.markers.get(RESOURCE_FQN, "?")
        return f"Resource({kind} {fqn}, {dict.__repr__(self)})"


class PendingResource(_Identity, Generic[O]):
    """A declared resource whose apply may still be running."""

    def __init__(self, markers: Mapping[Symbol, Any], task: asyncio.Future[O]):
        self.markers = dict(markers)
        self._task = task

    def __await__(self) -> Generator[Any, None, O]:
        return self._task.__await__()

    def done(self) -> bool:
        return self._task.done()

    @property
    def task(self) -> asyncio.Future[O]:
        return self._task

    @classmethod
    def resolved(cls, markers: Mapping[Symbol, Any], value: O) -> PendingResource[O]:
        """An already-applied resource (used for nested scope records)."""
        future: asyncio.Future[O] = asyncio.get_running_loop().create_future()
        future.set_result(value)
        return cls(markers, future)

    def __repr__(self) -> str:
        return f"PendingResource({self.kind} {self.fqn})"


class Factory(Protocol[O]):
    """Callable returned by ``@resource``."""

    kind: str
    provider: Provider

    def __call__(
        self,
        resource_id: str,
        props: Any = None,
        *,
        scope: Scope | None = None,
        always_update: bool | None = None,
    ) -> PendingResource[O]: ...


def resource(
    kind: str,
    *,
    always_update: bool = False,
    destroy_strategy: DestroyStrategy | str = DestroyStrategy.SEQUENTIAL,
    delete: bool = True,
):
    """
    Register an async lifecycle handler for ``kind``.

    Usage:
        @resource("storage::Bucket")
        async def Bucket(ctx: Context, id: str, props: dict) -> Resource:
            if ctx.phase == "delete":
                await api.delete_bucket(ctx.output["name"])
                ctx.destroy()
            ...
            return ctx.create({"name": name})

        bucket = await Bucket("assets", {"region": "eu"})

    Raises:
        DuplicateProviderError: If ``kind`` is already bound to another handler.
    """
    options = ProviderOptions(
        always_update=always_update,
        destroy_strategy=DestroyStrategy(destroy_strategy),
        delete=delete,
    )

    def decorator(handler: Handler):
        provider = get_registry().register(kind, handler, options)

        def factory(
            resource_id: str,
            props: Any = None,
            *,
            scope: Scope | None = None,
            always_update: bool | None = None,
        ) -> PendingResource:
            return declare(provider, resource_id, props, scope=scope, always_update=always_update)

        factory.kind = kind  # type: ignore[attr-defined]
        factory.provider = provider  # type: ignore[attr-defined]
        factory.handler = handler  # type: ignore[attr-defined]
        factory.__name__ = getattr(handler, "__name__", kind)
        factory.__qualname__ = getattr(handler, "__qualname__", kind)
        factory.__doc__ = handler.__doc__
        return factory

    return decorator


def declare(
    provider: Provider,
    resource_id: str,
    props: Any = None,
    *,
    scope: Scope | None = None,
    always_update: bool | None = None,
) -> PendingResource:
    """
    Declare a resource of ``provider.kind`` in ``scope`` (default: current).

    Raises:
        InvalidResourceIdError: If the id is empty or contains ``:``.
        ResourceKindConflictError: If the id is already declared with another kind.
    """
    from crucible.engine.apply import apply
    from crucible.scope import Scope

    scope = scope or Scope.current()
    validate_resource_id(resource_id)

    existing = scope.resources.get(resource_id)
    if existing is not None and existing.kind != provider.kind:
        scope.fail()
        error = ResourceKindConflictError(resource_id, existing.kind, provider.kind)
        logger.error(f"❌ {error}")
        raise error

    markers = make_markers(
        kind=provider.kind,
        resource_id=resource_id,
        fqn=scope.fqn(resource_id),
        seq=scope.seq(),
        scope=scope,
        destroy_strategy=provider.options.destroy_strategy,
    )
    task = asyncio.ensure_future(
        apply(Resource(markers=markers), props, provider=provider, always_update=always_update)
    )
    pending: PendingResource = PendingResource(markers, task)
    scope.resources[resource_id] = pending
    return pending
