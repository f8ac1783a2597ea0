"""
Crucible Engine - Destroy.

Deletes resources (through their provider's delete phase) and whole scopes,
removing their state records.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from crucible.config.constants import PENDING_DELETIONS_KEY, SCOPE_KIND
from crucible.context import Context
from crucible.core.exceptions import (
    OrphanPruningError,
    ProviderNotFoundError,
    RootScopeStateAttemptError,
)
from crucible.core.registry import get_registry
from crucible.core.symbols import RESOURCE_KIND, RESOURCE_SEQ
from crucible.core.types import DestroyStrategy, LifecyclePhase, ResourceStatus
from crucible.engine.outcome import Destroyed, Outcome, invoke_handler
from crucible.resource import PendingResource, Resource, make_markers
from crucible.scope import Scope, run_scope
from crucible.state.base import State
from crucible.utils.display import get_display


@dataclass(frozen=True)
class ReplaceTarget:
    """Old instance to clean up after a replacement (not read from the store)."""

    props: Any
    output: Resource


Destroyable = Resource | PendingResource | Scope


async def destroy(
    target: Destroyable | None,
    *,
    quiet: bool | None = None,
    strategy: DestroyStrategy | None = None,
    replace: ReplaceTarget | None = None,
    noop: bool = False,
) -> None:
    """
    Destroy a resource or a whole scope.

    Args:
        target: Resource output, pending resource or scope. None is a no-op.
        quiet: Suppress transition messages (default: the scope's setting).
        strategy: Teardown strategy for scopes (default: the scope's).
        replace: Clean up this old instance instead of the stored one; the
            current record is kept and only the pending-deletion entry goes.
        noop: Remove state without calling delete handlers (infrastructure
            is retained).

    Raises:
        ProviderNotFoundError: If no provider can delete the resource's kind.
    """
    if target is None:
        return
    if isinstance(target, Scope):
        await _destroy_scope(target, quiet=quiet, strategy=strategy, noop=noop)
        return

    if isinstance(target, PendingResource):
        # Let an in-flight apply settle before deleting what it produced
        await asyncio.gather(target.task, return_exceptions=True)
        target = Resource(None, target.markers)

    if target.kind == SCOPE_KIND:
        nested = Scope(target.id, parent=target.scope)
        await _destroy_scope(nested, quiet=quiet, strategy=strategy, noop=noop)
        return

    await _destroy_resource(target, quiet=quiet, replace=replace, noop=noop)


async def _destroy_scope(
    scope: Scope,
    *,
    quiet: bool | None,
    strategy: DestroyStrategy | None,
    noop: bool,
) -> None:
    strategy = strategy or scope.destroy_strategy

    async def teardown(_scope: Scope) -> None:
        await scope.destroy_pending_deletions()
        await destroy_all(list(scope.resources.values()), quiet=quiet, strategy=strategy, noop=noop)

        # Whatever is still recorded was not declared in this run
        remaining = await scope.state.all()
        await destroy_all(
            [_bind(state, scope) for state in remaining.values()],
            quiet=quiet,
            strategy=strategy,
            noop=noop,
        )

    await scope.run(teardown)
    await scope.deinit()


def _bind(state: State, scope: Scope) -> Resource:
    output = state.output
    if output is None or RESOURCE_KIND not in output.markers:
        logger.warning(f"⚠️ Record {state.id} has no identity markers, rebuilding them")
        markers = make_markers(state.kind, state.id, state.fqn or scope.fqn(state.id), state.seq, scope)
        output = Resource(output, markers)
    output.scope = scope
    return output


async def _destroy_resource(
    instance: Resource,
    *,
    quiet: bool | None,
    replace: ReplaceTarget | None,
    noop: bool,
) -> None:
    provider = get_registry().resolve_deletion_handler(instance.kind)
    if provider is None:
        raise ProviderNotFoundError(instance.kind, instance.fqn)

    scope = instance.scope
    quiet = scope.quiet if quiet is None else quiet
    show = not quiet and not noop
    display = get_display()

    try:
        if show:
            display.task(
                instance.fqn,
                "cleanup" if replace else "deleting",
                "Cleaning Up Old Resource..." if replace else "Deleting Resource...",
            )

        if replace is not None:
            props = replace.props
            state = State(
                kind=instance.kind,
                id=instance.id,
                fqn=instance.fqn,
                seq=instance.seq,
                status=ResourceStatus.DELETING,
                data={},
                props=props,
                output=replace.output,
                old_props=props,
            )
        else:
            stored = await scope.state.get(instance.id)
            if stored is None:
                return
            state = stored
            props = state.props
            state.status = ResourceStatus.DELETING
            await scope.state.set(instance.id, state)

        ctx: Context = Context(
            scope=scope,
            phase=LifecyclePhase.DELETE,
            kind=instance.kind,
            resource_id=instance.id,
            fqn=instance.fqn,
            seq=instance.seq,
            state=state,
            props=props,
            destroy_strategy=instance.destroy_strategy,
            detached=replace is not None,
        )

        nested_scopes: list[Scope] = []

        async def invoke(nested: Scope) -> Outcome:
            # Children are removed explicitly below, never by finalize
            nested.skip()
            nested_scopes.append(nested)
            if noop:
                return Destroyed(retain_children=True)
            return await invoke_handler(provider.handler, ctx, instance.id, props)

        try:
            outcome = await run_scope(
                instance.id,
                invoke,
                parent=scope,
                is_resource=True,
                destroy_strategy=instance.destroy_strategy,
                noop=noop,
            )
        except Exception as e:
            if provider.options.delete:
                raise
            logger.warning(
                f"⚠️ Ignoring delete error for {instance.fqn} ({instance.kind} has delete disabled): {e}"
            )
            outcome = Destroyed(retain_children=True)

        retain_children = noop
        if isinstance(outcome, Destroyed):
            retain_children = retain_children or outcome.retain_children

        if replace is None:
            for nested in nested_scopes:
                await destroy(
                    nested,
                    quiet=quiet,
                    strategy=instance.destroy_strategy,
                    noop=retain_children,
                )
            await scope.delete_resource(instance.id)
        else:
            await _drop_pending_deletion(scope, instance.id)

        if show:
            display.task(
                instance.fqn,
                "cleaned" if replace else "deleted",
                "Old Resource Cleanup Complete" if replace else "Deleted Resource",
            )
    except Exception as e:
        logger.error(f"❌ Failed to delete {instance.fqn}: {e}")
        raise


async def _drop_pending_deletion(scope: Scope, resource_id: str) -> None:
    def without(pending: list | None) -> list | None:
        if not pending:
            return pending
        return [
            entry
            for entry in pending
            if not (
                isinstance(entry.get("resource"), Resource)
                and entry["resource"].id == resource_id
            )
        ]

    try:
        await scope.update(PENDING_DELETIONS_KEY, without)
    except RootScopeStateAttemptError:
        return


def _seq_of(item: Destroyable) -> int:
    if isinstance(item, Scope):
        return -1
    return item.markers.get(RESOURCE_SEQ, -1)


def _name_of(item: Destroyable) -> str:
    if isinstance(item, Scope):
        return "/".join(item.chain)
    return item.fqn


async def destroy_all(
    resources: Iterable[Destroyable],
    *,
    quiet: bool | None = None,
    strategy: DestroyStrategy | None = DestroyStrategy.SEQUENTIAL,
    noop: bool = False,
    best_effort: bool = False,
) -> None:
    """
    Destroy many resources.

    Sequential teardown goes in descending ``seq`` order (reverse creation);
    parallel teardown runs everything concurrently.

    Args:
        best_effort: Attempt every item and raise OrphanPruningError with all
            failures at the end, instead of stopping at the first one.
    """
    errors: list[tuple[str, BaseException]] = []

    async def one(item: Destroyable) -> None:
        try:
            await destroy(item, quiet=quiet, noop=noop)
        except Exception as e:
            if not best_effort:
                raise
            errors.append((_name_of(item), e))

    items = list(resources)
    if strategy != DestroyStrategy.PARALLEL:
        for item in sorted(items, key=_seq_of, reverse=True):
            if isinstance(item, Scope):
                await item.destroy_pending_deletions()
            await one(item)
    else:
        await asyncio.gather(*(one(item) for item in items))

    if errors:
        raise OrphanPruningError(errors)
