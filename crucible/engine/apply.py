"""
Crucible Engine - Apply.

Drives one declared resource to its desired state: reads the stored record,
decides whether anything changed, invokes the provider handler in a nested
scope and persists the result. Handles the replace protocol and the
read-only phase.
"""

from __future__ import annotations

import asyncio
import json
import random
import time
from typing import Any

from loguru import logger

from crucible.config.constants import (
    PENDING_DELETIONS_KEY,
    READ_POLL_MAX_DELAY,
    READ_POLL_MIN_DELAY,
    READ_UNSTABLE_WARN_AFTER,
)
from crucible.context import Context
from crucible.core.exceptions import (
    ReplaceInCreatePhaseError,
    ReplaceWithChildrenError,
    ResourceKindConflictError,
    ResourceNotFoundError,
    StateConsistencyError,
)
from crucible.core.registry import Provider
from crucible.core.types import LifecyclePhase, Phase, ResourceStatus
from crucible.engine.destroy import ReplaceTarget, destroy
from crucible.engine.outcome import Continue, Replace, invoke_handler
from crucible.resource import Resource
from crucible.scope import PendingDeletion, Scope, run_scope
from crucible.serde import serialize
from crucible.state.base import State
from crucible.utils.display import get_display
from crucible.utils.validation import validate_resource_id


async def apply(
    resource: Resource,
    props: Any,
    *,
    provider: Provider,
    always_update: bool | None = None,
) -> Resource:
    """
    Create or update a declared resource.

    Args:
        resource: Identity of the declaration (markers only).
        props: Desired properties.
        provider: Provider of the resource's kind.
        always_update: Run the handler even when props are unchanged
            (default: the provider's option).

    Returns:
        The resource output with identity markers.

    Raises:
        ResourceNotFoundError: Read phase and the resource was never applied.
        StateConsistencyError: Read phase and the resource is being deleted.
        ResourceKindConflictError: The id is stored under another kind.
        ReplaceWithChildrenError: Deferred replace of a resource owning children.
    """
    scope = resource.scope
    validate_resource_id(resource.id)

    try:
        await scope.init()
        state = await scope.state.get(resource.id)
        if state is not None and state.kind != resource.kind:
            raise ResourceKindConflictError(resource.id, state.kind, resource.kind)

        if scope.phase == Phase.READ:
            return await _read(resource, props, state)

        display = get_display()

        if state is None:
            state = State(
                kind=resource.kind,
                id=resource.id,
                fqn=resource.fqn,
                seq=resource.seq,
                status=ResourceStatus.CREATING,
                data={},
                props={},
                output=Resource(None, resource.markers),
            )
            await scope.state.set(resource.id, state)

        old_output = state.output
        if always_update is None:
            always_update = provider.options.always_update

        if state.status.is_stable and await _props_equal(scope, state.props, props):
            if not always_update and not scope.force:
                display.task(resource.fqn, "skipped", "Skipped Resource (no changes)", quiet=scope.quiet)
                return state.output

        phase = LifecyclePhase.CREATE if state.status == ResourceStatus.CREATING else LifecyclePhase.UPDATE
        state.status = ResourceStatus.CREATING if phase == LifecyclePhase.CREATE else ResourceStatus.UPDATING
        state.old_props = state.props
        state.props = props

        display.task(
            resource.fqn,
            "creating" if phase == LifecyclePhase.CREATE else "updating",
            "Creating Resource..." if phase == LifecyclePhase.CREATE else "Updating Resource...",
            quiet=scope.quiet,
        )
        await scope.state.set(resource.id, state)

        outcome, nested = await _invoke(resource, provider, props, state, phase)
        replaced = False

        if isinstance(outcome, Replace):
            replaced = True
            if outcome.force:
                await destroy(
                    Resource(None, resource.markers),
                    quiet=scope.quiet,
                    replace=ReplaceTarget(props=state.old_props, output=old_output),
                )
            else:
                if nested is not None and (nested.children or nested.resources):
                    raise ReplaceWithChildrenError(resource.fqn)
                entry: PendingDeletion = {"resource": old_output, "oldProps": state.old_props}
                await scope.update(
                    PENDING_DELETIONS_KEY, lambda pending: [*(pending or []), entry]
                )

            outcome, _ = await _invoke(
                resource, provider, props, state, LifecyclePhase.CREATE, is_replacement=True
            )
            if isinstance(outcome, Replace):
                raise ReplaceInCreatePhaseError(resource.kind, resource.fqn)

        if not isinstance(outcome, Continue):
            raise StateConsistencyError(
                f"Resource {resource.fqn} ended with {type(outcome).__name__} outside of delete",
                {"fqn": resource.fqn},
            )
        output = outcome.output

        if phase == LifecyclePhase.CREATE:
            display.task(resource.fqn, "created", "Created Resource", quiet=scope.quiet)
        elif replaced:
            display.task(resource.fqn, "replaced", "Replaced Resource", quiet=scope.quiet)
        else:
            display.task(resource.fqn, "updated", "Updated Resource", quiet=scope.quiet)

        # Handlers may have written private data since the record was loaded
        current = await scope.state.get(resource.id)
        await scope.state.set(
            resource.id,
            State(
                kind=resource.kind,
                id=resource.id,
                fqn=resource.fqn,
                seq=resource.seq,
                status=ResourceStatus.CREATED if phase == LifecyclePhase.CREATE else ResourceStatus.UPDATED,
                data=current.data if current is not None else {},
                props=props,
                output=output,
            ),
        )
        return output
    except Exception as e:
        scope.fail()
        logger.error(f"❌ Failed to apply {resource.kind} {resource.fqn}: {e}")
        raise


async def _invoke(
    resource: Resource,
    provider: Provider,
    props: Any,
    state: State,
    phase: LifecyclePhase,
    is_replacement: bool = False,
) -> tuple[Any, Scope | None]:
    """Run the handler in the resource's nested scope."""
    scope = resource.scope
    ctx: Context = Context(
        scope=scope,
        phase=phase,
        kind=resource.kind,
        resource_id=resource.id,
        fqn=resource.fqn,
        seq=resource.seq,
        state=state,
        props=state.props if is_replacement else state.old_props,
        destroy_strategy=provider.options.destroy_strategy,
        is_replacement=is_replacement,
    )
    holder: list[Scope] = []

    async def invoke(nested: Scope):
        holder.append(nested)
        outcome = await invoke_handler(provider.handler, ctx, resource.id, props)
        if isinstance(outcome, Continue):
            output = outcome.output
            if not isinstance(output, Resource):
                output = ctx.create(output)
            return Continue(output)
        # Nothing declared by an abandoned invocation may be pruned
        nested.skip()
        return outcome

    outcome = await run_scope(
        resource.id,
        invoke,
        parent=scope,
        is_resource=True,
        destroy_strategy=provider.options.destroy_strategy,
    )
    return outcome, holder[0] if holder else None


async def _props_equal(scope: Scope, old: Any, new: Any) -> bool:
    old_serialized = await serialize(scope, old, encrypt=False)
    new_serialized = await serialize(scope, new, encrypt=False)
    return json.dumps(old_serialized, sort_keys=True) == json.dumps(new_serialized, sort_keys=True)


async def _read(resource: Resource, props: Any, state: State | None) -> Resource:
    """Return the stored output without changing anything."""
    scope = resource.scope
    if state is None and scope.is_selected is not False:
        raise ResourceNotFoundError(resource.fqn, scope.is_selected)
    if scope.is_selected is False:
        # Another app owns the writes: wait for it to settle on our props
        state = await _wait_for_consistent_state(resource, props, state)
    assert state is not None
    return state.output


async def _wait_for_consistent_state(
    resource: Resource,
    props: Any,
    state: State | None,
) -> State:
    scope = resource.scope
    started = time.monotonic()
    while True:
        if state is None or state.status.is_in_progress:
            pass
        elif state.status in (ResourceStatus.DELETING, ResourceStatus.DELETED):
            raise StateConsistencyError(
                f"Resource {resource.fqn} is being deleted",
                {"fqn": resource.fqn, "status": str(state.status)},
            )
        elif await _props_equal(scope, state.props, props):
            return state
        else:
            elapsed = time.monotonic() - started
            if elapsed > READ_UNSTABLE_WARN_AFTER:
                logger.warning(
                    f"⚠️ Resource '{resource.fqn}' is not in a stable state after "
                    f"{elapsed * 1000:.0f}ms, check that its input props are deterministic"
                )
        await asyncio.sleep(random.uniform(READ_POLL_MIN_DELAY, READ_POLL_MAX_DELAY))
        state = await scope.state.get(resource.id)
