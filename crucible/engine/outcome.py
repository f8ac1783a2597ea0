"""
Crucible Engine - Handler outcomes.

Provider handlers end in one of three ways: they return an output, they ask
for a replacement (``ctx.replace()``), or they finish a delete
(``ctx.destroy()``). The last two are raised as signals from deep inside
handler code; ``invoke_handler`` turns them into tagged values that the
apply/destroy engines dispatch on.

Signals derive from BaseException so that ``except Exception`` blocks in
provider code cannot swallow them.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from crucible.context import Context
    from crucible.core.registry import Handler

O = TypeVar("O")


class ReplacedSignal(BaseException):
    """Raised by ``ctx.replace()``."""

    def __init__(self, force: bool = False):
        super().__init__("replace")
        self.force = force


class DestroyedSignal(BaseException):
    """Raised by ``ctx.destroy()``."""

    def __init__(self, retain_children: bool = False):
        super().__init__("destroy")
        self.retain_children = retain_children


@dataclass(frozen=True)
class Continue(Generic[O]):
    """The handler returned normally."""

    output: O


@dataclass(frozen=True)
class Replace:
    """The handler requested delete-and-recreate."""

    force: bool = False


@dataclass(frozen=True)
class Destroyed:
    """The delete handler finished."""

    retain_children: bool = False


Outcome = Continue[Any] | Replace | Destroyed


async def invoke_handler(
    handler: Handler,
    ctx: Context,
    resource_id: str,
    props: Any,
) -> Outcome:
    """Run a provider handler and classify how it ended."""
    try:
        output: Mapping[str, Any] | None = await handler(ctx, resource_id, props)
    except ReplacedSignal as signal:
        return Replace(force=signal.force)
    except DestroyedSignal as signal:
        return Destroyed(retain_children=signal.retain_children)
    return Continue(output)
