"""
Property diffing for provider handlers.

Providers use ``diff(old_props, new_props)`` to decide whether the changed
properties can be patched in place or require ``ctx.replace()``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from crucible.secrets.secret import Secret

_MISSING = object()


def deep_equal(a: Any, b: Any) -> bool:
    """
    Strict structural equality.

    Unlike ``==``, types must match (``1``, ``1.0`` and ``True`` differ),
    lists and tuples are compared element-wise, and secrets compare by their
    unwrapped value.
    """
    if a is b:
        return True
    if isinstance(a, Secret) and isinstance(b, Secret):
        return deep_equal(a.unencrypted, b.unencrypted)
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if a.keys() != b.keys():
            return False
        return all(deep_equal(a[key], b[key]) for key in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if type(a) is not type(b) or len(a) != len(b):
            return False
        return all(deep_equal(x, y) for x, y in zip(a, b))
    if type(a) is not type(b):
        return False
    return a == b


def diff(a: Mapping[str, Any] | None, b: Mapping[str, Any] | None) -> list[str]:
    """
    Keys of ``a`` whose value differs from the same key in ``b``.

    Keys present only in ``b`` are ignored.
    """
    if not a:
        return []
    other = b or {}
    return [key for key in a if not deep_equal(a[key], other.get(key, _MISSING))]
