"""
Crucible Secrets - Secret value wrapper.

A Secret marks a value as sensitive. Its cleartext is only reachable through
``.unencrypted``; repr/str are masked so it never leaks into logs, and the
serializer always routes it through the encryption subsystem.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

T = TypeVar("T")

MASK = "******"


class Secret(Generic[T]):
    """Sensitive value wrapper."""

    __slots__ = ("_unencrypted", "name")

    def __init__(self, unencrypted: T, name: str | None = None) -> None:
        self._unencrypted = unencrypted
        self.name = name

    @property
    def unencrypted(self) -> T:
        """Explicit unwrap accessor for the cleartext."""
        return self._unencrypted

    def __repr__(self) -> str:
        if self.name:
            return f"Secret({self.name}={MASK})"
        return f"Secret({MASK})"

    __str__ = __repr__

    # Secrets are compared by identity; compare `.unencrypted` explicitly.
    __hash__ = object.__hash__


def is_secret(value: Any) -> bool:
    return isinstance(value, Secret)


def secret(value: T | Secret[T] | None, name: str | None = None) -> Secret[T]:
    """
    Wrap ``value`` as a Secret.

    Raises:
        ValueError: If ``value`` is None.
    """
    if value is None:
        raise ValueError("Secret cannot be None")
    if isinstance(value, Secret):
        return value
    return Secret(value, name=name)
