"""
Crucible Core - Symbolic tags.

A Symbol is an opaque tag compared by identity. ``Symbol.for_(name)`` returns
the interned, process-wide symbol for ``name`` (safe to persist, since it can
be looked up again by name); ``Symbol(name)`` creates a unique symbol that
can never be restored and therefore refuses to serialize.
"""

from __future__ import annotations

import re
from threading import Lock

SYMBOL_PATTERN = re.compile(r"^Symbol\((.*)\)$")


class Symbol:
    """Identity-compared tag with an optional description."""

    _registry: dict[str, Symbol] = {}
    _lock = Lock()

    __slots__ = ("description", "_interned")

    def __init__(self, description: str | None = None) -> None:
        self.description = description
        self._interned = False

    @classmethod
    def for_(cls, name: str) -> Symbol:
        """Return the interned symbol registered under ``name``."""
        with cls._lock:
            symbol = cls._registry.get(name)
            if symbol is None:
                symbol = cls(name)
                symbol._interned = True
                cls._registry[name] = symbol
            return symbol

    @property
    def is_interned(self) -> bool:
        return self._interned

    @classmethod
    def parse(cls, value: str) -> Symbol | None:
        """Parse ``"Symbol(name)"`` back into the interned symbol."""
        match = SYMBOL_PATTERN.match(value)
        if not match:
            return None
        return cls.for_(match.group(1))

    def __str__(self) -> str:
        return f"Symbol({self.description or ''})"

    def __repr__(self) -> str:
        return str(self)


# Identity markers attached to every resource output
RESOURCE_KIND = Symbol.for_("crucible::ResourceKind")
RESOURCE_ID = Symbol.for_("crucible::ResourceID")
RESOURCE_FQN = Symbol.for_("crucible::ResourceFQN")
RESOURCE_SEQ = Symbol.for_("crucible::ResourceSeq")
RESOURCE_SCOPE = Symbol.for_("crucible::ResourceScope")
DESTROY_STRATEGY = Symbol.for_("crucible::DestroyStrategy")

RESOURCE_MARKERS = (
    RESOURCE_KIND,
    RESOURCE_ID,
    RESOURCE_FQN,
    RESOURCE_SEQ,
    RESOURCE_SCOPE,
    DESTROY_STRATEGY,
)
