"""
Crucible State - In-memory store.

Keeps serialized documents in a process-wide dict keyed by scope chain, so a
fresh Scope object for the same chain (the next "run" in a test) sees the
records of the previous one.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from crucible.state.base import SerializingStateStore

if TYPE_CHECKING:
    from crucible.scope import Scope

_DOCUMENTS: dict[str, dict[str, dict[str, Any]]] = {}


def reset_memory_state() -> None:
    """Forget every in-memory record (useful for testing)."""
    _DOCUMENTS.clear()


class MemoryStateStore(SerializingStateStore):
    """State store backed by process memory."""

    def __init__(self, scope: Scope):
        super().__init__(scope)
        self._key = "/".join(scope.chain)

    @property
    def _documents(self) -> dict[str, dict[str, Any]]:
        return _DOCUMENTS.setdefault(self._key, {})

    async def deinit(self) -> None:
        if not self._documents:
            _DOCUMENTS.pop(self._key, None)

    async def list(self) -> list[str]:
        return list(self._documents.keys())

    async def _read(self, key: str) -> dict[str, Any] | None:
        document = self._documents.get(key)
        return copy.deepcopy(document) if document is not None else None

    async def _write(self, key: str, document: dict[str, Any]) -> None:
        self._documents[key] = copy.deepcopy(document)

    async def delete(self, key: str) -> None:
        self._documents.pop(key, None)
