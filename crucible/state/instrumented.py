"""
Crucible State - Instrumented wrapper.

Every Scope talks to its store through this wrapper, which logs the
duration and failures of each call.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from loguru import logger

from crucible.state.base import State, StateStore

T = TypeVar("T")


class InstrumentedStateStore(StateStore):
    """Delegating store that times every operation."""

    def __init__(self, inner: StateStore):
        super().__init__(inner.scope)
        self.inner = inner
        self._name = type(inner).__name__

    async def _timed(self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        start = time.perf_counter()
        try:
            return await fn()
        except Exception as e:
            logger.error(f"❌ {self._name}.{operation} failed: {e}")
            raise
        finally:
            elapsed = (time.perf_counter() - start) * 1000
            logger.debug(f"📊 {self._name}.{operation} took {elapsed:.1f}ms")

    async def init(self) -> None:
        await self._timed("init", self.inner.init)

    async def deinit(self) -> None:
        await self._timed("deinit", self.inner.deinit)

    async def list(self) -> list[str]:
        return await self._timed("list", self.inner.list)

    async def count(self) -> int:
        return await self._timed("count", self.inner.count)

    async def get(self, key: str) -> State | None:
        return await self._timed("get", lambda: self.inner.get(key))

    async def get_batch(self, ids: list[str]) -> dict[str, State]:
        return await self._timed("get_batch", lambda: self.inner.get_batch(ids))

    async def all(self) -> dict[str, State]:
        return await self._timed("all", self.inner.all)

    async def set(self, key: str, value: State) -> None:
        await self._timed("set", lambda: self.inner.set(key, value))

    async def delete(self, key: str) -> None:
        await self._timed("delete", lambda: self.inner.delete(key))
