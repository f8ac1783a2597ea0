"""
Crucible State - Filesystem store (default).

Layout: ``<root>/.crucible/<app>/<stage>/.../<id>.json``, one pretty-printed
JSON document per resource. ``/`` in ids is stored as ``:`` in file names
(``:`` is never valid in an id).
"""

from __future__ import annotations

import asyncio
import json
import os
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

from crucible.core.exceptions import PersistenceError
from crucible.state.base import SerializingStateStore

if TYPE_CHECKING:
    from crucible.scope import Scope

_SUFFIX = ".json"


class FileSystemStateStore(SerializingStateStore):
    """State store writing one JSON file per record."""

    def __init__(self, scope: Scope, root_dir: Path | None = None):
        super().__init__(scope)
        base = Path(root_dir) if root_dir is not None else Path(scope.dot_dir)
        self.dir = base.joinpath(*scope.chain)
        self._initialized = False

    def _path(self, key: str) -> Path:
        return self.dir / f"{key.replace('/', ':')}{_SUFFIX}"

    async def init(self) -> None:
        if self._initialized:
            return
        await asyncio.to_thread(self.dir.mkdir, parents=True, exist_ok=True)
        self._initialized = True

    async def deinit(self) -> None:
        def _remove_if_empty() -> None:
            try:
                self.dir.rmdir()
            except OSError:
                # Not empty or already gone
                pass

        await asyncio.to_thread(_remove_if_empty)
        self._initialized = False

    async def list(self) -> list[str]:
        def _list() -> list[str]:
            if not self.dir.is_dir():
                return []
            return sorted(
                entry.name[: -len(_SUFFIX)].replace(":", "/")
                for entry in os.scandir(self.dir)
                if entry.is_file() and entry.name.endswith(_SUFFIX)
            )

        return await asyncio.to_thread(_list)

    async def _read(self, key: str) -> dict[str, Any] | None:
        path = self._path(key)

        def _load() -> dict[str, Any] | None:
            try:
                return json.loads(path.read_text(encoding="utf-8"))
            except FileNotFoundError:
                return None

        try:
            return await asyncio.to_thread(_load)
        except (OSError, ValueError) as e:
            raise PersistenceError("read", str(e), {"path": str(path)}) from e

    async def _write(self, key: str, document: dict[str, Any]) -> None:
        path = self._path(key)
        await self.init()

        def _dump() -> None:
            tmp = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
            tmp.write_text(json.dumps(document, indent=2), encoding="utf-8")
            os.replace(tmp, path)

        try:
            await asyncio.to_thread(_dump)
        except (OSError, TypeError) as e:
            raise PersistenceError("write", str(e), {"path": str(path)}) from e
        logger.trace(f"💾 Wrote state {path}")

    async def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise PersistenceError("delete", str(e), {"path": str(path)}) from e
