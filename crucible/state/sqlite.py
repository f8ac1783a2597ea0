"""
Crucible State - SQLite store.

All scopes share one database file (default ``<root>/.crucible/state.sqlite``);
rows are keyed by (scope chain, resource id).
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import aiosqlite
from loguru import logger

from crucible.config.constants import STATE_DB_NAME
from crucible.core.exceptions import PersistenceError
from crucible.state.base import SerializingStateStore

if TYPE_CHECKING:
    from crucible.scope import Scope


class SqliteStateStore(SerializingStateStore):
    """
    SQLite-based state persistence.

    Each operation opens its own connection, so the store is safe to use
    from concurrent tasks.
    """

    SCHEMA_VERSION = 1

    def __init__(self, scope: Scope, db_path: Path | None = None):
        """
        Initialize the store.

        Args:
            scope: Scope whose records this store holds.
            db_path: Path to the SQLite database. Defaults to
                ``<dot_dir>/state.sqlite``.
        """
        super().__init__(scope)
        if db_path is None:
            db_path = Path(scope.dot_dir) / STATE_DB_NAME
        self._db_path = Path(db_path)
        self._scope_key = "/".join(scope.chain)
        self._initialized = False

    @property
    def db_path(self) -> Path:
        """Get the database path."""
        return self._db_path

    async def init(self) -> None:
        """Initialize the database schema."""
        if self._initialized:
            return

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute("""
                    CREATE TABLE IF NOT EXISTS schema_version (
                        version INTEGER PRIMARY KEY
                    )
                """)

                cursor = await db.execute("SELECT version FROM schema_version LIMIT 1")
                row = await cursor.fetchone()
                current_version = row[0] if row else 0

                if current_version < self.SCHEMA_VERSION:
                    await self._migrate(db, current_version)

                await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError("init", str(e), {"path": str(self._db_path)}) from e

        self._initialized = True
        logger.debug(f"State database initialized at {self._db_path}")

    async def _migrate(self, db: aiosqlite.Connection, from_version: int) -> None:
        """Run database migrations."""
        if from_version < 1:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS resources (
                    scope TEXT NOT NULL,
                    id TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    status TEXT NOT NULL,
                    document TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (scope, id)
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_resources_scope
                ON resources(scope)
            """)

            await db.execute("DELETE FROM schema_version")
            await db.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (self.SCHEMA_VERSION,),
            )

            logger.info("Migrated state database to version 1")

    async def list(self) -> list[str]:
        await self.init()

        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                "SELECT id FROM resources WHERE scope = ? ORDER BY id",
                (self._scope_key,),
            )
            rows = await cursor.fetchall()
            return [row[0] for row in rows]

    async def count(self) -> int:
        await self.init()

        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM resources WHERE scope = ?",
                (self._scope_key,),
            )
            row = await cursor.fetchone()
            return row[0] if row else 0

    async def _read(self, key: str) -> dict[str, Any] | None:
        await self.init()

        async with aiosqlite.connect(self._db_path) as db:
            cursor = await db.execute(
                "SELECT document FROM resources WHERE scope = ? AND id = ?",
                (self._scope_key, key),
            )
            row = await cursor.fetchone()

        if row is None:
            return None
        return json.loads(row[0])

    async def _write(self, key: str, document: dict[str, Any]) -> None:
        await self.init()

        try:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute(
                    """
                    INSERT OR REPLACE INTO resources (
                        scope, id, kind, status, document, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        self._scope_key,
                        key,
                        document.get("kind", ""),
                        document.get("status", ""),
                        json.dumps(document),
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                await db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError("write", str(e), {"id": key}) from e

    async def delete(self, key: str) -> None:
        await self.init()

        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "DELETE FROM resources WHERE scope = ? AND id = ?",
                (self._scope_key, key),
            )
            await db.commit()
