"""
SQLite storage adapter.

Documents live in a single key/value table as JSON text. Uses aiosqlite
for async access; each operation opens its own short-lived connection.
"""

import json
from pathlib import Path
from typing import Any, List, Optional

import aiosqlite
import structlog

from fincoach.core.exceptions import StorageError
from fincoach.persistence.storage.base import StorageAdapter

log = structlog.get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
)
"""


class SqliteStorageAdapter(StorageAdapter):
    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._initialized = False

    async def initialize(self) -> None:
        """Create the database file and table if needed (idempotent)."""
        if self._initialized:
            return
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA journal_mode = WAL")
                await db.execute(SCHEMA)
                await db.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to initialize {self.db_path}: {e}") from e
        self._initialized = True
        log.info("sqlite_storage_initialized", path=str(self.db_path))

    async def save(self, key: str, data: Any) -> None:
        try:
            payload = json.dumps(data)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot serialize document for key '{key}': {e}") from e

        await self.initialize()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, datetime('now'))
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, payload),
                )
                await db.commit()
        except aiosqlite.Error as e:
            log.error("storage_save_failed", key=key, error=str(e))
            raise StorageError(f"Failed to save '{key}': {e}") from e

    async def load(self, key: str) -> Optional[Any]:
        await self.initialize()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
                row = await cursor.fetchone()
        except aiosqlite.Error as e:
            log.error("storage_load_failed", key=key, error=str(e))
            raise StorageError(f"Failed to load '{key}': {e}") from e

        if row is None:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt document for key '{key}': {e}") from e

    async def delete(self, key: str) -> None:
        await self.initialize()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                await db.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to delete '{key}': {e}") from e

    async def exists(self, key: str) -> bool:
        await self.initialize()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute("SELECT 1 FROM kv_store WHERE key = ?", (key,))
                return await cursor.fetchone() is not None
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to check '{key}': {e}") from e

    async def list(self, prefix: str = "") -> List[str]:
        await self.initialize()
        try:
            async with aiosqlite.connect(self.db_path) as db:
                cursor = await db.execute(
                    "SELECT key FROM kv_store WHERE substr(key, 1, ?) = ? ORDER BY key",
                    (len(prefix), prefix),
                )
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to list keys with prefix '{prefix}': {e}") from e
        return [row[0] for row in rows]
