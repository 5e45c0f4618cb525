"""
File-backed storage adapter.

One JSON document per key under a base directory. Keys may contain "/" to
nest documents in subdirectories (``sessions/abc`` ->
``<base>/sessions/abc.json``); parent directories are created on save.
Keys that would escape the base directory are rejected.

File I/O runs in a worker thread so the event loop is never blocked.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Any, List, Optional

import structlog

from fincoach.core.exceptions import StorageError
from fincoach.persistence.storage.base import StorageAdapter

log = structlog.get_logger(__name__)

SUFFIX = ".json"


class FileStorageAdapter(StorageAdapter):
    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def _path(self, key: str) -> Path:
        if not key or key.startswith("/") or "\\" in key:
            raise StorageError(f"Invalid storage key: '{key}'")
        if any(part in ("", ".", "..") for part in key.split("/")):
            raise StorageError(f"Invalid storage key: '{key}'")
        return self.base_dir / f"{key}{SUFFIX}"

    async def save(self, key: str, data: Any) -> None:
        path = self._path(key)
        try:
            payload = json.dumps(data, indent=2)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot serialize document for key '{key}': {e}") from e

        try:
            await asyncio.to_thread(write_atomic, path, payload)
        except OSError as e:
            log.error("storage_save_failed", key=key, path=str(path), error=str(e))
            raise StorageError(f"Failed to save '{key}': {e}") from e

    async def load(self, key: str) -> Optional[Any]:
        path = self._path(key)
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            log.error("storage_load_failed", key=key, path=str(path), error=str(e))
            raise StorageError(f"Failed to load '{key}': {e}") from e

        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt document for key '{key}': {e}") from e

    async def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            await asyncio.to_thread(path.unlink, missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete '{key}': {e}") from e

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._path(key).is_file)

    async def list(self, prefix: str = "") -> List[str]:
        return await asyncio.to_thread(self._list_sync, prefix)

    def _list_sync(self, prefix: str) -> List[str]:
        if not self.base_dir.is_dir():
            return []
        keys = []
        for path in self.base_dir.rglob(f"*{SUFFIX}"):
            key = path.relative_to(self.base_dir).as_posix()[: -len(SUFFIX)]
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)


def write_atomic(path: Path, payload: str) -> None:
    """Write via a temp file and rename so readers never see a partial document."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    tmp.write_text(payload, encoding="utf-8")
    os.replace(tmp, path)
