"""
Date-partitioned file storage adapter.

Layout under the base directory:

    <base>/2026-10-19/<key>.json     one copy per day the key was written
    <base>/<key>_latest.json         un-bucketed pointer to the newest copy

Keys are percent-encoded into single file names. ``load`` reads the latest
document, then today's bucket, then every bucket newest-first. ``list``
only looks inside real date buckets, so the latest pointers never show up
as keys of their own.
"""

import asyncio
import json
import re
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, List, Optional
from urllib.parse import quote, unquote

import structlog

from fincoach.core.exceptions import StorageError
from fincoach.persistence.storage.base import StorageAdapter
from fincoach.persistence.storage.file import write_atomic

log = structlog.get_logger(__name__)

BUCKET_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
LATEST_SUFFIX = "_latest.json"


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


class DatedFileStorageAdapter(StorageAdapter):
    def __init__(self, base_dir: Path, today: Callable[[], date] = _utc_today):
        self.base_dir = Path(base_dir)
        self._today = today

    @staticmethod
    def _filename(key: str) -> str:
        if not key:
            raise StorageError("Invalid storage key: ''")
        return quote(key, safe="")

    def _latest_path(self, key: str) -> Path:
        return self.base_dir / f"{self._filename(key)}{LATEST_SUFFIX}"

    def _bucket_path(self, bucket: str, key: str) -> Path:
        return self.base_dir / bucket / f"{self._filename(key)}.json"

    def _buckets(self) -> List[str]:
        """Date bucket names, newest first."""
        if not self.base_dir.is_dir():
            return []
        names = [
            entry.name
            for entry in self.base_dir.iterdir()
            if entry.is_dir() and BUCKET_PATTERN.match(entry.name)
        ]
        return sorted(names, reverse=True)

    async def save(self, key: str, data: Any) -> None:
        try:
            payload = json.dumps(data, indent=2)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot serialize document for key '{key}': {e}") from e

        bucket = self._today().isoformat()
        try:
            await asyncio.to_thread(write_atomic, self._bucket_path(bucket, key), payload)
            await asyncio.to_thread(write_atomic, self._latest_path(key), payload)
        except OSError as e:
            log.error("storage_save_failed", key=key, bucket=bucket, error=str(e))
            raise StorageError(f"Failed to save '{key}': {e}") from e

    async def load(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(self._load_sync, key)

    def _load_sync(self, key: str) -> Optional[Any]:
        today = self._today().isoformat()
        candidates = [self._latest_path(key), self._bucket_path(today, key)]
        candidates.extend(
            self._bucket_path(bucket, key) for bucket in self._buckets() if bucket != today
        )

        for path in candidates:
            try:
                raw = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f"Failed to load '{key}' from {path}: {e}") from e
            try:
                return json.loads(raw)
            except json.JSONDecodeError as e:
                raise StorageError(f"Corrupt document for key '{key}' at {path}: {e}") from e
        return None

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    def _delete_sync(self, key: str) -> None:
        paths = [self._latest_path(key)]
        paths.extend(self._bucket_path(bucket, key) for bucket in self._buckets())
        try:
            for path in paths:
                path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete '{key}': {e}") from e

    async def exists(self, key: str) -> bool:
        return await asyncio.to_thread(self._exists_sync, key)

    def _exists_sync(self, key: str) -> bool:
        if self._latest_path(key).is_file():
            return True
        return any(self._bucket_path(b, key).is_file() for b in self._buckets())

    async def list(self, prefix: str = "") -> List[str]:
        return await asyncio.to_thread(self._list_sync, prefix)

    def _list_sync(self, prefix: str) -> List[str]:
        keys = set()
        for bucket in self._buckets():
            for path in (self.base_dir / bucket).glob("*.json"):
                key = unquote(path.name[: -len(".json")])
                if key.startswith(prefix):
                    keys.add(key)
        return sorted(keys)
