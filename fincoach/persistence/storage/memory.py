"""In-memory storage adapter.

Documents are held as serialized JSON so callers never share mutable
state with the store.
"""

import json
from typing import Any, Dict, List, Optional

from fincoach.core.exceptions import StorageError
from fincoach.persistence.storage.base import StorageAdapter


class MemoryStorageAdapter(StorageAdapter):
    def __init__(self):
        self._documents: Dict[str, str] = {}

    async def save(self, key: str, data: Any) -> None:
        try:
            self._documents[key] = json.dumps(data)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Cannot serialize document for key '{key}': {e}") from e

    async def load(self, key: str) -> Optional[Any]:
        raw = self._documents.get(key)
        return json.loads(raw) if raw is not None else None

    async def delete(self, key: str) -> None:
        self._documents.pop(key, None)

    async def exists(self, key: str) -> bool:
        return key in self._documents

    async def list(self, prefix: str = "") -> List[str]:
        return sorted(k for k in self._documents if k.startswith(prefix))

    def clear(self) -> None:
        self._documents.clear()
