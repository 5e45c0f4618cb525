"""
Storage adapter contract.

Adapters persist JSON-compatible documents by string key. A missing key is
never an error: ``load`` returns None and ``delete`` is a no-op. Any other
failure surfaces as StorageError.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional


class StorageAdapter(ABC):
    """Pluggable key/value persistence."""

    @abstractmethod
    async def save(self, key: str, data: Any) -> None:
        """Store ``data`` under ``key``, replacing any previous document."""

    @abstractmethod
    async def load(self, key: str) -> Optional[Any]:
        """Return the document stored under ``key``, or None if there is none."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``; deleting a missing key does nothing."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Whether a document is stored under ``key``."""

    @abstractmethod
    async def list(self, prefix: str = "") -> List[str]:
        """Distinct keys starting with ``prefix``, sorted."""

    async def close(self) -> None:
        """Release any held resources."""
        return None
