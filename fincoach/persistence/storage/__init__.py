"""Storage adapters and the backend factory."""

from pathlib import Path
from typing import Optional

from fincoach.core.config import StorageBackend, settings
from fincoach.core.exceptions import ConfigurationError

from .base import StorageAdapter
from .dated_file import DatedFileStorageAdapter
from .file import FileStorageAdapter
from .memory import MemoryStorageAdapter
from .sqlite import SqliteStorageAdapter


def create_storage_adapter(
    backend: Optional[StorageBackend] = None,
    data_dir: Optional[Path] = None,
    database_path: Optional[Path] = None,
) -> StorageAdapter:
    """
    Build the configured storage adapter.

    Args:
        backend: memory, file, dated_file or sqlite (defaults to settings)
        data_dir: Base directory for the file backends
        database_path: Database file for the sqlite backend

    Raises:
        ConfigurationError: If the backend name is unknown
    """
    backend = backend or settings.storage_backend
    data_dir = Path(data_dir or settings.data_dir)

    if backend == "memory":
        return MemoryStorageAdapter()
    if backend == "file":
        return FileStorageAdapter(data_dir)
    if backend == "dated_file":
        return DatedFileStorageAdapter(data_dir)
    if backend == "sqlite":
        return SqliteStorageAdapter(database_path or settings.database_path)
    raise ConfigurationError(f"Unknown storage backend: '{backend}'")


__all__ = [
    "StorageAdapter",
    "MemoryStorageAdapter",
    "FileStorageAdapter",
    "DatedFileStorageAdapter",
    "SqliteStorageAdapter",
    "create_storage_adapter",
]
