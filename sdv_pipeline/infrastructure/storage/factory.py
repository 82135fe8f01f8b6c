from functools import lru_cache
from typing import Optional

from .base import StorageBackend
from .local_storage import LocalFileStorage
from .memory_storage import MemoryStorage
from ...core.config import StorageSettings, get_settings
from ...core.exceptions import FileStorageError


def create_storage(settings: Optional[StorageSettings] = None) -> StorageBackend:
    settings = settings or get_settings().storage
    backend = settings.default_storage.lower()

    if backend == "local":
        return LocalFileStorage(settings.local_storage_path)
    if backend == "memory":
        return MemoryStorage()
    if backend == "s3":
        from .s3_storage import S3Storage
        return S3Storage(settings)

    raise FileStorageError(f"Unknown storage backend '{settings.default_storage}'")


@lru_cache
def get_storage() -> StorageBackend:
    """Process-wide storage backend chosen by STORAGE_DEFAULT_STORAGE."""
    return create_storage()
