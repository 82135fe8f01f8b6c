from .base import StorageBackend, StorageFileInfo
from .local_storage import LocalFileStorage
from .memory_storage import MemoryStorage
from .factory import create_storage, get_storage

__all__ = [
    "StorageBackend",
    "StorageFileInfo",
    "LocalFileStorage",
    "MemoryStorage",
    "create_storage",
    "get_storage",
]
