import threading
from typing import Dict

from .base import StorageBackend, StorageFileInfo
from ...core.exceptions import FileStorageError


class MemoryStorage(StorageBackend):
    """Process-local storage for tests and single-process runs."""

    name = "memory"

    def __init__(self):
        self._objects: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, path: str, data: bytes) -> StorageFileInfo:
        with self._lock:
            self._objects[path] = bytes(data)
        return StorageFileInfo.for_bytes(path, data, backend=self.name)

    def get(self, path: str) -> bytes:
        with self._lock:
            try:
                return self._objects[path]
            except KeyError:
                raise FileStorageError(f"File not found: {path}", path=path)

    def delete(self, path: str) -> bool:
        with self._lock:
            return self._objects.pop(path, None) is not None

    def exists(self, path: str) -> bool:
        with self._lock:
            return path in self._objects

    def paths(self):
        with self._lock:
            return sorted(self._objects)
