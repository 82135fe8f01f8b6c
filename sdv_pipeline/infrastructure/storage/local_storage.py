"""
Local file storage implementation.
"""

import logging
from pathlib import Path
from typing import Optional

from .base import StorageBackend, StorageFileInfo
from ...core.config import get_settings
from ...core.exceptions import FileStorageError

logger = logging.getLogger(__name__)


class LocalFileStorage(StorageBackend):
    """
    Local filesystem storage.

    Paths are resolved under ``base_path``; anything that escapes it is refused.
    """

    name = "local"

    def __init__(self, base_path: Optional[str] = None, create_dirs: bool = True):
        self.base_path = Path(base_path or get_settings().storage.local_storage_path).resolve()
        self.create_dirs = create_dirs

        if self.create_dirs:
            self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        full_path = (self.base_path / path).resolve()
        if full_path != self.base_path and self.base_path not in full_path.parents:
            raise FileStorageError("Path escapes the storage root", path=path)
        return full_path

    def put(self, path: str, data: bytes) -> StorageFileInfo:
        full_path = self._resolve(path)
        try:
            if self.create_dirs:
                full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to save file {path}: {e}")
            raise FileStorageError(f"Failed to save file: {e}", path=path)

        logger.debug(f"Stored {len(data)} bytes at {full_path}")
        return StorageFileInfo.for_bytes(path, data, backend=self.name)

    def get(self, path: str) -> bytes:
        full_path = self._resolve(path)
        try:
            return full_path.read_bytes()
        except FileNotFoundError:
            raise FileStorageError(f"File not found: {path}", path=path)
        except OSError as e:
            logger.error(f"Failed to read file {path}: {e}")
            raise FileStorageError(f"Failed to read file: {e}", path=path)

    def delete(self, path: str) -> bool:
        full_path = self._resolve(path)
        try:
            full_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete file {path}: {e}")
            raise FileStorageError(f"Failed to delete file: {e}", path=path)
        return True

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()
