"""
Base storage interface.

Every backend stores opaque bytes under a relative path; chunk staging only
needs put, get and delete.
"""

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict

from ...utils.date_utils import utcnow


@dataclass
class StorageFileInfo:
    """Generic file information metadata."""

    identifier: str  # path or object key
    size: int
    checksum: str
    created_at: datetime = field(default_factory=utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_bytes(cls, identifier: str, data: bytes, **metadata) -> "StorageFileInfo":
        return cls(
            identifier=identifier,
            size=len(data),
            checksum=hashlib.md5(data).hexdigest(),
            metadata=metadata,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "size": self.size,
            "checksum": self.checksum,
            "created_at": self.created_at.isoformat(),
            "metadata": self.metadata,
        }


class StorageBackend(ABC):
    """
    Abstract base class for storage backends.

    Implementations raise FileStorageError on any failure.
    """

    name = "base"

    @abstractmethod
    def put(self, path: str, data: bytes) -> StorageFileInfo:
        """Store ``data`` at ``path``, replacing any existing object."""

    @abstractmethod
    def get(self, path: str) -> bytes:
        """Return the bytes stored at ``path``."""

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Remove ``path``. Returns False if nothing was stored there."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass
