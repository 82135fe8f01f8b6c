from abc import ABC, abstractmethod
from typing import Any, Optional, Union

import chardet

from ..core.logging import get_logger

logger = get_logger(__name__)


class BaseProcessor(ABC):
    """
    Abstract base class for file processors.

    Subclasses turn raw file content into normalized records; decoding is
    shared here.
    """

    # Below this chardet confidence the detected encoding is not trusted
    min_encoding_confidence = 0.7

    def __init__(self, encoding: Optional[str] = None):
        self.encoding = encoding
        self.logger = logger

    def decode(self, content: Union[str, bytes]) -> str:
        """
        Decode raw bytes to text.

        An explicit encoding wins; otherwise UTF-8 (with or without BOM) is
        tried before falling back to chardet.
        """
        if isinstance(content, str):
            return content

        if self.encoding:
            return content.decode(self.encoding, errors="replace")

        try:
            return content.decode("utf-8-sig")
        except UnicodeDecodeError:
            pass

        detected = chardet.detect(content[:100_000])
        encoding = detected.get("encoding") or "latin-1"
        confidence = detected.get("confidence") or 0

        if confidence < self.min_encoding_confidence:
            self.logger.warning(
                f"Low confidence encoding detection ({encoding}, {confidence:.2f}), decoding as latin-1"
            )
            encoding = "latin-1"
        else:
            self.logger.info(f"Detected encoding: {encoding} (confidence: {confidence:.2f})")

        return content.decode(encoding, errors="replace")

    @abstractmethod
    def normalize(self, content: Union[str, bytes]) -> Any:
        """Parse ``content`` into normalized records."""
