"""Abstract MediaStore interface.

Every external media back-end must implement this interface so the image
service stays store-agnostic. The only shipped implementation is
``CloudinaryMediaStore``; tests use an in-memory store.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class StoredImage:
    """Result of a successful upload."""
    url: str
    public_id: str
    format: str = ""


class MediaStore(ABC):
    """Abstract base class for external media stores."""

    @property
    @abstractmethod
    def namespace(self) -> str:
        """Fixed folder/prefix every uploaded object is grouped under."""

    @abstractmethod
    async def upload(
        self,
        content: bytes,
        public_id: Optional[str],
        filename: str,
        content_type: str = "application/octet-stream",
    ) -> StoredImage:
        """Store *content* as ``<namespace>/<public_id>``.

        Args:
            content: Raw image bytes.
            public_id: Object identifier inside the namespace (no extension).
                       ``None`` lets the store generate one.
            filename: Original filename, forwarded for format detection.
            content_type: MIME type reported by the uploader.

        Returns:
            The stored object's public URL and identifiers.

        Raises:
            UnsupportedFormatError: If the store rejects the image format.
            UpstreamStorageError: On any other store failure.
        """

    @abstractmethod
    async def list_images(self, max_results: int) -> List[str]:
        """Return up to *max_results* public URLs under the namespace.

        Raises:
            UpstreamStorageError: On store failure.
        """
