"""ImageService — thin orchestration layer over a MediaStore.

Resolves the storage name of an upload, enforces the format whitelist and
delegates to the configured store. A module-level singleton is initialised
in ``image_manager/main.py`` from config.
"""
import logging
from typing import List, Optional

from image_manager.config import MediaStoreSettings
from image_manager.errors import NoFileError, UnsupportedFormatError
from image_manager.media.store import MediaStore, StoredImage
from image_manager.naming import extension_of, strip_extension

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_service: Optional["ImageService"] = None


def get_image_service() -> Optional["ImageService"]:
    """Return the global ImageService, or None if not yet initialised."""
    return _service


def set_image_service(service: Optional["ImageService"]) -> None:
    """Set (or replace) the global ImageService instance."""
    global _service
    _service = service


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ImageService:
    """Validates uploads and delegates storage to a MediaStore.

    Args:
        store: Concrete media store to use.
        settings: Whitelist and listing cap.
    """

    def __init__(self, store: MediaStore, settings: MediaStoreSettings) -> None:
        self._store = store
        self._settings = settings

    @property
    def namespace(self) -> str:
        return self._store.namespace

    @staticmethod
    def storage_name(filename: str, desired_name: Optional[str]) -> str:
        """Object identifier for an upload: desired name (or filename) minus extension."""
        return strip_extension(desired_name or filename)

    def check_format(self, filename: str, desired_name: Optional[str] = None) -> None:
        """Reject extensions outside the whitelist.

        Files without any extension are passed through; the store detects
        their format from the content and enforces the same whitelist.
        """
        extension = (extension_of(filename) or extension_of(desired_name or "")).lower()
        if extension and extension not in self._settings.allowed_formats:
            raise UnsupportedFormatError(
                f"Image format '{extension}' is not allowed "
                f"(allowed: {', '.join(self._settings.allowed_formats)})",
                extension=extension,
            )

    async def upload(
        self,
        content: Optional[bytes],
        filename: Optional[str],
        desired_name: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> StoredImage:
        """Store one image and return where it lives.

        Args:
            content: Raw file bytes; ``None`` when the request had no file part.
            filename: Original filename of the upload.
            desired_name: Name chosen by the user, extension included.
            content_type: MIME type reported by the client.

        Returns:
            StoredImage with the public URL.

        Raises:
            NoFileError: If no file was sent.
            UnsupportedFormatError: If the format is outside the whitelist.
            UpstreamStorageError: If the store call fails.
        """
        if content is None or not filename:
            raise NoFileError()

        self.check_format(filename, desired_name)
        public_id = self.storage_name(filename, desired_name)

        logger.debug(
            "[ImageService] uploading %s as %s/%s (%d bytes)",
            filename,
            self.namespace,
            public_id or "<generated>",
            len(content),
        )
        return await self._store.upload(
            content,
            public_id or None,
            filename,
            content_type or "application/octet-stream",
        )

    async def list_images(self) -> List[str]:
        """List stored image URLs, capped at ``max_results``."""
        return await self._store.list_images(self._settings.max_results)
