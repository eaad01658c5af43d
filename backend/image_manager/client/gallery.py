"""Gallery of committed images.

Holds the URLs returned by uploads and by the listing endpoint, newest
commits first, and implements the per-image copy-link and download actions.
"""
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple, Union

from image_manager.errors import DownloadError, ImageManagerError
from image_manager.naming import clean_display_name, derived_name, short_name

from .api import ImageManagerClient

logger = logging.getLogger(__name__)

# How long a copy acknowledgement stays visible.
COPY_ACK_SECONDS = 2.0

REFRESH_FAILED_MESSAGE = "Failed to fetch images"


@dataclass(frozen=True)
class CommittedImage:
    """An image that lives in the media store. Immutable."""
    url: str
    derived_name: str = field(default="")

    def __post_init__(self) -> None:
        if not self.derived_name:
            object.__setattr__(self, "derived_name", derived_name(self.url))

    @property
    def display_name(self) -> str:
        return clean_display_name(self.derived_name)

    @property
    def short_name(self) -> str:
        return short_name(self.display_name)


class Gallery:
    """Ordered list of committed images plus the per-image actions.

    Args:
        client: Backend client used for listing and downloads.
        clipboard: Callable that writes text to the system clipboard.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        client: ImageManagerClient,
        clipboard: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._clipboard = clipboard
        self._clock = clock
        self._images: List[CommittedImage] = []
        self._copied: Optional[Tuple[str, float]] = None
        self.last_error: Optional[str] = None

    @property
    def images(self) -> Tuple[CommittedImage, ...]:
        return tuple(self._images)

    @property
    def urls(self) -> List[str]:
        return [image.url for image in self._images]

    def __len__(self) -> int:
        return len(self._images)

    async def refresh(self) -> List[CommittedImage]:
        """Replace the gallery with the listing endpoint's result."""
        try:
            urls = await self._client.list_images()
        except ImageManagerError as exc:
            logger.error("Fetch images error: %s", exc.message)
            self.last_error = REFRESH_FAILED_MESSAGE
            raise
        self._images = [CommittedImage(url) for url in urls]
        self.last_error = None
        return list(self._images)

    def prepend(self, urls: Iterable[str]) -> None:
        """Put freshly committed URLs ahead of the existing images, order kept."""
        self._images = [CommittedImage(url) for url in urls] + self._images

    def copy_link(self, url: str) -> bool:
        """Copy *url* to the clipboard; best effort, never raises."""
        if self._clipboard is not None:
            try:
                self._clipboard(url)
            except Exception as exc:
                logger.warning("Copy to clipboard failed for %s: %s", url, exc)
                return False
        self._copied = (url, self._clock())
        return True

    def is_copied(self, url: str) -> bool:
        """Whether the copy acknowledgement for *url* is still showing."""
        if self._copied is None:
            return False
        copied_url, copied_at = self._copied
        return copied_url == url and self._clock() - copied_at < COPY_ACK_SECONDS

    async def download(self, url: str, dest_dir: Union[str, Path]) -> Path:
        """Save the image behind *url* into *dest_dir* under its display name.

        Raises:
            DownloadError: If fetching or writing fails. The message is also
                kept in ``last_error`` so the caller can show it.
        """
        image = CommittedImage(url)
        # The name comes from the URL; keep only its final component.
        filename = Path(image.display_name).name
        if filename in ("", ".", ".."):
            self.last_error = "Download failed: no usable file name in URL"
            logger.error("%s: %s", self.last_error, url)
            raise DownloadError(self.last_error, url=url)
        target = Path(dest_dir) / filename
        try:
            content = await self._client.fetch(url)
            target.write_bytes(content)
        except DownloadError as exc:
            logger.error("Download failed: %s", exc.message)
            self.last_error = exc.message
            raise
        except OSError as exc:
            logger.error("Download failed: cannot write %s: %s", target, exc)
            self.last_error = f"Download failed: cannot write {target.name}"
            raise DownloadError(self.last_error, url=url) from exc

        logger.info("Downloaded %s to %s (%d bytes)", url, target, len(content))
        return target
