"""HTTP client for the image manager backend.

This is the only component of the client library that contacts the backend;
``api_base_url`` is the single address it talks to. Relative URLs returned
by the backend are resolved against that base.
"""
import logging
import mimetypes
import re
from typing import List, Optional

import httpx

from image_manager.config import ClientSettings
from image_manager.errors import (
    DownloadError,
    ImageManagerError,
    NoFileError,
    UnsupportedFormatError,
    UpstreamStorageError,
)
from image_manager.naming import resolve_url

logger = logging.getLogger(__name__)

# Both the backend's own whitelist check and the store's rejection, e.g.
# "Image format 'bmp' is not allowed" and "Image file format bmp not allowed".
_FORMAT_REJECTED_RE = re.compile(r"format\s+'?(\w+)'?\s+(?:is\s+)?not allowed", re.IGNORECASE)


class ImageManagerClient:
    """Async client for ``POST /upload`` and ``GET /images``.

    Args:
        base_url: Backend address, e.g. ``http://localhost:5000``.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use MockTransport/ASGITransport).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> "ImageManagerClient":
        return cls(settings.api_base_url, timeout=settings.timeout_seconds)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def upload(self, content: bytes, filename: str, name: Optional[str] = None) -> str:
        """Upload one file and return its absolute URL.

        Args:
            content: File bytes.
            filename: Original filename (sent as the multipart filename).
            name: Desired name with extension; the backend falls back to
                  *filename* when omitted.

        Raises:
            NoFileError, UnsupportedFormatError, UpstreamStorageError
        """
        content_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
        data = {"name": name} if name else None
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/upload",
                    files={"file": (filename, content, content_type)},
                    data=data,
                )
        except httpx.HTTPError as exc:
            raise UpstreamStorageError(f"Upload failed: {exc}") from exc

        if resp.is_error:
            raise self._error_from_response(resp, "Upload failed")

        body = self._json(resp)
        url = body.get("url") if isinstance(body, dict) else None
        if not url or not isinstance(url, str):
            raise UpstreamStorageError("Upload failed, no URL returned")
        return resolve_url(url, self.base_url)

    async def list_images(self) -> List[str]:
        """Fetch the stored image URLs, resolved to absolute form."""
        try:
            async with self._client() as client:
                resp = await client.get("/images")
        except httpx.HTTPError as exc:
            raise UpstreamStorageError(f"Failed to fetch images: {exc}") from exc

        if resp.is_error:
            raise self._error_from_response(resp, "Failed to fetch images")

        urls = self._json(resp)
        if not isinstance(urls, list):
            raise UpstreamStorageError("Failed to fetch images: unexpected response")
        return [resolve_url(url, self.base_url) for url in urls]

    async def fetch(self, url: str) -> bytes:
        """Download the bytes behind an image URL.

        Raises:
            DownloadError: On network failure or an error status.
        """
        try:
            async with self._client() as client:
                resp = await client.get(resolve_url(url, self.base_url))
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise DownloadError(f"Download failed: {exc}", url=url) from exc
        return resp.content

    @staticmethod
    def _json(resp: httpx.Response):
        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamStorageError(f"Invalid response from backend: {exc}") from exc

    @staticmethod
    def _error_from_response(resp: httpx.Response, fallback: str) -> ImageManagerError:
        """Rebuild the backend's error from its ``{"error": ...}`` body."""
        try:
            message = resp.json().get("error") or fallback
        except (ValueError, AttributeError):
            message = fallback
        if not isinstance(message, str):
            message = fallback

        if resp.status_code == 400:
            if message == NoFileError().message:
                return NoFileError(message)
            match = _FORMAT_REJECTED_RE.search(message)
            if match:
                return UnsupportedFormatError(message, extension=match.group(1).lower())
            return ImageManagerError(message, status_code=400)
        return UpstreamStorageError(message, upstream_status=resp.status_code)
