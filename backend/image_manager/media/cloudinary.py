"""Cloudinary media store.

Talks to the Cloudinary REST API directly through httpx:

  POST {api_base_url}/{cloud_name}/image/upload            (signed upload)
  GET  {api_base_url}/{cloud_name}/resources/image/upload  (admin API, basic auth)

Uploads are signed with the SDK's ``api_sign_request`` (SHA-1 over the
sorted parameters followed by the API secret). The folder, format
whitelist and the ``c_limit`` resize directive are sent with every upload so
the store enforces them.
"""
import logging
import re
import time
from typing import Dict, List, Optional

import httpx
from cloudinary.utils import api_sign_request

from image_manager.config import CloudinarySecrets, MediaStoreSettings
from image_manager.errors import UnsupportedFormatError, UpstreamStorageError

from .store import MediaStore, StoredImage

logger = logging.getLogger(__name__)

# e.g. "Image file format bmp not allowed"
_FORMAT_REJECTED_RE = re.compile(r"format\s+(\w+)\s+not allowed", re.IGNORECASE)


def sign_params(params: Dict[str, str], api_secret: str) -> str:
    """Compute the Cloudinary request signature for *params*.

    Empty values are left out of the signed string, matching what the API
    ignores on its side.
    """
    return api_sign_request(
        {key: value for key, value in params.items() if value not in (None, "")},
        api_secret,
    )


class CloudinaryMediaStore(MediaStore):
    """MediaStore backed by a Cloudinary account.

    Args:
        credentials: Cloud name, API key and API secret.
        settings: Namespace, whitelist, resize and listing parameters.
        transport: Optional httpx transport (tests inject ``httpx.MockTransport``).
    """

    def __init__(
        self,
        credentials: CloudinarySecrets,
        settings: MediaStoreSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not credentials.configured:
            raise ValueError("Cloudinary credentials are not configured")
        self._credentials = credentials
        self._settings = settings
        self._transport = transport

    @property
    def namespace(self) -> str:
        return self._settings.namespace

    @property
    def transformation(self) -> str:
        return f"c_{self._settings.crop},w_{self._settings.max_width}"

    def _client(self) -> httpx.AsyncClient:
        base_url = f"{self._settings.api_base_url.rstrip('/')}/{self._credentials.cloud_name}"
        return httpx.AsyncClient(
            base_url=base_url,
            timeout=self._settings.timeout_seconds,
            transport=self._transport,
        )

    def upload_params(self, public_id: Optional[str], timestamp: Optional[int] = None) -> Dict[str, str]:
        """Build the signed form fields for an upload (without the file)."""
        params = {
            "folder": self.namespace,
            "allowed_formats": ",".join(self._settings.allowed_formats),
            "transformation": self.transformation,
            "timestamp": str(timestamp if timestamp is not None else int(time.time())),
        }
        if public_id:
            params["public_id"] = public_id
        params["signature"] = sign_params(params, self._credentials.api_secret)
        params["api_key"] = self._credentials.api_key
        return params

    async def upload(
        self,
        content: bytes,
        public_id: Optional[str],
        filename: str,
        content_type: str = "application/octet-stream",
    ) -> StoredImage:
        params = self.upload_params(public_id)
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/image/upload",
                    data=params,
                    files={"file": (filename, content, content_type)},
                )
        except httpx.HTTPError as exc:
            logger.error("Cloudinary upload of %s failed: %s", filename, exc)
            raise UpstreamStorageError(f"Cloudinary upload failed: {exc}") from exc

        if resp.status_code >= 400:
            raise self._error_from_response(resp, action="upload")

        data = resp.json()
        url = data.get("secure_url") or data.get("url")
        if not url:
            raise UpstreamStorageError("Cloudinary upload response is missing secure_url")

        logger.info("Uploaded %s to Cloudinary as %s", filename, data.get("public_id"))
        return StoredImage(
            url=url,
            public_id=data.get("public_id", ""),
            format=data.get("format", ""),
        )

    async def list_images(self, max_results: int) -> List[str]:
        try:
            async with self._client() as client:
                resp = await client.get(
                    "/resources/image/upload",
                    params={
                        "prefix": f"{self.namespace}/",
                        "max_results": max_results,
                    },
                    auth=(self._credentials.api_key, self._credentials.api_secret),
                )
        except httpx.HTTPError as exc:
            logger.error("Cloudinary listing failed: %s", exc)
            raise UpstreamStorageError(f"Cloudinary listing failed: {exc}") from exc

        if resp.status_code >= 400:
            raise self._error_from_response(resp, action="listing")

        resources = resp.json().get("resources", [])
        return [r["secure_url"] for r in resources if r.get("secure_url")]

    @staticmethod
    def _error_from_response(resp: httpx.Response, action: str) -> Exception:
        """Translate a Cloudinary error response into our taxonomy."""
        try:
            message = resp.json().get("error", {}).get("message", "")
        except (ValueError, AttributeError):
            message = ""
        message = message or resp.text or f"HTTP {resp.status_code}"

        match = _FORMAT_REJECTED_RE.search(message)
        if resp.status_code == 400 and match:
            logger.info("Cloudinary rejected format %s", match.group(1))
            return UnsupportedFormatError(message, extension=match.group(1).lower())

        logger.error("Cloudinary %s failed (%s): %s", action, resp.status_code, message)
        return UpstreamStorageError(
            f"Cloudinary {action} failed: {message}",
            upstream_status=resp.status_code,
        )
