"""Shared test fixtures and configuration for backend tests."""
from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from image_manager.config import DEFAULT_ALLOWED_FORMATS, MediaStoreSettings
from image_manager.errors import UnsupportedFormatError
from image_manager.images.service import ImageService, get_image_service, set_image_service
from image_manager.main import app
from image_manager.media.store import MediaStore, StoredImage
from image_manager.naming import extension_of


class InMemoryMediaStore(MediaStore):
    """MediaStore keeping objects in a dict, with Cloudinary-like URLs."""

    BASE_URL = "https://res.example.com/demo/image/upload"

    def __init__(self, namespace: str = "my-images") -> None:
        self._namespace = namespace
        self.objects: Dict[str, Tuple[str, bytes]] = {}
        self.fail_with: Optional[Exception] = None
        self.list_calls: List[int] = []

    @property
    def namespace(self) -> str:
        return self._namespace

    async def upload(self, content, public_id, filename, content_type="application/octet-stream"):
        if self.fail_with is not None:
            raise self.fail_with
        fmt = extension_of(filename).lower() or "png"
        if fmt not in DEFAULT_ALLOWED_FORMATS:
            raise UnsupportedFormatError(f"Image file format {fmt} not allowed", extension=fmt)
        key = f"{self._namespace}/{public_id or f'generated{len(self.objects)}'}"
        url = f"{self.BASE_URL}/{key}.{fmt}"
        self.objects[key] = (url, content)
        return StoredImage(url=url, public_id=key, format=fmt)

    async def list_images(self, max_results):
        self.list_calls.append(max_results)
        if self.fail_with is not None:
            raise self.fail_with
        return [url for url, _ in self.objects.values()][:max_results]


@pytest.fixture
def media_store() -> InMemoryMediaStore:
    return InMemoryMediaStore()


@pytest.fixture
def image_service(media_store):
    """Install an ImageService over the in-memory store for the test."""
    original = get_image_service()
    service = ImageService(media_store, MediaStoreSettings())
    set_image_service(service)
    yield service
    set_image_service(original)


@pytest.fixture
def api_client(image_service):
    """Provide a TestClient for the main FastAPI app with the store installed."""
    return TestClient(app)
