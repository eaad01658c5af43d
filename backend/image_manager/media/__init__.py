"""External media store adapters.

The backend never touches image bytes beyond forwarding them: storage,
format enforcement and the resize directive are delegated to the store.
"""
from .cloudinary import CloudinaryMediaStore
from .store import MediaStore, StoredImage

__all__ = [
    "CloudinaryMediaStore",
    "MediaStore",
    "StoredImage",
]
