"""Upload and listing endpoints.

``POST /upload`` forwards one image to the configured media store and
returns its public URL; ``GET /images`` lists stored images under the
fixed namespace.
"""
from .service import ImageService, get_image_service, set_image_service

__all__ = [
    "ImageService",
    "get_image_service",
    "set_image_service",
]
