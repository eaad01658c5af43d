"""Image Manager: upload images to a managed media store and browse them.

The backend (``image_manager.main``) forwards uploads to Cloudinary; the
client library (``image_manager.client``) stages, renames and commits files
and keeps the gallery of committed images.
"""

__version__ = "0.1.0"
