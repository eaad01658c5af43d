"""Error taxonomy shared by the backend endpoints and the client library.

Every error carries a human-readable ``message`` and the HTTP ``status_code``
an endpoint answers with when the error escapes a request handler.
"""
from typing import Optional


class ImageManagerError(Exception):
    """Base exception for image manager errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class NoFileError(ImageManagerError):
    """Raised when a request carries no file part, or nothing is staged."""
    def __init__(self, message: str = "No file uploaded"):
        super().__init__(message, status_code=400)


class UnsupportedFormatError(ImageManagerError):
    """Raised when an image format is outside the allowed whitelist."""
    def __init__(self, message: str, extension: Optional[str] = None):
        self.extension = extension
        super().__init__(message, status_code=400)


class UpstreamStorageError(ImageManagerError):
    """Raised when the external media store is unavailable or rejects a call."""
    def __init__(self, message: str, upstream_status: Optional[int] = None):
        self.upstream_status = upstream_status
        super().__init__(message, status_code=500)


class InvalidFileError(ImageManagerError):
    """Raised when a locally selected file cannot be read."""
    def __init__(self, message: str, filename: Optional[str] = None):
        self.filename = filename
        super().__init__(message, status_code=400)


class IndexOutOfRangeError(ImageManagerError, IndexError):
    """Raised when a staged-file index does not exist."""
    def __init__(self, index: int, size: int):
        self.index = index
        self.size = size
        super().__init__(
            f"Staged file index {index} out of range (0..{size - 1})" if size
            else f"Staged file index {index} out of range (nothing staged)",
            status_code=400,
        )


class CommitInProgressError(ImageManagerError):
    """Raised when the staged set is touched while a commit is running."""
    def __init__(self, message: str = "A commit is already in progress"):
        super().__init__(message, status_code=409)


class DownloadError(ImageManagerError):
    """Raised when a gallery image cannot be downloaded."""
    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        super().__init__(message, status_code=502)
