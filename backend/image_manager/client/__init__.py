"""Client library for the image manager backend.

Provides the staged-upload workflow (select, rename, remove, clear, commit)
and the gallery of committed images.
"""
from .api import ImageManagerClient
from .gallery import CommittedImage, Gallery
from .preview import PreviewAllocator, PreviewHandle
from .sources import LocalFile, SourceFile
from .staging import CommitPolicy, CommitResult, StagedFile, StagedUploadManager

__all__ = [
    "ImageManagerClient",
    "CommittedImage",
    "Gallery",
    "PreviewAllocator",
    "PreviewHandle",
    "LocalFile",
    "SourceFile",
    "CommitPolicy",
    "CommitResult",
    "StagedFile",
    "StagedUploadManager",
]
