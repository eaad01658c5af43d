"""Raw file handles the staging workflow accepts."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from image_manager.errors import InvalidFileError


@dataclass(frozen=True)
class SourceFile:
    """A file already held in memory (e.g. received from another process)."""
    name: str
    content: bytes = field(repr=False)

    def read(self) -> bytes:
        return self.content


@dataclass(frozen=True)
class LocalFile:
    """A file on the local filesystem, read lazily."""
    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    def read(self) -> bytes:
        try:
            return self.path.read_bytes()
        except OSError as exc:
            raise InvalidFileError(f"Cannot read {self.path}: {exc}", filename=self.name) from exc


Source = Union[SourceFile, LocalFile]
RawFile = Union[str, "os.PathLike[str]", SourceFile, LocalFile]


def as_source(raw: RawFile) -> Source:
    """Wrap a path in a LocalFile; pass file objects through unchanged."""
    if isinstance(raw, (SourceFile, LocalFile)):
        return raw
    return LocalFile(Path(raw))
