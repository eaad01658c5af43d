"""Local preview resources for staged files.

A PreviewHandle is an in-memory buffer holding the bytes of one staged file
so it can be displayed before upload. Handles are acquired from and released
through a PreviewAllocator, which keeps the live set so leaks and double
releases are observable.
"""
import logging
import uuid
from typing import Dict, Optional

from image_manager.errors import InvalidFileError

from .sources import Source

logger = logging.getLogger(__name__)


class PreviewHandle:
    """Revocable reference to a staged file's preview bytes."""

    def __init__(self, source_name: str, data: bytes) -> None:
        self.id = str(uuid.uuid4())
        self.source_name = source_name
        self._buffer: Optional[memoryview] = memoryview(data)

    @property
    def released(self) -> bool:
        return self._buffer is None

    @property
    def size(self) -> int:
        return 0 if self._buffer is None else self._buffer.nbytes

    def tobytes(self) -> bytes:
        if self._buffer is None:
            raise RuntimeError(f"Preview {self.id} for {self.source_name} was released")
        return self._buffer.tobytes()

    def _free(self) -> None:
        if self._buffer is not None:
            self._buffer.release()
            self._buffer = None

    def __repr__(self) -> str:
        state = "released" if self.released else f"{self.size} bytes"
        return f"PreviewHandle({self.source_name!r}, {state})"


class PreviewAllocator:
    """Hands out preview handles and tracks which are still live."""

    def __init__(self) -> None:
        self._live: Dict[str, PreviewHandle] = {}
        self.acquired_count = 0
        self.released_count = 0

    @property
    def live_count(self) -> int:
        return len(self._live)

    def acquire(self, source: Source) -> PreviewHandle:
        """Read *source* into a new preview handle.

        Raises:
            InvalidFileError: If the source cannot be read.
        """
        data = source.read()
        if not isinstance(data, (bytes, bytearray)):
            raise InvalidFileError(f"{source.name} did not yield bytes", filename=source.name)
        handle = PreviewHandle(source.name, bytes(data))
        self._live[handle.id] = handle
        self.acquired_count += 1
        return handle

    def release(self, handle: Optional[PreviewHandle]) -> bool:
        """Free *handle*; returns False when there was nothing to free."""
        if handle is None:
            return False
        if handle.released or handle.id not in self._live:
            logger.debug("Preview %s already released", handle.id)
            return False
        del self._live[handle.id]
        handle._free()
        self.released_count += 1
        return True
