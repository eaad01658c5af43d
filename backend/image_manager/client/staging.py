"""Staged upload manager.

Owns the files a user has picked but not yet committed. Each staged file
gets a local preview, can be renamed or removed, and is eventually committed
to the backend's upload endpoint.

Commit model:
    - Staged files are uploaded strictly in order, one at a time; each upload
      is awaited before the next one starts.
    - Successful URLs are prepended to the gallery in staged order.
    - The staged list is only changed once processing stops.
    - ``CommitPolicy.HALT`` stops at the first failure and keeps the failed
      and unprocessed files staged; ``CommitPolicy.CONTINUE`` processes every
      file and clears the staged list afterwards.
    - While a commit runs, every other operation on the manager raises
      ``CommitInProgressError``.

Previews are released exactly once: on removal, on clear, when their file
leaves staging after a commit, or when the manager is closed.

Thread Safety:
    Designed for a single asyncio event loop; not thread-safe.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Iterable, List, Optional, Tuple

from image_manager.errors import (
    CommitInProgressError,
    ImageManagerError,
    IndexOutOfRangeError,
    InvalidFileError,
    NoFileError,
)
from image_manager.naming import extension_of, join_extension, strip_extension

from .api import ImageManagerClient
from .gallery import Gallery
from .preview import PreviewAllocator, PreviewHandle
from .sources import RawFile, Source, as_source

logger = logging.getLogger(__name__)

NOTHING_STAGED_MESSAGE = "Please select files to upload"


class CommitPolicy(str, Enum):
    """What a commit does after a file fails to upload.

    Attributes:
        HALT: Stop at the first failure; failed and remaining files stay staged.
        CONTINUE: Upload every file and report each failure.
    """
    HALT = "halt"
    CONTINUE = "continue"


@dataclass(eq=False)
class StagedFile:
    """A selected file waiting to be committed."""
    source: Source
    display_name: str
    extension: str
    preview: Optional[PreviewHandle] = None

    @property
    def upload_name(self) -> str:
        return join_extension(self.display_name, self.extension)

    @property
    def size_kb(self) -> Optional[int]:
        if self.preview is None or self.preview.released:
            return None
        return round(self.preview.size / 1024)


@dataclass
class CommitResult:
    """Outcome of committing one staged file."""
    name: str
    url: Optional[str] = None
    error: Optional[str] = None
    exception: Optional[ImageManagerError] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.url is not None


class StagedUploadManager:
    """Selection, rename, preview and commit of files before upload.

    Args:
        client: Backend client used to upload each file.
        gallery: Gallery that receives committed URLs (optional).
        allocator: Preview allocator; a private one is created when omitted.
        policy: Behaviour after a failed upload during commit.
    """

    def __init__(
        self,
        client: ImageManagerClient,
        gallery: Optional[Gallery] = None,
        allocator: Optional[PreviewAllocator] = None,
        policy: CommitPolicy = CommitPolicy.HALT,
    ) -> None:
        self._client = client
        self._gallery = gallery
        self._allocator = allocator or PreviewAllocator()
        self.policy = policy
        self._files: List[StagedFile] = []
        self._committing = False
        self.last_error: Optional[str] = None

    # -----------------------------------------------------------------------
    # State
    # -----------------------------------------------------------------------

    @property
    def files(self) -> Tuple[StagedFile, ...]:
        return tuple(self._files)

    @property
    def committing(self) -> bool:
        return self._committing

    @property
    def allocator(self) -> PreviewAllocator:
        return self._allocator

    def __len__(self) -> int:
        return len(self._files)

    def _ensure_idle(self) -> None:
        if self._committing:
            raise CommitInProgressError()

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._files):
            raise IndexOutOfRangeError(index, len(self._files))

    def _release(self, staged: StagedFile) -> None:
        self._allocator.release(staged.preview)

    # -----------------------------------------------------------------------
    # Staging
    # -----------------------------------------------------------------------

    def select(self, raw_files: Iterable[RawFile]) -> None:
        """Stage *raw_files* after the files already staged.

        A file whose preview cannot be allocated is still staged, without a
        preview; a warning is logged.
        """
        self._ensure_idle()
        for raw in raw_files:
            source = as_source(raw)
            try:
                preview = self._allocator.acquire(source)
            except InvalidFileError as exc:
                logger.warning("No preview for %s: %s", source.name, exc.message)
                preview = None
            self._files.append(StagedFile(
                source=source,
                display_name=strip_extension(source.name),
                extension=extension_of(source.name),
                preview=preview,
            ))

    def rename(self, index: int, new_name: str) -> None:
        """Set the display name (extension excluded) of the file at *index*."""
        self._ensure_idle()
        self._check_index(index)
        self._files[index].display_name = new_name

    def remove(self, index: int) -> None:
        """Unstage the file at *index* and release its preview."""
        self._ensure_idle()
        self._check_index(index)
        staged = self._files.pop(index)
        self._release(staged)

    def clear_all(self) -> None:
        """Unstage everything and release every preview."""
        self._ensure_idle()
        files, self._files = self._files, []
        for staged in files:
            self._release(staged)

    def close(self) -> None:
        """Teardown: release every preview still held."""
        files, self._files = self._files, []
        for staged in files:
            self._release(staged)

    def __enter__(self) -> "StagedUploadManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -----------------------------------------------------------------------
    # Commit
    # -----------------------------------------------------------------------

    async def _commit_one(self, staged: StagedFile) -> CommitResult:
        name = staged.upload_name
        try:
            content = staged.source.read()
            url = await self._client.upload(content, staged.source.name, name=name)
        except ImageManagerError as exc:
            logger.error("Upload error for %s: %s", name, exc.message)
            return CommitResult(name=name, error=exc.message, exception=exc)
        logger.info("Committed %s -> %s", name, url)
        return CommitResult(name=name, url=url)

    async def commit(self) -> AsyncIterator[CommitResult]:
        """Upload the staged files in order, yielding one result per file.

        Consumers that stop iterating early should close the generator
        (``contextlib.aclosing``); files not yet processed then stay staged.

        Raises:
            NoFileError: If nothing is staged.
            CommitInProgressError: If another commit is running.
        """
        self._ensure_idle()
        if not self._files:
            self.last_error = NOTHING_STAGED_MESSAGE
            raise NoFileError(NOTHING_STAGED_MESSAGE)

        self._committing = True
        self.last_error = None
        batch = list(self._files)
        committed: List[Tuple[StagedFile, str]] = []
        processed = 0
        halted = False
        try:
            for staged in batch:
                result = await self._commit_one(staged)
                processed += 1
                if result.ok:
                    committed.append((staged, result.url))
                else:
                    self.last_error = result.error
                    halted = self.policy is CommitPolicy.HALT
                yield result
                if halted:
                    break
        finally:
            complete = processed == len(batch) and not halted
            self._finish_commit(batch, committed, complete)
            self._committing = False

    async def commit_all(self) -> List[CommitResult]:
        """Run :meth:`commit` to completion and collect its results."""
        return [result async for result in self.commit()]

    def _finish_commit(
        self,
        batch: List[StagedFile],
        committed: List[Tuple[StagedFile, str]],
        complete: bool,
    ) -> None:
        if committed and self._gallery is not None:
            self._gallery.prepend(url for _, url in committed)

        leaving = batch if complete else [staged for staged, _ in committed]
        leaving_ids = {id(staged) for staged in leaving}
        self._files = [staged for staged in self._files if id(staged) not in leaving_ids]
        for staged in leaving:
            self._release(staged)

        logger.info(
            "Commit finished: %d committed, %d still staged",
            len(committed),
            len(self._files),
        )
