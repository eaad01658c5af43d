"""Tests for the staged upload manager.

Covers selection, rename, removal, clearing, preview bookkeeping and the
sequential commit with both failure policies. The backend client is a fake
that records calls and fails on demand.
"""
import asyncio
from contextlib import aclosing

import httpx
import pytest

from image_manager.client.api import ImageManagerClient
from image_manager.client.gallery import Gallery
from image_manager.client.preview import PreviewAllocator
from image_manager.client.sources import LocalFile, SourceFile
from image_manager.client.staging import CommitPolicy, StagedUploadManager
from image_manager.errors import (
    CommitInProgressError,
    IndexOutOfRangeError,
    NoFileError,
    UpstreamStorageError,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class FakeClient:
    """Stands in for ImageManagerClient; fails for names in ``fail_names``."""

    def __init__(self, fail_names=()):
        self.fail_names = set(fail_names)
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def upload(self, content, filename, name=None):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            self.calls.append((filename, name, content))
            if name in self.fail_names:
                raise UpstreamStorageError(f"Cloudinary upload failed: {name}")
            return f"https://cdn.test/my-images/{name}"
        finally:
            self.in_flight -= 1


def _files(*names):
    return [SourceFile(name, name.encode()) for name in names]


def _manager(fail_names=(), policy=CommitPolicy.HALT, existing=()):
    client = FakeClient(fail_names)
    gallery = Gallery(client)
    gallery.prepend(existing)
    allocator = PreviewAllocator()
    manager = StagedUploadManager(client, gallery=gallery, allocator=allocator, policy=policy)
    return manager, client, gallery, allocator


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

class TestSelect:
    def test_strips_extension_and_keeps_order(self):
        manager, *_ = _manager()
        manager.select(_files("b.png", "a.jpg", "archive.tar.gz"))
        assert [f.display_name for f in manager.files] == ["b", "a", "archive.tar"]
        assert [f.extension for f in manager.files] == ["png", "jpg", "gz"]

    def test_selections_are_additive(self):
        manager, *_ = _manager()
        manager.select(_files("a.png"))
        manager.select(_files("b.png"))
        assert [f.display_name for f in manager.files] == ["a", "b"]

    def test_empty_selection_is_noop(self):
        manager, _, _, allocator = _manager()
        manager.select([])
        assert len(manager) == 0
        assert allocator.acquired_count == 0

    def test_each_file_gets_a_preview(self):
        manager, _, _, allocator = _manager()
        manager.select(_files("a.png", "b.png"))
        assert allocator.live_count == 2
        assert manager.files[0].preview.tobytes() == b"a.png"

    def test_local_paths_accepted(self, tmp_path):
        path = tmp_path / "cat.webp"
        path.write_bytes(b"RIFF....WEBP")
        manager, *_ = _manager()
        manager.select([path, str(path)])
        assert [f.display_name for f in manager.files] == ["cat", "cat"]
        assert manager.files[0].size_kb == 0

    def test_unreadable_file_staged_without_preview(self, tmp_path, caplog):
        manager, _, _, allocator = _manager()
        manager.select([tmp_path / "missing.png", SourceFile("ok.png", b"ok")])
        assert len(manager) == 2
        assert manager.files[0].preview is None
        assert manager.files[1].preview is not None
        assert allocator.live_count == 1
        assert "missing.png" in caplog.text


# ---------------------------------------------------------------------------
# Rename / remove / clear
# ---------------------------------------------------------------------------

class TestEditing:
    def test_rename(self):
        manager, *_ = _manager()
        manager.select(_files("photo.png"))
        manager.rename(0, "vacation")
        assert manager.files[0].display_name == "vacation"
        assert manager.files[0].upload_name == "vacation.png"

    def test_rename_accepts_empty_name(self):
        manager, *_ = _manager()
        manager.select(_files("photo.png"))
        manager.rename(0, "")
        assert manager.files[0].display_name == ""

    @pytest.mark.parametrize("index", [1, -1, 5])
    def test_rename_out_of_range(self, index):
        manager, *_ = _manager()
        manager.select(_files("photo.png"))
        with pytest.raises(IndexOutOfRangeError):
            manager.rename(index, "x")

    def test_index_error_is_an_index_error(self):
        manager, *_ = _manager()
        with pytest.raises(IndexError):
            manager.remove(0)

    @pytest.mark.parametrize("index", [0, 1, 2, 3])
    def test_remove_preserves_relative_order(self, index):
        names = ["a.png", "b.png", "c.png", "d.png"]
        manager, _, _, allocator = _manager()
        manager.select(_files(*names))
        removed = manager.files[index]

        manager.remove(index)

        expected = [n[0] for i, n in enumerate(names) if i != index]
        assert [f.display_name for f in manager.files] == expected
        assert removed.preview.released
        assert allocator.live_count == 3

    def test_remove_out_of_range(self):
        manager, *_ = _manager()
        manager.select(_files("a.png"))
        with pytest.raises(IndexOutOfRangeError):
            manager.remove(1)
        assert len(manager) == 1

    @pytest.mark.parametrize("batches", [[], [["a.png"]], [["a.png", "b.png"], ["c.png"]]])
    def test_clear_all_releases_each_preview_once(self, batches):
        manager, _, _, allocator = _manager()
        for batch in batches:
            manager.select(_files(*batch))

        manager.clear_all()

        assert len(manager) == 0
        assert allocator.live_count == 0
        assert allocator.released_count == allocator.acquired_count

    def test_double_release_is_guarded(self):
        manager, _, _, allocator = _manager()
        manager.select(_files("a.png"))
        preview = manager.files[0].preview
        manager.remove(0)
        assert allocator.release(preview) is False
        assert allocator.released_count == 1

    def test_close_releases_previews(self):
        _, _, _, allocator = _manager()
        with StagedUploadManager(FakeClient(), allocator=allocator) as manager:
            manager.select(_files("a.png", "b.png"))
        assert allocator.live_count == 0
        assert len(manager) == 0


# ---------------------------------------------------------------------------
# Commit
# ---------------------------------------------------------------------------

class TestCommit:
    @pytest.mark.asyncio
    async def test_all_succeed(self):
        manager, client, gallery, allocator = _manager(existing=["https://cdn.test/old.png"])
        manager.select(_files("a.png", "b.png", "c.png"))

        results = await manager.commit_all()

        assert [r.ok for r in results] == [True, True, True]
        assert gallery.urls == [
            "https://cdn.test/my-images/a.png",
            "https://cdn.test/my-images/b.png",
            "https://cdn.test/my-images/c.png",
            "https://cdn.test/old.png",
        ]
        assert len(manager) == 0
        assert allocator.live_count == 0
        assert allocator.released_count == 3
        assert manager.committing is False

    @pytest.mark.asyncio
    async def test_uploads_are_sequential_and_ordered(self):
        manager, client, *_ = _manager()
        manager.select(_files("a.png", "b.png", "c.png"))
        await manager.commit_all()
        assert [name for _, name, _ in client.calls] == ["a.png", "b.png", "c.png"]
        assert client.max_in_flight == 1

    @pytest.mark.asyncio
    async def test_renamed_file_uploaded_under_new_name(self):
        manager, client, gallery, _ = _manager()
        manager.select(_files("photo.png"))
        manager.rename(0, "vacation")

        results = await manager.commit_all()

        filename, name, content = client.calls[0]
        assert (filename, name, content) == ("photo.png", "vacation.png", b"photo.png")
        assert results[0].url.endswith("/vacation.png")
        assert gallery.images[0].derived_name == "vacation.png"

    @pytest.mark.asyncio
    async def test_halt_on_first_failure(self):
        manager, client, gallery, allocator = _manager(fail_names={"b.png"})
        manager.select(_files("a.png", "b.png", "c.png"))

        results = await manager.commit_all()

        assert [(r.name, r.ok) for r in results] == [("a.png", True), ("b.png", False)]
        assert "b.png" in results[1].error
        assert [name for _, name, _ in client.calls] == ["a.png", "b.png"]
        assert gallery.urls == ["https://cdn.test/my-images/a.png"]
        # failed and unprocessed files stay staged with their previews
        assert [f.display_name for f in manager.files] == ["b", "c"]
        assert all(not f.preview.released for f in manager.files)
        assert allocator.live_count == 2
        assert manager.last_error == results[1].error

    @pytest.mark.asyncio
    async def test_halt_then_retry_commits_remaining(self):
        manager, client, gallery, allocator = _manager(fail_names={"b.png"})
        manager.select(_files("a.png", "b.png", "c.png"))
        await manager.commit_all()

        client.fail_names.clear()
        results = await manager.commit_all()

        assert [r.name for r in results] == ["b.png", "c.png"]
        assert gallery.urls == [
            "https://cdn.test/my-images/b.png",
            "https://cdn.test/my-images/c.png",
            "https://cdn.test/my-images/a.png",
        ]
        assert len(manager) == 0
        assert allocator.live_count == 0

    @pytest.mark.asyncio
    async def test_continue_policy_processes_everything(self):
        manager, client, gallery, allocator = _manager(
            fail_names={"b.png"}, policy=CommitPolicy.CONTINUE,
        )
        manager.select(_files("a.png", "b.png", "c.png"))

        results = await manager.commit_all()

        assert [(r.name, r.ok) for r in results] == [
            ("a.png", True), ("b.png", False), ("c.png", True),
        ]
        assert gallery.urls == [
            "https://cdn.test/my-images/a.png",
            "https://cdn.test/my-images/c.png",
        ]
        assert len(manager) == 0
        assert allocator.live_count == 0
        assert allocator.released_count == 3
        assert "b.png" in manager.last_error

    @pytest.mark.asyncio
    async def test_unreadable_source_fails_its_item_only(self, tmp_path):
        path = tmp_path / "gone.png"
        path.write_bytes(b"x")
        manager, client, gallery, _ = _manager(policy=CommitPolicy.CONTINUE)
        manager.select([LocalFile(path), SourceFile("ok.png", b"ok")])
        path.unlink()

        results = await manager.commit_all()

        assert [r.ok for r in results] == [False, True]
        assert "gone.png" in results[0].error
        assert gallery.urls == ["https://cdn.test/my-images/ok.png"]

    @pytest.mark.asyncio
    async def test_malformed_upload_response_fails_its_item_only(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if b"bad.png" in request.read():
                return httpx.Response(200, json=["x"])
            return httpx.Response(200, json={"url": "https://cdn.test/my-images/good.png"})

        client = ImageManagerClient("http://backend.test", transport=httpx.MockTransport(handler))
        gallery = Gallery(client)
        manager = StagedUploadManager(client, gallery=gallery, policy=CommitPolicy.CONTINUE)
        manager.select(_files("bad.png", "good.png"))

        results = await manager.commit_all()

        assert [r.ok for r in results] == [False, True]
        assert isinstance(results[0].exception, UpstreamStorageError)
        assert gallery.urls == ["https://cdn.test/my-images/good.png"]
        assert len(manager) == 0

    @pytest.mark.asyncio
    async def test_nothing_staged(self):
        manager, client, *_ = _manager()
        with pytest.raises(NoFileError, match="Please select files"):
            await manager.commit_all()
        assert manager.last_error == "Please select files to upload"
        assert client.calls == []

    @pytest.mark.asyncio
    async def test_second_commit_rejected_while_running(self):
        manager, client, *_ = _manager()
        manager.select(_files("a.png", "b.png"))

        async with aclosing(manager.commit()) as first:
            await first.__anext__()
            assert manager.committing
            with pytest.raises(CommitInProgressError):
                await manager.commit_all()
            rest = [r async for r in first]

        assert len(rest) == 1
        assert [name for _, name, _ in client.calls] == ["a.png", "b.png"]
        assert manager.committing is False

    @pytest.mark.asyncio
    async def test_mutations_rejected_while_committing(self):
        manager, *_ = _manager()
        manager.select(_files("a.png", "b.png"))

        async with aclosing(manager.commit()) as running:
            await running.__anext__()
            with pytest.raises(CommitInProgressError):
                manager.select(_files("c.png"))
            with pytest.raises(CommitInProgressError):
                manager.rename(0, "x")
            with pytest.raises(CommitInProgressError):
                manager.remove(0)
            with pytest.raises(CommitInProgressError):
                manager.clear_all()

    @pytest.mark.asyncio
    async def test_abandoned_commit_keeps_unprocessed_files(self):
        manager, client, gallery, allocator = _manager()
        manager.select(_files("a.png", "b.png", "c.png"))

        async with aclosing(manager.commit()) as running:
            first = await running.__anext__()
        assert first.ok

        assert [f.display_name for f in manager.files] == ["b", "c"]
        assert gallery.urls == ["https://cdn.test/my-images/a.png"]
        assert allocator.live_count == 2
        assert manager.committing is False
