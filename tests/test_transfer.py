"""Tests for single-item transfers."""

import asyncio
import os

import pytest

from drivesync.api_clients.base import FOLDER_MIME_TYPE
from drivesync.config import CompareMode, ExportFormats, SyncConfig
from drivesync.core.models import ReasonCode
from drivesync.core.transfer import TransferExecutor, guess_mime_type, sanitize_filename
from drivesync.performance import ProgressAggregator

from conftest import FakeDriveClient, set_mtime


DOCUMENT_MIME_TYPE = "application/vnd.google-apps.document"
DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def test_sanitize_filename():
    """Test file name sanitising."""
    assert sanitize_filename("a/b\\c") == "a_b_c"
    assert sanitize_filename("line\r\nbreak\there") == "line__break_here"
    assert sanitize_filename("plain name.txt") == "plain name.txt"
    assert sanitize_filename("..") == "_"
    assert sanitize_filename(".") == "_"
    assert sanitize_filename("..hidden") == "..hidden"


def test_guess_mime_type(tmp_path):
    """Test MIME type inference."""
    assert guess_mime_type(tmp_path / "report.pdf") == "application/pdf"
    assert guess_mime_type(tmp_path / "blob.unknownext") == "application/octet-stream"


class TestDownload:
    """Remote to local transfers."""

    def setup_method(self):
        self.drive = FakeDriveClient()
        self.root = self.drive.add_folder("root", item_id="root")
        self.progress = ProgressAggregator()
        self.executor = TransferExecutor(self.drive, SyncConfig(), self.progress)

    @pytest.mark.asyncio
    async def test_new_file(self, tmp_path):
        """Test downloading a new file."""
        item = self.drive.add_file("report.pdf", "root", content=b"pdf bytes", modified=100, created=40)

        outcome = await self.executor.download(item, tmp_path)

        path = tmp_path / "report.pdf"
        stat = os.stat(path)
        assert outcome.path == path
        assert outcome.transferred is True
        assert outcome.reason == ReasonCode.NOT_FOUND_LOCALLY
        assert int(stat.st_mtime) == 100
        assert int(stat.st_atime) == 40
        assert path.read_bytes() == b"pdf bytes"
        assert [child.name for child in tmp_path.iterdir()] == ["report.pdf"]
        assert self.progress.completed == 1
        assert self.progress.transferred == 1

    @pytest.mark.asyncio
    async def test_sibling_named_like_partial_file(self, tmp_path):
        """Concurrent downloads of "a" and "a.part" keep their own content."""
        plain = self.drive.add_file("a", "root", content=b"AAAA", modified=100)
        suffixed = self.drive.add_file("a.part", "root", content=b"PART", modified=100)

        outcomes = await asyncio.gather(
            self.executor.download(plain, tmp_path),
            self.executor.download(suffixed, tmp_path)
        )

        assert all(outcome.transferred for outcome in outcomes)
        assert (tmp_path / "a").read_bytes() == b"AAAA"
        assert (tmp_path / "a.part").read_bytes() == b"PART"
        assert sorted(child.name for child in tmp_path.iterdir()) == ["a", "a.part"]

    @pytest.mark.asyncio
    async def test_up_to_date_file_is_not_fetched(self, tmp_path):
        """Test skipping an up-to-date file."""
        item = self.drive.add_file("report.pdf", "root", content=b"new", modified=100)
        path = tmp_path / "report.pdf"
        path.write_bytes(b"old")
        set_mtime(path, 100)

        outcome = await self.executor.download(item, tmp_path)

        assert outcome.transferred is False
        assert outcome.reason == ReasonCode.LOCAL_NEWER_OR_SAME
        assert path.read_bytes() == b"old"
        assert self.drive.content_calls == []
        assert self.progress.skipped == 1

    @pytest.mark.asyncio
    async def test_remote_newer_replaces_file(self, tmp_path):
        """Test replacing an older local copy."""
        item = self.drive.add_file("report.pdf", "root", content=b"new", modified=200)
        path = tmp_path / "report.pdf"
        path.write_bytes(b"old")
        set_mtime(path, 100)

        outcome = await self.executor.download(item, tmp_path)

        assert outcome.reason == ReasonCode.REMOTE_NEWER
        assert path.read_bytes() == b"new"
        assert int(os.stat(path).st_mtime) == 200

    @pytest.mark.asyncio
    async def test_unsafe_name_is_sanitized(self, tmp_path):
        """Test downloading an item with an unsafe name."""
        item = self.drive.add_file("Q1/Q2\treport", "root")

        outcome = await self.executor.download(item, tmp_path)

        assert outcome.path == tmp_path / "Q1_Q2_report"
        assert outcome.path.exists()

    @pytest.mark.asyncio
    async def test_document_is_exported(self, tmp_path):
        """Test exporting a document."""
        item = self.drive.add_file("Notes", "root", content=b"docx bytes", mime_type=DOCUMENT_MIME_TYPE)

        outcome = await self.executor.download(item, tmp_path)

        assert outcome.path == tmp_path / "Notes.docx"
        assert outcome.path.read_bytes() == b"docx bytes"
        assert self.drive.export_calls == [(item.item_id, DOCX_MIME_TYPE)]
        assert self.drive.content_calls == []

    @pytest.mark.asyncio
    async def test_configured_export_formats(self, tmp_path):
        """Test configured export formats."""
        config = SyncConfig(export_formats=ExportFormats(docs=".PDF"))
        executor = TransferExecutor(self.drive, config)
        document = self.drive.add_file("Notes", "root", mime_type=DOCUMENT_MIME_TYPE)
        drawing = self.drive.add_file("Sketch", "root", mime_type="application/vnd.google-apps.drawing")

        first = await executor.download(document, tmp_path)
        second = await executor.download(drawing, tmp_path)

        assert first.path.name == "Notes.pdf"
        assert second.path.name == "Sketch.pdf"
        assert self.drive.export_calls[0] == (document.item_id, "application/pdf")

    @pytest.mark.asyncio
    async def test_shortcut_uses_target_content(self, tmp_path):
        """Test downloading through a shortcut."""
        target = self.drive.add_file("original.bin", "root", content=b"target bytes", modified=500)
        shortcut = self.drive.add_shortcut("link.bin", "root", target, modified=300)

        outcome = await self.executor.download(shortcut, tmp_path)

        assert outcome.path == tmp_path / "link.bin"
        assert outcome.path.read_bytes() == b"target bytes"
        assert int(os.stat(outcome.path).st_mtime) == 300
        assert self.drive.content_calls == [target.item_id]

    @pytest.mark.asyncio
    async def test_shortcut_to_document_is_exported(self, tmp_path):
        """Test exporting through a shortcut."""
        target = self.drive.add_file("Plan", "root", content=b"x", mime_type=DOCUMENT_MIME_TYPE)
        shortcut = self.drive.add_shortcut("Plan link", "root", target)

        outcome = await self.executor.download(shortcut, tmp_path)

        assert outcome.path.name == "Plan link.docx"
        assert self.drive.export_calls == [(target.item_id, DOCX_MIME_TYPE)]

    @pytest.mark.asyncio
    async def test_shortcut_to_folder_is_an_error(self, tmp_path):
        """Test a shortcut to a folder."""
        folder = self.drive.add_folder("Shared", "root")
        shortcut = self.drive.add_shortcut("Shared link", "root", folder)
        assert shortcut.shortcut.target_mime_type == FOLDER_MIME_TYPE

        outcome = await self.executor.download(shortcut, tmp_path)

        assert outcome.is_error
        assert outcome.error == "shortcut target is a folder"
        assert self.progress.errors == 1

    @pytest.mark.asyncio
    async def test_stream_error_leaves_no_file(self, tmp_path):
        """Test an interrupted download."""
        item = self.drive.add_file("broken.bin", "root", content=b"abcdef")
        self.drive.failing_content.add(item.item_id)

        outcome = await self.executor.download(item, tmp_path)

        assert outcome.is_error
        assert outcome.transferred is False
        assert "stream interrupted" in outcome.error
        assert list(tmp_path.iterdir()) == []
        assert self.progress.completed == 1
        assert self.progress.errors == 1

    @pytest.mark.asyncio
    async def test_stream_error_keeps_previous_copy(self, tmp_path):
        """Test an interrupted download over an existing copy."""
        item = self.drive.add_file("broken.bin", "root", content=b"abcdef", modified=200)
        self.drive.failing_content.add(item.item_id)
        path = tmp_path / "broken.bin"
        path.write_bytes(b"previous")
        set_mtime(path, 100)

        outcome = await self.executor.download(item, tmp_path)

        assert outcome.is_error
        assert path.read_bytes() == b"previous"
        assert int(os.stat(path).st_mtime) == 100

    @pytest.mark.asyncio
    async def test_force_mode(self, tmp_path):
        """Test a forced download."""
        executor = TransferExecutor(self.drive, SyncConfig(mode=CompareMode.FORCE))
        item = self.drive.add_file("report.pdf", "root", content=b"fresh", modified=10)
        path = tmp_path / "report.pdf"
        path.write_bytes(b"stale")
        set_mtime(path, 1000)

        outcome = await executor.download(item, tmp_path)

        assert outcome.reason == ReasonCode.FORCE
        assert path.read_bytes() == b"fresh"


class TestUpload:
    """Local to remote transfers."""

    def setup_method(self):
        self.drive = FakeDriveClient()
        self.root = self.drive.add_folder("root", item_id="root")
        self.progress = ProgressAggregator()
        self.executor = TransferExecutor(self.drive, SyncConfig(), self.progress)

    @pytest.mark.asyncio
    async def test_creates_missing_file(self, tmp_path):
        """Test uploading a new file."""
        path = tmp_path / "report.pdf"
        path.write_bytes(b"pdf")

        outcome = await self.executor.upload(path, "root")

        assert outcome.path == path
        assert outcome.transferred is True
        assert outcome.reason == ReasonCode.CREATED
        assert self.drive.created_files == ["report.pdf"]
        created = self.drive.items[self.drive.children["root"][0]]
        assert created.mime_type == "application/pdf"
        assert self.progress.transferred == 1

    @pytest.mark.asyncio
    async def test_updates_older_remote_file(self, tmp_path):
        """Test updating an older remote file."""
        existing = self.drive.add_file("notes.txt", "root", content=b"old", modified=100)
        path = tmp_path / "notes.txt"
        path.write_bytes(b"newer")
        set_mtime(path, 200)

        outcome = await self.executor.upload(path, "root")

        assert outcome.reason == ReasonCode.UPDATED
        assert self.drive.updated_files == ["notes.txt"]
        assert self.drive.contents[existing.item_id] == b"newer"

    @pytest.mark.asyncio
    async def test_skips_newer_remote_file(self, tmp_path):
        """Test skipping a newer remote file."""
        self.drive.add_file("notes.txt", "root", modified=300)
        path = tmp_path / "notes.txt"
        path.write_bytes(b"local")
        set_mtime(path, 200)

        outcome = await self.executor.upload(path, "root")

        assert outcome.transferred is False
        assert outcome.reason == ReasonCode.REMOTE_NEWER_OR_SAME
        assert self.drive.updated_files == []
        assert self.progress.skipped == 1

    @pytest.mark.asyncio
    async def test_skip_existing_and_force(self, tmp_path):
        """Test upload in skip-existing and force modes."""
        self.drive.add_file("notes.txt", "root", modified=100)
        path = tmp_path / "notes.txt"
        path.write_bytes(b"local")
        set_mtime(path, 200)

        skip = TransferExecutor(self.drive, SyncConfig(mode=CompareMode.SKIP_EXISTING))
        force = TransferExecutor(self.drive, SyncConfig(mode=CompareMode.FORCE))

        assert (await skip.upload(path, "root")).reason == ReasonCode.SKIP_EXISTING
        assert (await force.upload(path, "root")).reason == ReasonCode.FORCE
        assert self.drive.updated_files == ["notes.txt"]

    @pytest.mark.asyncio
    async def test_folder_of_same_name_is_not_a_match(self, tmp_path):
        """Test that a same-named folder is not a match."""
        self.drive.add_folder("notes.txt", "root")
        path = tmp_path / "notes.txt"
        path.write_bytes(b"local")

        outcome = await self.executor.upload(path, "root")

        assert outcome.reason == ReasonCode.CREATED

    @pytest.mark.asyncio
    async def test_lookup_failure_is_an_item_error(self, tmp_path):
        """Test a failed remote lookup."""
        self.drive.failing_lookups.add("root")
        path = tmp_path / "notes.txt"
        path.write_bytes(b"local")

        outcome = await self.executor.upload(path, "root")

        assert outcome.is_error
        assert "lookup failed" in outcome.error
        assert self.progress.errors == 1

    @pytest.mark.asyncio
    async def test_missing_local_file(self, tmp_path):
        """Test uploading a missing file."""
        outcome = await self.executor.upload(tmp_path / "gone.txt", "root")

        assert outcome.is_error
        assert outcome.error == "local file not found"
