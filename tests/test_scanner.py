"""Tests for the local and remote tree scanner."""

import os

import pytest
from conftest import write_file

from pypushsync.exceptions import ScanError
from pypushsync.sync.filters import PathFilter
from pypushsync.sync.progress import SyncProgressEvent, SyncProgressTracker
from pypushsync.sync.scanner import DirectoryScanner


class TestScanLocal:
    """Tests for DirectoryScanner.scan_local."""

    def test_scan_nested_files(self, local_root):
        """Test that nested files are keyed by slash-separated paths."""
        write_file(local_root, "index.html", "<html></html>")
        write_file(local_root, "img/logo.png", b"\x89PNG")
        write_file(local_root, "a/b/c.txt", "deep")

        result = DirectoryScanner().scan_local(local_root, lambda rel: True)

        assert set(result) == {"index.html", "img/logo.png", "a/b/c.txt"}
        record = result["img/logo.png"]
        assert record.size == 4
        assert record.path == local_root / "img" / "logo.png"
        assert not record.is_text
        assert result["index.html"].is_text

    def test_mtime_in_milliseconds(self, local_root):
        """Test that the modification time is reported in milliseconds."""
        path = write_file(local_root, "a.bin", b"x")
        os.utime(path, ns=(1_700_000_000_123_000_000, 1_700_000_000_123_000_000))

        result = DirectoryScanner().scan_local(local_root, lambda rel: True)

        assert result["a.bin"].mtime_ms == 1_700_000_000_123

    def test_empty_directories_are_not_recorded(self, local_root):
        """Test that directories never appear in the snapshot."""
        (local_root / "empty" / "nested").mkdir(parents=True)

        assert DirectoryScanner().scan_local(local_root, lambda rel: True) == {}

    def test_predicate_called_once_per_file(self, local_root):
        """Test that the predicate sees every file exactly once."""
        write_file(local_root, "a.txt", "a")
        write_file(local_root, "sub/b.txt", "b")
        seen = []

        def predicate(rel):
            seen.append(rel)
            return True

        DirectoryScanner().scan_local(local_root, predicate)

        assert sorted(seen) == ["a.txt", "sub/b.txt"]

    def test_excluded_files_are_skipped(self, local_root):
        """Test that excluded files are not recorded."""
        write_file(local_root, "keep.html", "x")
        write_file(local_root, "drop.log", "x")

        result = DirectoryScanner().scan_local(
            local_root, PathFilter(exclude=["*.log"])
        )

        assert set(result) == {"keep.html"}

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_symlinks_are_skipped(self, local_root, tmp_path):
        """Test that symbolic links to files and directories are ignored."""
        outside = tmp_path / "outside"
        outside.mkdir()
        write_file(outside, "secret.txt", "secret")
        write_file(local_root, "real.txt", "real")
        os.symlink(outside / "secret.txt", local_root / "link.txt")
        os.symlink(outside, local_root / "linkdir")

        result = DirectoryScanner().scan_local(local_root, lambda rel: True)

        assert set(result) == {"real.txt"}

    def test_missing_root_raises(self, tmp_path):
        """Test that an unreadable root is a scan error."""
        with pytest.raises(ScanError) as exc_info:
            DirectoryScanner().scan_local(tmp_path / "missing", lambda rel: True)
        assert exc_info.value.side == "local"

    def test_progress_events(self, local_root):
        """Test that progress is reported and completion signalled."""
        for i in range(5):
            write_file(local_root, f"f{i}.bin", b"x")
        events = []
        scanner = DirectoryScanner(
            progress=SyncProgressTracker(events.append), scan_chunk=2
        )

        scanner.scan_local(local_root, lambda rel: True)

        counts = [
            e.current for e in events if e.event == SyncProgressEvent.SCAN_PROGRESS
        ]
        assert counts == [1, 2, 4]
        assert events[-1].event == SyncProgressEvent.SCAN_COMPLETE
        assert events[-1].current == 5


class TestScanRemote:
    """Tests for DirectoryScanner.scan_remote."""

    def test_scan_nested_files(self, fake_session):
        """Test that remote files are keyed relative to the root."""
        fake_session.add_file("/remote/index.html", "<html></html>", 1000)
        fake_session.add_file("/remote/a/b/c.txt", "deep", 2000)
        fake_session.add_dir("/remote/empty")

        result = DirectoryScanner().scan_remote(
            fake_session, "/remote", lambda rel: True
        )

        assert set(result) == {"index.html", "a/b/c.txt"}
        record = result["a/b/c.txt"]
        assert record.remote_path == "/remote/a/b/c.txt"
        assert record.size == 4
        assert record.modify_time == 2000

    def test_predicate_applies_to_files_only(self, fake_session):
        """Test that directories are traversed even if the predicate rejects them."""
        fake_session.add_file("/remote/assets/app.js", "x")

        result = DirectoryScanner().scan_remote(
            fake_session, "/remote", lambda rel: rel.endswith(".js")
        )

        assert set(result) == {"assets/app.js"}

    def test_listing_failure_raises(self, fake_session):
        """Test that a listing failure aborts the scan."""
        fake_session.add_file("/remote/locked/a.txt", "x")
        fake_session.fail_list.add("/remote/locked")

        with pytest.raises(ScanError) as exc_info:
            DirectoryScanner().scan_remote(fake_session, "/remote", lambda rel: True)
        assert exc_info.value.side == "remote"
