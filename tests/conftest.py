"""Shared fixtures: an in-memory remote session standing in for SFTP."""

import io
import posixpath
import threading
from pathlib import Path
from typing import Optional, Union

import pytest

from pypushsync.config import SyncTarget
from pypushsync.exceptions import RemoteConnectionError, RemoteSessionError
from pypushsync.output import OutputFormatter
from pypushsync.session import RemoteEntry

DEFAULT_MTIME = 1_700_000_000_000


class FakeSession:
    """In-memory implementation of the RemoteSession protocol.

    Files are kept as ``path -> (content, modify_time)``; directories as a
    set of absolute paths. Failures can be injected per path.
    """

    def __init__(self, root: Optional[str] = "/remote"):
        self.files: dict[str, tuple[bytes, int]] = {}
        self.dirs: set[str] = {"/"}
        self.connected = False
        self.connect_count = 0
        self.end_count = 0
        self.get_calls: list[str] = []
        self.put_calls: list[str] = []
        self.created_dirs: list[str] = []
        self.removed_dirs: list[str] = []
        self.fail_connect = False
        self.fail_list: set[str] = set()
        self.fail_get: set[str] = set()
        self.fail_put: set[str] = set()
        self.fail_rmdir: set[str] = set()
        self._upload_clock = 1_800_000_000_000
        self._lock = threading.Lock()
        if root:
            self.add_dir(root)

    # Test helpers

    def add_dir(self, path: str) -> None:
        path = posixpath.normpath(path)
        while path not in self.dirs:
            self.dirs.add(path)
            path = posixpath.dirname(path)

    def add_file(
        self,
        path: str,
        content: Union[bytes, str] = b"",
        modify_time: int = DEFAULT_MTIME,
    ) -> None:
        if isinstance(content, str):
            content = content.encode("utf-8")
        path = posixpath.normpath(path)
        self.add_dir(posixpath.dirname(path))
        self.files[path] = (content, modify_time)

    def read(self, path: str) -> bytes:
        return self.files[posixpath.normpath(path)][0]

    # RemoteSession protocol

    def connect(self) -> None:
        if self.fail_connect:
            raise RemoteConnectionError("Could not connect to fake:22: Connection refused")
        self.connected = True
        self.connect_count += 1

    def end(self) -> None:
        self.connected = False
        self.end_count += 1

    def __enter__(self) -> "FakeSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.end()

    def list(self, path: str) -> list[RemoteEntry]:
        path = posixpath.normpath(path)
        with self._lock:
            if path in self.fail_list:
                raise RemoteSessionError("list failed: Permission denied", path)
            if path not in self.dirs:
                raise RemoteSessionError("list failed: No such file", path)
            entries = [
                RemoteEntry(name=posixpath.basename(d), type="dir")
                for d in self.dirs
                if d != path and posixpath.dirname(d) == path
            ]
            entries.extend(
                RemoteEntry(
                    name=posixpath.basename(f),
                    type="file",
                    size=len(content),
                    modify_time=mtime,
                )
                for f, (content, mtime) in self.files.items()
                if posixpath.dirname(f) == path
            )
        return entries

    def exists(self, path: str) -> bool:
        path = posixpath.normpath(path)
        with self._lock:
            return path in self.dirs or path in self.files

    def mkdir(self, path: str, recursive: bool = False) -> None:
        path = posixpath.normpath(path)
        with self._lock:
            if path in self.dirs:
                return
            if not recursive and posixpath.dirname(path) not in self.dirs:
                raise RemoteSessionError("mkdir failed: No such file", path)
            missing = []
            current = path
            while current not in self.dirs:
                missing.append(current)
                current = posixpath.dirname(current)
            for directory in reversed(missing):
                self.dirs.add(directory)
                self.created_dirs.append(directory)

    def get(self, path: str) -> io.BytesIO:
        path = posixpath.normpath(path)
        with self._lock:
            self.get_calls.append(path)
            if path in self.fail_get:
                raise RemoteSessionError("get failed: Permission denied", path)
            if path not in self.files:
                raise RemoteSessionError("get failed: No such file", path)
            return io.BytesIO(self.files[path][0])

    def put(self, local_path: Union[str, Path], remote_path: str) -> None:
        remote_path = posixpath.normpath(remote_path)
        content = Path(local_path).read_bytes()
        with self._lock:
            if remote_path in self.fail_put:
                raise RemoteSessionError("put failed: Permission denied", remote_path)
            if posixpath.dirname(remote_path) not in self.dirs:
                raise RemoteSessionError("put failed: No such file", remote_path)
            self._upload_clock += 1000
            self.files[remote_path] = (content, self._upload_clock)
            self.put_calls.append(remote_path)

    def delete(self, path: str) -> None:
        path = posixpath.normpath(path)
        with self._lock:
            if self.files.pop(path, None) is None:
                raise RemoteSessionError("delete failed: No such file", path)

    def rmdir(self, path: str, recursive: bool = False) -> None:
        path = posixpath.normpath(path)
        with self._lock:
            if path in self.fail_rmdir:
                raise RemoteSessionError("rmdir failed: Permission denied", path)
            children = [
                p
                for p in list(self.dirs) + list(self.files)
                if p != path and p.startswith(path + "/")
            ]
            if children and not recursive:
                raise RemoteSessionError("rmdir failed: Directory not empty", path)
            for child in children:
                self.dirs.discard(child)
                self.files.pop(child, None)
            self.dirs.discard(path)
            self.removed_dirs.append(path)


@pytest.fixture
def fake_session():
    """Provide an in-memory remote session rooted at /remote."""
    return FakeSession()


@pytest.fixture
def quiet_output():
    """Provide an output formatter that prints nothing."""
    return OutputFormatter(quiet=True)


@pytest.fixture
def local_root(tmp_path):
    """Provide an empty local sync root."""
    root = tmp_path / "site"
    root.mkdir()
    return root


@pytest.fixture
def make_target(tmp_path, local_root):
    """Build SyncTargets for the fake session."""

    def _make(**overrides) -> SyncTarget:
        values = {
            "name": "test",
            "host": "fake",
            "local_root": local_root,
            "remote_root": "/remote",
            "cache_path": tmp_path / "cache.json",
            "parallel_scan": False,
        }
        values.update(overrides)
        return SyncTarget(**values)

    return _make


def write_file(root: Path, relative_path: str, content: Union[bytes, str]) -> Path:
    """Create a local file (and its parents) below root."""
    path = root.joinpath(*relative_path.split("/"))
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, str):
        path.write_text(content, encoding="utf-8")
    else:
        path.write_bytes(content)
    return path
