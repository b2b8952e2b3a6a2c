"""Directory scanning utilities for sync operations."""

import logging
import os
import posixpath
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from ..exceptions import RemoteSessionError, ScanError
from ..session import RemoteSession
from ..utils import DEFAULT_SCAN_CHUNK, to_posix
from .filters import FileClassifier
from .progress import SyncProgressTracker

logger = logging.getLogger(__name__)

InclusionPredicate = Callable[[str], bool]


@dataclass(frozen=True)
class LocalFileRecord:
    """Represents a local file with metadata."""

    relative_path: str
    """Relative path (using forward slashes for cross-platform compatibility)"""

    path: Path
    """Absolute path to the file"""

    size: int
    """File size in bytes"""

    mtime_ms: int
    """Last modification time in milliseconds"""

    is_text: bool = False
    """Whether the file is compared as decoded text instead of by hash"""


@dataclass(frozen=True)
class RemoteFileRecord:
    """Represents a remote file with metadata."""

    relative_path: str
    """Relative path below the remote root"""

    remote_path: str
    """Absolute remote path"""

    size: int
    """File size in bytes"""

    modify_time: int
    """Modification time as reported by the server (milliseconds).

    The server clock is not normalized against the local one; the value is
    only ever compared with earlier readings of the same remote file.
    """


LocalSnapshot = dict[str, LocalFileRecord]
RemoteSnapshot = dict[str, RemoteFileRecord]


class DirectoryScanner:
    """Scans local and remote trees into flat snapshots.

    Only regular files are recorded. Symbolic links, sockets, FIFOs and
    devices are skipped on both sides, and links to directories are never
    followed. Directories are always traversed but never recorded.

    Examples:
        >>> scanner = DirectoryScanner()
        >>> local = scanner.scan_local(Path("/srv/site"), lambda rel: True)
        >>> for rel, record in local.items():
        ...     print(rel, record.size)
    """

    def __init__(
        self,
        classifier: Optional[FileClassifier] = None,
        progress: Optional[SyncProgressTracker] = None,
        scan_chunk: int = DEFAULT_SCAN_CHUNK,
    ):
        """Initialize directory scanner.

        Args:
            classifier: Text/binary classifier for local files
            progress: Progress tracker (optional)
            scan_chunk: Report progress every N files
        """
        self.classifier = classifier or FileClassifier()
        self.progress = progress or SyncProgressTracker()
        self.scan_chunk = scan_chunk

    def scan_local(
        self, root: Path, is_included: InclusionPredicate
    ) -> LocalSnapshot:
        """Recursively scan a local directory.

        Args:
            root: Directory to scan
            is_included: Predicate called once per discovered file

        Returns:
            Mapping of relative path to LocalFileRecord

        Raises:
            ScanError: If any directory cannot be listed or file cannot be
                stat'ed
        """
        root = Path(root)
        result: LocalSnapshot = {}
        pending = [root]

        while pending:
            directory = pending.pop()
            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                raise ScanError("local", str(directory), str(e)) from e

            for entry in entries:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        pending.append(Path(entry.path))
                        continue
                    if not entry.is_file(follow_symlinks=False):
                        logger.debug(f"Skipping non-regular entry: {entry.path}")
                        continue

                    rel = to_posix(os.path.relpath(entry.path, root))
                    if not is_included(rel):
                        continue

                    stat = entry.stat(follow_symlinks=False)
                except OSError as e:
                    raise ScanError("local", entry.path, str(e)) from e

                result[rel] = LocalFileRecord(
                    relative_path=rel,
                    path=Path(entry.path),
                    size=stat.st_size,
                    mtime_ms=stat.st_mtime_ns // 1_000_000,
                    is_text=self.classifier.is_text(rel),
                )
                self._report("local", len(result), rel)

        self.progress.scan_complete("local", len(result))
        logger.debug(f"Local scan found {len(result)} file(s) in {root}")
        return result

    def scan_remote(
        self,
        session: RemoteSession,
        remote_root: str,
        is_included: InclusionPredicate,
    ) -> RemoteSnapshot:
        """Recursively scan a remote directory through protocol listings.

        Args:
            session: Connected remote session
            remote_root: Remote directory to scan
            is_included: Predicate called once per discovered file

        Returns:
            Mapping of relative path to RemoteFileRecord

        Raises:
            ScanError: If any directory listing fails
        """
        result: RemoteSnapshot = {}
        pending: list[tuple[str, str]] = [(remote_root, "")]

        while pending:
            directory, prefix = pending.pop()
            try:
                entries = session.list(directory)
            except RemoteSessionError as e:
                raise ScanError("remote", directory, str(e)) from e

            for entry in sorted(entries, key=lambda e: e.name):
                full = posixpath.join(directory, entry.name)
                rel = f"{prefix}/{entry.name}" if prefix else entry.name

                if entry.type == "dir":
                    pending.append((full, rel))
                    continue
                if entry.type != "file":
                    logger.debug(f"Skipping non-regular remote entry: {full}")
                    continue
                if not is_included(rel):
                    continue

                result[rel] = RemoteFileRecord(
                    relative_path=rel,
                    remote_path=full,
                    size=int(entry.size),
                    modify_time=int(entry.modify_time),
                )
                self._report("remote", len(result), rel)

        self.progress.scan_complete("remote", len(result))
        logger.debug(f"Remote scan found {len(result)} file(s) in {remote_root}")
        return result

    def _report(self, side: str, count: int, relative_path: str) -> None:
        if count == 1 or count % max(self.scan_chunk, 1) == 0:
            self.progress.scan_progress(side, count, relative_path)
