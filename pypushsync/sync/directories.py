"""Remote directory lifecycle: pre-creation and empty-directory cleanup."""

import logging
import posixpath
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

from ..exceptions import PushSyncError
from ..output import OutputFormatter
from ..session import RemoteSession
from ..utils import join_remote, path_depth
from .comparator import PlanItem
from .progress import SyncProgressTracker

logger = logging.getLogger(__name__)


@dataclass
class DirStats:
    """Directory counters for a single sync run."""

    ensured: int = 0
    """Directories checked during pre-creation"""

    created: int = 0
    """Directories actually created"""

    cleanup_visited: int = 0
    """Directories visited during cleanup"""

    cleanup_removed: int = 0
    """Directories removed (or reported in dry-run) during cleanup"""

    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    @property
    def checked(self) -> int:
        return self.ensured + self.cleanup_visited

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)


def collect_dirs(items: Iterable[PlanItem]) -> list[str]:
    """Collect the ancestor directories implied by relative paths.

    Args:
        items: Plan items whose parent directories must exist

    Returns:
        Distinct relative directories, parents before children

    Examples:
        >>> collect_dirs([PlanItem("a/b/c.txt", "/r/a/b/c.txt"),
        ...               PlanItem("a/d.txt", "/r/a/d.txt")])
        ['a', 'a/b']
    """
    dirs: set[str] = set()
    for item in items:
        parts = item.relative_path.split("/")
        for i in range(1, len(parts)):
            dirs.add("/".join(parts[:i]))
    return sorted(dirs, key=lambda d: (path_depth(d), d))


class DirectoryManager:
    """Ensures remote directories exist and prunes empty ones.

    Failures never abort a run: a directory that cannot be created or
    removed is reported as a warning and the walk continues.
    """

    def __init__(
        self,
        session: RemoteSession,
        remote_root: str,
        stats: Optional[DirStats] = None,
        output: Optional[OutputFormatter] = None,
        progress: Optional[SyncProgressTracker] = None,
        remove_root: bool = False,
    ):
        """Initialize the directory manager.

        Args:
            session: Connected remote session
            remote_root: Remote sync root
            stats: Counters for this run (a new instance if omitted)
            output: Output formatter for user-facing messages
            progress: Progress tracker (optional)
            remove_root: Allow removing the sync root itself when empty
        """
        self.session = session
        self.remote_root = remote_root
        self.stats = stats if stats is not None else DirStats()
        self.output = output or OutputFormatter(quiet=True)
        self.progress = progress or SyncProgressTracker()
        self.remove_root = remove_root

    def ensure_dirs(self, items: Iterable[PlanItem]) -> None:
        """Create every missing ancestor directory of the given items.

        Directories are handled in depth order so parents exist before
        their children.
        """
        dirs = collect_dirs(items)
        total = len(dirs)
        self.stats.increment("ensured", total)

        for current, rel_dir in enumerate(dirs, 1):
            remote_dir = join_remote(self.remote_root, rel_dir)
            self.progress.directory_progress("Prepare dirs", current, total, rel_dir)
            try:
                if self.session.exists(remote_dir):
                    logger.debug(f"dir ok: {remote_dir}")
                    continue
                self.session.mkdir(remote_dir, recursive=True)
                self.stats.increment("created")
                logger.debug(f"dir created: {remote_dir}")
            except PushSyncError as e:
                self.output.warning(f"Could not ensure directory: {remote_dir} ({e})")

        if total:
            self.progress.phase_complete("Prepare dirs")

    def cleanup_empty_dirs(self, dry_run: bool = False) -> None:
        """Remove empty directories below (and optionally including) the root.

        The walk is post-order: children are evaluated and removed before
        their parent's emptiness is decided.

        Args:
            dry_run: Only report directories that would be removed
        """
        self._cleanup(self.remote_root, dry_run)
        if self.stats.cleanup_visited:
            self.progress.phase_complete("Cleanup dirs")

    def _cleanup(self, directory: str, dry_run: bool) -> bool:
        """Prune one directory; return True if it is (now) empty."""
        self.stats.increment("cleanup_visited")
        rel = posixpath.relpath(directory, self.remote_root)
        self.progress.directory_progress(
            "Cleanup dirs", self.stats.cleanup_visited, 0, rel
        )

        try:
            entries = self.session.list(directory)
        except PushSyncError as e:
            self.output.warning(
                f"Could not list directory during cleanup: {directory} ({e})"
            )
            return False

        has_file = False
        all_subdirs_empty = True
        for entry in sorted(entries, key=lambda e: e.name):
            if entry.type != "dir":
                has_file = True
                continue
            if not self._cleanup(posixpath.join(directory, entry.name), dry_run):
                all_subdirs_empty = False

        is_empty = not has_file and all_subdirs_empty
        is_root = directory == self.remote_root
        if not is_empty or (is_root and not self.remove_root):
            return is_empty

        if dry_run:
            self.output.change("-", "(DRY-RUN) Remove empty directory:", rel)
            self.stats.increment("cleanup_removed")
            return True

        try:
            self.session.rmdir(directory, recursive=False)
        except PushSyncError as e:
            self.output.warning(f"Could not remove directory: {directory} ({e})")
            return False

        self.output.change("-", "Removed empty directory:", rel)
        self.stats.increment("cleanup_removed")
        return True
