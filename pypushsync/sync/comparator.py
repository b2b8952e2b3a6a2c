"""File comparison logic for sync operations."""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from ..exceptions import ComparisonError, PushSyncError
from ..session import RemoteSession
from ..utils import DEFAULT_ANALYZE_CHUNK, join_remote
from .progress import SyncProgressTracker, should_report
from .scanner import LocalFileRecord, LocalSnapshot, RemoteFileRecord, RemoteSnapshot
from .state import FingerprintCache

logger = logging.getLogger(__name__)


@dataclass
class PlanItem:
    """A single file operation of a diff plan."""

    relative_path: str
    """Relative path of the file"""

    remote_path: str
    """Absolute remote path the operation targets"""

    local: Optional[LocalFileRecord] = None
    """Local file (for adds and updates)"""

    remote: Optional[RemoteFileRecord] = None
    """Remote file (for updates and deletes)"""


@dataclass
class DiffPlan:
    """Add/update/delete work lists produced by the comparator.

    A relative path appears in at most one list.
    """

    to_add: list[PlanItem] = field(default_factory=list)
    to_update: list[PlanItem] = field(default_factory=list)
    to_delete: list[PlanItem] = field(default_factory=list)

    @property
    def changed(self) -> list[PlanItem]:
        """Items that need an upload (adds followed by updates)."""
        return self.to_add + self.to_update

    @property
    def is_empty(self) -> bool:
        return not (self.to_add or self.to_update or self.to_delete)


def compute_deletes(
    local_files: LocalSnapshot, remote_files: RemoteSnapshot
) -> list[PlanItem]:
    """Determine remote files that no longer exist locally.

    Args:
        local_files: Local snapshot
        remote_files: Remote snapshot

    Returns:
        One PlanItem per remote-only path, carrying its remote path
    """
    return [
        PlanItem(relative_path=rel, remote_path=record.remote_path, remote=record)
        for rel, record in remote_files.items()
        if rel not in local_files
    ]


class FileComparator:
    """Compares local and remote snapshots to determine uploads.

    Files of different size are changed. Equal-size text files are
    compared by their decoded content; equal-size binary files by their
    SHA-256 fingerprint, served from the cache whenever the file's size and
    timestamp are unchanged since the hash was computed.
    """

    def __init__(
        self,
        session: RemoteSession,
        cache: FingerprintCache,
        remote_root: str,
        progress: Optional[SyncProgressTracker] = None,
        analyze_chunk: int = DEFAULT_ANALYZE_CHUNK,
    ):
        """Initialize file comparator.

        Args:
            session: Connected remote session used to fetch remote content
            cache: Fingerprint cache for binary comparisons
            remote_root: Remote sync root
            progress: Progress tracker (optional)
            analyze_chunk: Report progress every N files
        """
        self.session = session
        self.cache = cache
        self.remote_root = remote_root
        self.progress = progress or SyncProgressTracker()
        self.analyze_chunk = analyze_chunk

    def analyse(
        self, local_files: LocalSnapshot, remote_files: RemoteSnapshot
    ) -> DiffPlan:
        """Compare snapshots and build the add/update part of the plan.

        Args:
            local_files: Local snapshot
            remote_files: Remote snapshot

        Returns:
            DiffPlan with ``to_add`` and ``to_update`` filled

        Raises:
            ComparisonError: If content needed for a comparison cannot be read
        """
        plan = DiffPlan()
        total = len(local_files)

        # Two workers: local and remote content are fetched side by side
        with ThreadPoolExecutor(max_workers=2) as executor:
            for checked, (rel, local_file) in enumerate(local_files.items(), 1):
                if should_report(checked, total, self.analyze_chunk):
                    self.progress.analyze_progress(checked, total, rel)

                remote_path = join_remote(self.remote_root, rel)
                remote_file = remote_files.get(rel)

                if remote_file is None:
                    plan.to_add.append(
                        PlanItem(relative_path=rel, remote_path=remote_path, local=local_file)
                    )
                    continue

                if self._differs(executor, local_file, remote_file):
                    plan.to_update.append(
                        PlanItem(
                            relative_path=rel,
                            remote_path=remote_path,
                            local=local_file,
                            remote=remote_file,
                        )
                    )

        self.progress.phase_complete("analyze")
        logger.debug(
            f"Analysis: {len(plan.to_add)} new, {len(plan.to_update)} changed "
            f"of {total} local file(s)"
        )
        return plan

    def _differs(
        self,
        executor: ThreadPoolExecutor,
        local_file: LocalFileRecord,
        remote_file: RemoteFileRecord,
    ) -> bool:
        rel = local_file.relative_path

        # Size mismatch is conclusive
        if local_file.size != remote_file.size:
            logger.debug(
                f"{rel}: size differs ({local_file.size} vs {remote_file.size})"
            )
            return True

        try:
            if local_file.is_text:
                local_future = executor.submit(self._read_local_text, local_file)
                remote_future = executor.submit(self._read_remote_text, remote_file)
                return local_future.result() != remote_future.result()

            local_future = executor.submit(
                self.cache.get_hash,
                "local",
                rel,
                local_file.size,
                local_file.mtime_ms,
                lambda: open(local_file.path, "rb"),
            )
            remote_future = executor.submit(
                self.cache.get_hash,
                "remote",
                rel,
                remote_file.size,
                remote_file.modify_time,
                lambda: self.session.get(remote_file.remote_path),
            )
            return local_future.result() != remote_future.result()
        except (OSError, PushSyncError) as e:
            raise ComparisonError(rel, str(e)) from e

    @staticmethod
    def _read_local_text(local_file: LocalFileRecord) -> str:
        with open(local_file.path, "rb") as f:
            return f.read().decode("utf-8", errors="replace")

    def _read_remote_text(self, remote_file: RemoteFileRecord) -> str:
        with self.session.get(remote_file.remote_path) as f:
            return f.read().decode("utf-8", errors="replace")
