"""Sidecar transfers: explicitly listed files moved outside the diff.

Files named in a connection's ``uploadList`` / ``downloadList`` are
excluded from the regular comparison and transferred unconditionally on
request, e.g. data files that the server modifies and that must not be
overwritten by a normal sync.
"""

import logging
import os
import posixpath
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..output import OutputFormatter
from ..session import RemoteSession
from .progress import SyncProgressTracker
from .runner import TaskReport, run_tasks
from .scanner import DirectoryScanner

logger = logging.getLogger(__name__)


def matches_any(patterns: list[str], relative_path: str) -> bool:
    """Match a path against sidecar patterns.

    A pattern matches when it equals the path, or when it ends with ``*``
    and the path starts with the part before it.

    Examples:
        >>> matches_any(["data/*"], "data/users.json")
        True
        >>> matches_any(["config.json"], "other/config.json")
        False
    """
    for pattern in patterns:
        if not pattern:
            continue
        if pattern == relative_path:
            return True
        if pattern.endswith("*") and relative_path.startswith(pattern[:-1]):
            return True
    return False


def normalize_list(values: Optional[list]) -> list[str]:
    """Flatten a list of strings, splitting comma-separated entries.

    Examples:
        >>> normalize_list(["a.json, b.json", "c/*", 3])
        ['a.json', 'b.json', 'c/*']
    """
    if not isinstance(values, list):
        return []
    result: list[str] = []
    for value in values:
        if isinstance(value, str):
            result.extend(part.strip() for part in value.split(",") if part.strip())
    return result


@dataclass
class SidecarTarget:
    """A single sidecar file transfer."""

    relative_path: str
    local_path: Path
    remote_path: str


class SidecarTransfer:
    """Runs sidecar uploads and downloads through the task runner."""

    def __init__(
        self,
        session: RemoteSession,
        local_root: Path,
        remote_root: str,
        upload_list: list[str],
        download_list: list[str],
        workers: int = 1,
        output: Optional[OutputFormatter] = None,
        progress: Optional[SyncProgressTracker] = None,
    ):
        self.session = session
        self.local_root = Path(local_root)
        self.remote_root = remote_root
        self.upload_list = upload_list
        self.download_list = download_list
        self.workers = workers
        self.output = output or OutputFormatter(quiet=True)
        self.progress = progress or SyncProgressTracker()
        self._scanner = DirectoryScanner()

    def collect_upload_targets(self) -> list[SidecarTarget]:
        """Find local files matching the upload list."""
        local_files = self._scanner.scan_local(
            self.local_root, lambda rel: matches_any(self.upload_list, rel)
        )
        return [
            SidecarTarget(
                relative_path=rel,
                local_path=record.path,
                remote_path=posixpath.join(self.remote_root, rel),
            )
            for rel, record in sorted(local_files.items())
        ]

    def collect_download_targets(self) -> list[SidecarTarget]:
        """Find remote files matching the download list."""
        remote_files = self._scanner.scan_remote(
            self.session,
            self.remote_root,
            lambda rel: matches_any(self.download_list, rel),
        )
        return [
            SidecarTarget(
                relative_path=rel,
                local_path=self.local_root.joinpath(*rel.split("/")),
                remote_path=record.remote_path,
            )
            for rel, record in sorted(remote_files.items())
        ]

    def upload(self, dry_run: bool = False) -> Optional[TaskReport]:
        """Upload every file of the upload list.

        Returns:
            TaskReport, or None in dry-run mode
        """
        if not self.local_root.is_dir():
            raise FileNotFoundError(
                f"Sidecar local root does not exist: {self.local_root}"
            )
        targets = self.collect_upload_targets()
        self.output.info(f"   → {len(targets)} file(s) from uploadList")
        if dry_run:
            for target in targets:
                self.output.change("+", "(DRY-RUN) Upload:", target.relative_path)
            return None
        return run_tasks(
            targets,
            self.workers,
            self._upload_one,
            label="Sidecar uploads",
            progress=self.progress,
        )

    def download(self, dry_run: bool = False) -> Optional[TaskReport]:
        """Download every file of the download list.

        Returns:
            TaskReport, or None in dry-run mode
        """
        targets = self.collect_download_targets()
        self.output.info(f"   → {len(targets)} file(s) from downloadList")
        if dry_run:
            for target in targets:
                self.output.change("~", "(DRY-RUN) Download:", target.relative_path)
            return None
        return run_tasks(
            targets,
            self.workers,
            self._download_one,
            label="Sidecar downloads",
            progress=self.progress,
        )

    def _upload_one(self, target: SidecarTarget) -> None:
        self.session.mkdir(posixpath.dirname(target.remote_path), recursive=True)
        self.session.put(target.local_path, target.remote_path)
        logger.debug(f"Uploaded (sidecar): {target.relative_path}")

    def _download_one(self, target: SidecarTarget) -> None:
        os.makedirs(target.local_path.parent, exist_ok=True)
        with self.session.get(target.remote_path) as src, open(
            target.local_path, "wb"
        ) as dst:
            shutil.copyfileobj(src, dst)
        logger.debug(f"Downloaded (sidecar): {target.relative_path}")
