"""Core sync engine that orchestrates a push synchronization run."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Optional

from ..exceptions import PushSyncError
from ..output import OutputFormatter
from ..session import RemoteSession, describe_connection_error
from ..utils import format_duration, format_size
from .comparator import DiffPlan, FileComparator, compute_deletes
from .directories import DirectoryManager, DirStats
from .filters import PathFilter
from .operations import SyncOperations
from .progress import SyncProgressTracker
from .runner import TaskReport, run_tasks
from .scanner import DirectoryScanner, LocalSnapshot, RemoteSnapshot
from .sidecar import SidecarTransfer
from .state import FingerprintCache

if TYPE_CHECKING:
    from ..config import SyncTarget

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Outcome of a single sync run."""

    target: str
    dry_run: bool = False
    added: int = 0
    updated: int = 0
    deleted: int = 0
    failed: int = 0
    dirs_checked: int = 0
    dirs_created: int = 0
    dirs_removed: int = 0
    auto_excluded: list[str] = field(default_factory=list)
    added_paths: list[str] = field(default_factory=list)
    updated_paths: list[str] = field(default_factory=list)
    deleted_paths: list[str] = field(default_factory=list)
    duration: float = 0.0
    success: bool = True
    error: Optional[str] = None

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.updated or self.deleted)

    def to_dict(self) -> dict:
        """Return the result as a plain statistics dictionary."""
        return asdict(self)


class SyncEngine:
    """Runs scan, analysis, directory preparation, transfers and cleanup.

    The engine is the only place that decides whether an error is fatal.
    Failures from connecting, scanning or analysing end the run with
    ``success=False``; failures of single uploads or deletes are recorded
    and the run continues.
    """

    def __init__(
        self,
        session: RemoteSession,
        cache: FingerprintCache,
        output: Optional[OutputFormatter] = None,
        progress: Optional[SyncProgressTracker] = None,
    ):
        """Initialize sync engine.

        Args:
            session: Remote session (connected by the engine)
            cache: Fingerprint cache for the target
            output: Output formatter for displaying progress/status
            progress: Progress tracker (optional)
        """
        self.session = session
        self.cache = cache
        self.output = output or OutputFormatter()
        self.progress = progress or SyncProgressTracker()
        self.operations = SyncOperations(session)

    def run(
        self,
        target: "SyncTarget",
        dry_run: bool = False,
        sidecar_upload: bool = False,
        sidecar_download: bool = False,
        skip_sync: bool = False,
    ) -> SyncResult:
        """Synchronize the local root of a target to its remote root.

        Args:
            target: Target configuration
            dry_run: If True, only show what would be done
            sidecar_upload: Also upload the files of the upload list
            sidecar_download: Also download the files of the download list
            skip_sync: Skip the diff sync, run only the sidecar transfers

        Returns:
            SyncResult with counts and the success flag

        Examples:
            >>> engine = SyncEngine(session, FingerprintCache(target.cache_path))
            >>> result = engine.run(target, dry_run=True)
            >>> print(f"Would upload {result.added + result.updated} files")
        """
        start = time.time()
        result = SyncResult(target=target.name, dry_run=dry_run)
        path_filter = target.build_path_filter()

        self._display_header(target, dry_run, sidecar_upload, sidecar_download, skip_sync)

        if not skip_sync and not target.local_root.is_dir():
            result.success = False
            result.error = f"Local directory does not exist: {target.local_root}"
            self.output.error(result.error)
            return result

        try:
            with self.session:
                if not skip_sync:
                    self._sync(target, path_filter, dry_run, result)
                if sidecar_upload or sidecar_download:
                    self._run_sidecar(
                        target, dry_run, sidecar_upload, sidecar_download, result
                    )
            logger.debug("Connection closed")
        except (PushSyncError, OSError) as e:
            result.success = False
            result.error = str(e)
            self.output.error(f"Synchronization error: {e}")
            hint = describe_connection_error(e)
            if hint:
                self.output.warning(f"Possible cause: {hint}")
            logger.debug("Sync run failed", exc_info=True)
        finally:
            self._flush_cache()
            result.duration = time.time() - start
            result.auto_excluded = path_filter.auto_excluded

        if result.error is None:
            self._display_summary(result)
        if result.failed and target.fail_on_item_errors:
            result.success = False
            self.output.error(f"{result.failed} item(s) failed")
        return result

    def _sync(
        self,
        target: "SyncTarget",
        path_filter: PathFilter,
        dry_run: bool,
        result: SyncResult,
    ) -> None:
        """Scan, analyse and apply the diff plan."""
        scanner = DirectoryScanner(
            classifier=target.build_classifier(),
            progress=self.progress,
            scan_chunk=target.scan_chunk,
        )

        self.output.heading("Phase 1: Scanning local and remote files")
        local_files, remote_files = self._scan(scanner, target, path_filter)
        self.output.info(
            f"   → {len(local_files)} local file(s) "
            f"({format_size(sum(f.size for f in local_files.values()))}), "
            f"{len(remote_files)} remote file(s)"
        )

        self.output.heading("Phase 2: Comparing files")
        comparator = FileComparator(
            self.session,
            self.cache,
            target.remote_root,
            progress=self.progress,
            analyze_chunk=target.analyze_chunk,
        )
        plan = comparator.analyse(local_files, remote_files)
        plan.to_delete = compute_deletes(local_files, remote_files)
        # Persist hashes computed during analysis before any transfer starts
        self.cache.flush()

        result.added = len(plan.to_add)
        result.updated = len(plan.to_update)
        result.deleted = len(plan.to_delete)
        result.added_paths = sorted(i.relative_path for i in plan.to_add)
        result.updated_paths = sorted(i.relative_path for i in plan.to_update)
        result.deleted_paths = sorted(i.relative_path for i in plan.to_delete)

        self._display_sync_plan(plan, dry_run)

        stats = DirStats()
        directories = DirectoryManager(
            self.session,
            target.remote_root,
            stats=stats,
            output=self.output,
            progress=self.progress,
            remove_root=target.cleanup_empty_roots,
        )

        if not dry_run:
            if plan.changed:
                self.output.heading("Phase 3: Preparing remote directories")
                directories.ensure_dirs(plan.changed)

            self.output.heading("Phase 4: Applying changes")
            reports = self._apply(plan, target.workers)
            result.failed = sum(report.failed for report in reports)

            if target.cleanup_empty_dirs:
                self.output.heading("Phase 5: Cleaning up empty remote directories")
                directories.cleanup_empty_dirs(dry_run=False)

        result.dirs_checked = stats.checked
        result.dirs_created = stats.created
        result.dirs_removed = stats.cleanup_removed

    def _scan(
        self,
        scanner: DirectoryScanner,
        target: "SyncTarget",
        path_filter: PathFilter,
    ) -> tuple[LocalSnapshot, RemoteSnapshot]:
        """Scan both sides, concurrently unless disabled."""
        if not target.parallel_scan:
            local_files = scanner.scan_local(target.local_root, path_filter)
            remote_files = scanner.scan_remote(
                self.session, target.remote_root, path_filter
            )
            return local_files, remote_files

        with ThreadPoolExecutor(max_workers=2) as executor:
            local_future = executor.submit(
                scanner.scan_local, target.local_root, path_filter
            )
            remote_future = executor.submit(
                scanner.scan_remote, self.session, target.remote_root, path_filter
            )
            return local_future.result(), remote_future.result()

    def _apply(self, plan: DiffPlan, workers: int) -> list[TaskReport]:
        """Run uploads and deletes through the task runner."""
        reports = [
            run_tasks(
                plan.to_add,
                workers,
                self.operations.upload,
                label="Uploads (new)",
                progress=self.progress,
            ),
            run_tasks(
                plan.to_update,
                workers,
                self.operations.upload,
                label="Uploads (update)",
                progress=self.progress,
            ),
            run_tasks(
                plan.to_delete,
                workers,
                self.operations.delete,
                label="Deletes",
                progress=self.progress,
            ),
        ]

        for report in reports:
            if report.total:
                logger.info(
                    f"{report.label}: {report.succeeded}/{report.total} succeeded"
                )
            for failure in report.failures:
                self.output.error(f"{report.label} failed: {failure.item}: {failure.error}")
        return reports

    def _run_sidecar(
        self,
        target: "SyncTarget",
        dry_run: bool,
        upload: bool,
        download: bool,
        result: SyncResult,
    ) -> None:
        """Transfer the explicitly listed sidecar files."""
        sidecar = SidecarTransfer(
            self.session,
            target.sidecar_local_root,
            target.sidecar_remote_root,
            target.upload_list,
            target.download_list,
            workers=target.workers,
            output=self.output,
            progress=self.progress,
        )

        if upload:
            self.output.heading("Sidecar: uploading upload list")
            report = sidecar.upload(dry_run=dry_run)
            if report is not None:
                result.failed += report.failed
        if download:
            self.output.heading("Sidecar: downloading download list")
            report = sidecar.download(dry_run=dry_run)
            if report is not None:
                result.failed += report.failed

    def _flush_cache(self) -> None:
        try:
            self.cache.flush(force=True)
        except OSError as e:
            self.output.warning(f"Could not write fingerprint cache: {e}")

    def _display_header(
        self,
        target: "SyncTarget",
        dry_run: bool,
        sidecar_upload: bool,
        sidecar_download: bool,
        skip_sync: bool,
    ) -> None:
        if self.output.quiet:
            return

        self.output.heading(f"Push sync: {target.name}")
        self.output.info(f"   Host: {target.host}:{target.port}")
        self.output.info(f"   Local: {target.local_root}")
        self.output.info(f"   Remote: {target.remote_root}")
        self.output.info(f"   Workers: {target.workers}")
        if sidecar_upload or sidecar_download or skip_sync:
            self.output.info(f"   Sidecar local: {target.sidecar_local_root}")
            self.output.info(f"   Sidecar remote: {target.sidecar_remote_root}")
        if dry_run:
            self.output.warning("Mode: DRY-RUN (no changes will be made)")
        if skip_sync:
            self.output.warning("Mode: SKIP-SYNC (sidecar transfers only)")
        self.output.print("")

    def _display_sync_plan(self, plan: DiffPlan, dry_run: bool) -> None:
        """Display the planned changes.

        Args:
            plan: Diff plan
            dry_run: Whether this is a dry run
        """
        prefix = "(DRY-RUN) " if dry_run else ""
        for item in plan.to_add:
            self.output.change("+", f"{prefix}New:", item.relative_path)
        for item in plan.to_update:
            self.output.change("~", f"{prefix}Changed:", item.relative_path)
        for item in plan.to_delete:
            self.output.change("-", f"{prefix}Remove:", item.relative_path)

        if self.output.quiet:
            return
        self.output.info("Sync plan:")
        self.output.info(f"  + Upload new: {len(plan.to_add)} file(s)")
        self.output.info(f"  ~ Upload changed: {len(plan.to_update)} file(s)")
        self.output.info(f"  - Delete remote: {len(plan.to_delete)} file(s)")
        self.output.print("")

    def _display_summary(self, result: SyncResult) -> None:
        """Display sync summary.

        Args:
            result: Result of the run
        """
        self.output.print("")
        self.output.heading("Summary:")
        self.output.info(f"   Duration: {format_duration(result.duration)}")
        self.output.info(f"   + Added  : {result.added}")
        self.output.info(f"   ~ Changed: {result.updated}")
        self.output.info(f"   - Deleted: {result.deleted}")
        if result.failed:
            self.output.warning(f"   Failed : {result.failed}")
        if result.auto_excluded:
            self.output.info(
                f"   Excluded via sidecar upload/download: {len(result.auto_excluded)}"
            )

        self.output.info("Folders:")
        self.output.info(f"   Checked: {result.dirs_checked}")
        self.output.info(f"   + Created: {result.dirs_created}")
        self.output.info(f"   - Deleted: {result.dirs_removed}")

        if result.has_changes:
            self.output.info("Changes:")
            for rel in result.added_paths:
                self.output.change("+", "", rel)
            for rel in result.updated_paths:
                self.output.change("~", "", rel)
            for rel in result.deleted_paths:
                self.output.change("-", "", rel)
        else:
            self.output.info("No changes needed - everything is in sync!")

        self.output.print("")
        if result.dry_run:
            self.output.success("Dry run complete!")
        else:
            self.output.success("Sync complete!")
