"""Sync engine for pypushsync - one-way push of a local tree to a remote tree."""

from .comparator import DiffPlan, FileComparator, PlanItem, compute_deletes
from .directories import DirectoryManager, DirStats, collect_dirs
from .engine import SyncEngine, SyncResult
from .filters import FileClassifier, PathFilter
from .operations import SyncOperations
from .progress import (
    SyncProgressEvent,
    SyncProgressInfo,
    SyncProgressTracker,
)
from .runner import TaskFailure, TaskReport, run_tasks
from .scanner import DirectoryScanner, LocalFileRecord, RemoteFileRecord
from .sidecar import SidecarTransfer, matches_any, normalize_list
from .state import FingerprintCache, hash_stream

__all__ = [
    "SyncEngine",
    "SyncResult",
    "SyncOperations",
    "DirectoryScanner",
    "LocalFileRecord",
    "RemoteFileRecord",
    "FileComparator",
    "DiffPlan",
    "PlanItem",
    "compute_deletes",
    "DirectoryManager",
    "DirStats",
    "collect_dirs",
    "FileClassifier",
    "PathFilter",
    "SyncProgressEvent",
    "SyncProgressInfo",
    "SyncProgressTracker",
    "TaskFailure",
    "TaskReport",
    "run_tasks",
    "SidecarTransfer",
    "matches_any",
    "normalize_list",
    "FingerprintCache",
    "hash_stream",
]
