"""CLI progress display for sync operations.

This module provides a Rich-based progress display that works with
the SyncProgressTracker from the sync engine.
"""

import threading
from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)

from .sync.progress import SyncProgressEvent, SyncProgressInfo, SyncProgressTracker
from .utils import shorten_path

_CHANNEL_NAMES = {
    "local": "Scanning local",
    "remote": "Scanning remote",
    "analyze": "Analyzing",
}


class SyncProgressDisplay:
    """Rich-based progress display for sync runs.

    Every progress channel (local scan, remote scan, analysis, each task
    group and directory phase) gets its own progress bar, created on the
    first event of that channel.
    """

    def __init__(self, console: Optional[Console] = None) -> None:
        """Initialize the progress display.

        Args:
            console: Console to render on (shared with the output formatter)
        """
        self.console = console
        self._progress: Optional[Progress] = None
        self._tasks: dict[str, TaskID] = {}
        self._completed: dict[str, int] = {}
        self._lock = threading.Lock()

    def create_tracker(self) -> SyncProgressTracker:
        """Create a SyncProgressTracker that updates this display.

        Returns:
            A configured SyncProgressTracker
        """
        return SyncProgressTracker(callback=self._handle_event)

    def _task_for(self, channel: str) -> TaskID:
        if channel not in self._tasks:
            self._tasks[channel] = self._progress.add_task(
                _CHANNEL_NAMES.get(channel, channel), total=None, path=""
            )
        return self._tasks[channel]

    def _handle_event(self, info: SyncProgressInfo) -> None:
        """Handle a progress event from the tracker.

        Args:
            info: Progress information
        """
        with self._lock:
            if self._progress is not None:
                self._update(info)

    def _update(self, info: SyncProgressInfo) -> None:
        task = self._task_for(info.channel)
        if info.event == SyncProgressEvent.PHASE_COMPLETE:
            done = self._completed.get(info.channel) or 1
            self._progress.update(task, total=done, completed=done, path="")
        elif info.event == SyncProgressEvent.SCAN_COMPLETE:
            self._progress.update(
                task, total=info.total or 1, completed=info.current or 1, path=""
            )
        else:
            self._completed[info.channel] = info.current
            self._progress.update(
                task,
                completed=info.current,
                total=info.total or None,
                path=shorten_path(info.relative_path) if info.relative_path else "",
            )

    def __enter__(self) -> "SyncProgressDisplay":
        """Enter context manager - start progress display."""
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TextColumn("[cyan]{task.fields[path]}"),
            TimeElapsedColumn(),
            console=self.console,
            refresh_per_second=4,
            transient=False,
        )
        self._progress.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - stop progress display."""
        if self._progress is not None:
            self._progress.__exit__(exc_type, exc_val, exc_tb)
            self._progress = None
            self._tasks = {}
            self._completed = {}
