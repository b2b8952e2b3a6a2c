"""Progress reporting for sync runs.

The engine reports progress through a :class:`SyncProgressTracker`. The
tracker forwards :class:`SyncProgressInfo` events to an optional callback
(for example the rich display in ``cli_progress``). Reporting is
fire-and-forget: a failing callback never affects the sync.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class SyncProgressEvent(str, Enum):
    """Kinds of progress events."""

    SCAN_PROGRESS = "scan_progress"
    SCAN_COMPLETE = "scan_complete"
    ANALYZE_PROGRESS = "analyze_progress"
    TASK_PROGRESS = "task_progress"
    DIRECTORY_PROGRESS = "directory_progress"
    PHASE_COMPLETE = "phase_complete"


@dataclass
class SyncProgressInfo:
    """A single progress update."""

    event: SyncProgressEvent
    channel: str
    """Channel the update belongs to ("local", "remote", task label...)"""

    current: int = 0
    total: int = 0
    """Total number of items, 0 if unknown"""

    relative_path: str = ""


ProgressCallback = Callable[[SyncProgressInfo], None]


class SyncProgressTracker:
    """Forwards progress events to a callback.

    A tracker without callback is a no-op, so components can always report
    without checking whether anybody listens.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback

    def _emit(self, info: SyncProgressInfo) -> None:
        if self.callback is None:
            return
        try:
            self.callback(info)
        except Exception:
            logger.debug("Progress callback failed", exc_info=True)

    def scan_progress(self, side: str, count: int, relative_path: str = "") -> None:
        self._emit(
            SyncProgressInfo(
                SyncProgressEvent.SCAN_PROGRESS, side, count, 0, relative_path
            )
        )

    def scan_complete(self, side: str, count: int) -> None:
        self._emit(
            SyncProgressInfo(SyncProgressEvent.SCAN_COMPLETE, side, count, count)
        )

    def analyze_progress(self, current: int, total: int, relative_path: str) -> None:
        self._emit(
            SyncProgressInfo(
                SyncProgressEvent.ANALYZE_PROGRESS,
                "analyze",
                current,
                total,
                relative_path,
            )
        )

    def task_progress(
        self, label: str, current: int, total: int, relative_path: str = ""
    ) -> None:
        self._emit(
            SyncProgressInfo(
                SyncProgressEvent.TASK_PROGRESS, label, current, total, relative_path
            )
        )

    def directory_progress(
        self, label: str, current: int, total: int, relative_path: str = ""
    ) -> None:
        self._emit(
            SyncProgressInfo(
                SyncProgressEvent.DIRECTORY_PROGRESS,
                label,
                current,
                total,
                relative_path,
            )
        )

    def phase_complete(self, channel: str) -> None:
        self._emit(SyncProgressInfo(SyncProgressEvent.PHASE_COMPLETE, channel))


def should_report(current: int, total: int, chunk: int) -> bool:
    """Throttle rule: report the first item, every ``chunk``-th and the last.

    Examples:
        >>> [i for i in range(1, 26) if should_report(i, 25, 10)]
        [1, 10, 20, 25]
    """
    return current == 1 or current % max(chunk, 1) == 0 or current == total
