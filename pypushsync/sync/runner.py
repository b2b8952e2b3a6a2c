"""Bounded-concurrency task execution for sync operations."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence, TypeVar

from ..utils import DEFAULT_TASK_CHUNK
from .progress import SyncProgressTracker, should_report

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class TaskFailure:
    """A single item that failed inside the task runner."""

    item: str
    """Label of the failed item (usually its relative path)"""

    error: BaseException


@dataclass
class TaskReport:
    """Outcome of one task runner invocation."""

    label: str
    total: int = 0
    succeeded: int = 0
    failures: list[TaskFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)


def _default_describe(item: object) -> str:
    return str(getattr(item, "relative_path", item))


def run_tasks(
    items: Sequence[T],
    concurrency: int,
    handler: Callable[[T], None],
    label: str = "Tasks",
    progress: Optional[SyncProgressTracker] = None,
    describe: Callable[[T], str] = _default_describe,
    report_chunk: int = DEFAULT_TASK_CHUNK,
) -> TaskReport:
    """Apply ``handler`` to every item with at most ``concurrency`` in flight.

    Items are handed out from a single shared cursor; each item is claimed
    by exactly one worker. A failing item is logged and recorded, never
    retried, and does not stop the other items.

    Args:
        items: Work items
        concurrency: Maximum number of parallel handler invocations
            (clamped to 1..len(items))
        handler: Function applied to each item
        label: Name of the task group for logs and progress
        progress: Progress tracker (optional)
        describe: Returns the label of an item for logs and progress
        report_chunk: Report progress every N completed items

    Returns:
        TaskReport with success count and failures
    """
    report = TaskReport(label=label, total=len(items))
    if not items:
        return report

    tracker = progress or SyncProgressTracker()
    total = len(items)
    workers = max(1, min(concurrency, total))
    lock = threading.Lock()
    cursor = 0
    done = 0

    def claim() -> Optional[int]:
        nonlocal cursor
        with lock:
            if cursor >= total:
                return None
            index = cursor
            cursor += 1
            return index

    def worker() -> None:
        nonlocal done
        while True:
            index = claim()
            if index is None:
                return
            item = items[index]
            name = describe(item)
            start = time.time()
            try:
                handler(item)
            except Exception as e:
                logger.error(f"Error in {label}: {name}: {e}")
                with lock:
                    report.failures.append(TaskFailure(item=name, error=e))
            else:
                logger.debug(f"{label}: {name} took {time.time() - start:.2f}s")
                with lock:
                    report.succeeded += 1

            with lock:
                done += 1
                current = done
            if should_report(current, total, report_chunk):
                tracker.task_progress(label, current, total, name)

    logger.debug(f"Running {total} {label} item(s) with {workers} worker(s)")
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [executor.submit(worker) for _ in range(workers)]
        for future in futures:
            future.result()

    tracker.phase_complete(label)
    return report
