"""Sync operations applied to individual plan items."""

import logging

from ..session import RemoteSession
from .comparator import PlanItem

logger = logging.getLogger(__name__)


class SyncOperations:
    """Uploads and deletes single files on the remote side.

    These are the per-item handlers passed to the task runner. They raise
    on failure; the runner records the failure and moves on.
    """

    def __init__(self, session: RemoteSession):
        """Initialize sync operations.

        Args:
            session: Connected remote session
        """
        self.session = session

    def upload(self, item: PlanItem) -> None:
        """Upload a new or changed local file to its remote path.

        Args:
            item: Plan item with a local record
        """
        if item.local is None:
            raise ValueError(f"No local file for {item.relative_path}")
        logger.debug(f"Uploading {item.relative_path} -> {item.remote_path}")
        self.session.put(item.local.path, item.remote_path)

    def delete(self, item: PlanItem) -> None:
        """Delete an orphaned remote file.

        Args:
            item: Plan item with a remote path
        """
        logger.debug(f"Deleting {item.remote_path}")
        self.session.delete(item.remote_path)
