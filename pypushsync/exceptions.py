"""Custom exceptions for pypushsync."""

from typing import Optional


class PushSyncError(Exception):
    """Base exception for all sync errors."""

    pass


class ConfigError(PushSyncError):
    """Raised when the sync configuration is missing or invalid."""

    pass


class ScanError(PushSyncError):
    """Raised when a local or remote tree cannot be scanned completely.

    A partial tree cannot be trusted for computing deletions, so any
    listing or stat failure aborts the scan.
    """

    def __init__(self, side: str, path: str, reason: str):
        self.side = side
        self.path = path
        super().__init__(f"Failed to scan {side} path {path}: {reason}")


class ComparisonError(PushSyncError):
    """Raised when file content cannot be fetched for comparison."""

    def __init__(self, relative_path: str, reason: str):
        self.relative_path = relative_path
        super().__init__(f"Failed to compare {relative_path}: {reason}")


class RemoteSessionError(PushSyncError):
    """Raised when a remote protocol operation fails."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class RemoteConnectionError(RemoteSessionError):
    """Raised when connecting or authenticating to the remote host fails."""

    pass
