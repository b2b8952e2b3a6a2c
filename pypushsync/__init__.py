"""pypushsync - one-way push synchronization of a local directory to SFTP."""

from .config import SyncConfig, SyncTarget, load_config
from .exceptions import (
    ComparisonError,
    ConfigError,
    PushSyncError,
    RemoteConnectionError,
    RemoteSessionError,
    ScanError,
)
from .session import RemoteEntry, RemoteSession, SftpSession

__all__ = [
    "SyncConfig",
    "SyncTarget",
    "load_config",
    "PushSyncError",
    "ConfigError",
    "ScanError",
    "ComparisonError",
    "RemoteSessionError",
    "RemoteConnectionError",
    "RemoteEntry",
    "RemoteSession",
    "SftpSession",
]
