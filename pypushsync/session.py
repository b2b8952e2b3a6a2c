"""SFTP remote session for pypushsync.

The sync engine only talks to the remote side through the small
:class:`RemoteSession` contract defined here. :class:`SftpSession` is the
paramiko-backed implementation used by the CLI; tests substitute an
in-memory session with the same methods.
"""

from __future__ import annotations

import errno
import logging
import posixpath
import queue
import stat
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, Literal, Optional, Protocol, Union

import paramiko

from .exceptions import RemoteConnectionError, RemoteSessionError

logger = logging.getLogger(__name__)

EntryType = Literal["file", "dir", "link", "other"]


@dataclass(frozen=True)
class RemoteEntry:
    """A single entry of a remote directory listing."""

    name: str
    """Entry name (no path component)"""

    type: EntryType
    """Entry kind: regular file, directory, symbolic link or anything else"""

    size: int = 0
    """Size in bytes as reported by the server"""

    modify_time: int = 0
    """Modification time in milliseconds since the epoch"""


class RemoteSession(Protocol):
    """Operations the sync engine needs from the remote side."""

    def connect(self) -> None: ...

    def list(self, path: str) -> list[RemoteEntry]: ...

    def exists(self, path: str) -> bool: ...

    def mkdir(self, path: str, recursive: bool = False) -> None: ...

    def get(self, path: str) -> BinaryIO: ...

    def put(self, local_path: Union[str, Path], remote_path: str) -> None: ...

    def delete(self, path: str) -> None: ...

    def rmdir(self, path: str, recursive: bool = False) -> None: ...

    def end(self) -> None: ...

    def __enter__(self) -> "RemoteSession": ...

    def __exit__(self, exc_type, exc_val, exc_tb) -> None: ...


def _entry_type(mode: Optional[int]) -> EntryType:
    if mode is None:
        return "other"
    if stat.S_ISDIR(mode):
        return "dir"
    if stat.S_ISREG(mode):
        return "file"
    if stat.S_ISLNK(mode):
        return "link"
    return "other"


def describe_connection_error(error: BaseException) -> str:
    """Return a human-readable hint for common connection failures.

    Args:
        error: Exception raised while talking to the server

    Returns:
        Hint text, or an empty string if no hint applies
    """
    cause = error.__cause__ or error
    code = getattr(cause, "errno", None)
    message = str(cause).lower()

    if isinstance(cause, paramiko.AuthenticationException):
        return "Authentication failed - check your username/password or SSH keys."
    if code == errno.ECONNREFUSED:
        return "Connection refused - check the port or SSH service."
    if code == errno.EHOSTUNREACH:
        return "Host not reachable - check network/firewall."
    if code == errno.ECONNRESET:
        return "Connection was reset by the server."
    if code == errno.ETIMEDOUT or "timed out" in message:
        return "Connection timeout - server is not responding or is blocked."
    if "name or service not known" in message or "nodename nor servname" in message:
        return "Host not found - check hostname or DNS entry."
    if "permission denied" in message:
        return "Access denied - check permissions on the server."
    return ""


class _ChannelFile:
    """Remote file handle that returns its SFTP channel to the pool on close."""

    def __init__(self, handle: paramiko.SFTPFile, release) -> None:
        self._handle = handle
        self._release = release

    def __getattr__(self, name: str):
        return getattr(self._handle, name)

    def close(self) -> None:
        if self._release is None:
            return
        release, self._release = self._release, None
        try:
            self._handle.close()
        finally:
            release()

    def __enter__(self) -> "_ChannelFile":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class SftpSession:
    """Remote session over SFTP using paramiko.

    One SSH transport is opened per session. SFTP channels on that
    transport are kept in a pool of at most ``max_channels``; every
    operation checks a channel out for its duration, so parallel workers
    never interleave requests on a shared channel and the number of open
    channels stays bounded for the whole run.

    Examples:
        >>> with SftpSession("example.org", user="deploy", password="...") as s:
        ...     entries = s.list("/var/www")
    """

    def __init__(
        self,
        host: str,
        port: int = 22,
        user: Optional[str] = None,
        password: Optional[str] = None,
        key_filename: Optional[str] = None,
        timeout: float = 30.0,
        max_channels: int = 4,
    ):
        """Initialize the session.

        Args:
            host: SSH host name
            port: SSH port (default: 22)
            user: Login user name
            password: Password (optional when a key file is used)
            key_filename: Path to a private key file
            timeout: Connect timeout in seconds
            max_channels: Upper bound of concurrently open SFTP channels
        """
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.key_filename = key_filename
        self.timeout = timeout
        self.max_channels = max(1, max_channels)

        self._client: Optional[paramiko.SSHClient] = None
        self._pool: queue.LifoQueue = self._new_pool()
        self._channels: list[paramiko.SFTPClient] = []
        self._lock = threading.Lock()

    def _new_pool(self) -> queue.LifoQueue:
        # None marks a free slot whose channel is not opened yet
        pool: queue.LifoQueue = queue.LifoQueue()
        for _ in range(self.max_channels):
            pool.put(None)
        return pool

    def connect(self) -> None:
        """Open the SSH connection and authenticate."""
        logger.debug(f"Connecting to {self.user}@{self.host}:{self.port}")
        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                hostname=self.host,
                port=self.port,
                username=self.user,
                password=self.password,
                key_filename=self.key_filename,
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
            )
        except (paramiko.SSHException, OSError) as e:
            client.close()
            raise RemoteConnectionError(
                f"Could not connect to {self.host}:{self.port}: {e}"
            ) from e
        self._client = client

    def end(self) -> None:
        """Close all SFTP channels and the SSH connection."""
        with self._lock:
            channels, self._channels = self._channels, []
        for channel in channels:
            try:
                channel.close()
            except (paramiko.SSHException, OSError) as e:
                logger.debug(f"Error closing SFTP channel: {e}")
        if self._client is not None:
            self._client.close()
            self._client = None
        self._pool = self._new_pool()

    def __enter__(self) -> "SftpSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.end()

    @property
    def open_channels(self) -> int:
        """Number of SFTP channels opened on the current connection."""
        with self._lock:
            return len(self._channels)

    def _checkout(self) -> paramiko.SFTPClient:
        """Take a channel from the pool, opening it on demand.

        Blocks while all ``max_channels`` channels are in use.
        """
        if self._client is None:
            raise RemoteSessionError("Session is not connected")
        pool = self._pool
        channel = pool.get()
        if channel is not None:
            return channel
        try:
            channel = self._client.open_sftp()
        except (paramiko.SSHException, OSError) as e:
            pool.put(None)
            raise RemoteSessionError(f"Could not open SFTP channel: {e}") from e
        with self._lock:
            self._channels.append(channel)
        logger.debug(f"Opened SFTP channel {len(self._channels)}/{self.max_channels}")
        return channel

    def _checkin(self, channel: paramiko.SFTPClient) -> None:
        with self._lock:
            if channel not in self._channels:
                # Closed by end() while checked out
                return
        self._pool.put(channel)

    @contextmanager
    def _operation(self, name: str, path: str) -> Iterator[None]:
        try:
            yield
        except RemoteSessionError:
            raise
        except (paramiko.SSHException, OSError) as e:
            raise RemoteSessionError(f"{name} failed for {path}: {e}", path) from e

    @contextmanager
    def _channel(self, name: str, path: str) -> Iterator[paramiko.SFTPClient]:
        """Check out a channel for one operation and wrap its errors."""
        channel = self._checkout()
        try:
            with self._operation(name, path):
                yield channel
        finally:
            self._checkin(channel)

    def list(self, path: str) -> list[RemoteEntry]:
        """List a remote directory.

        Args:
            path: Remote directory path

        Returns:
            Entries of the directory (without "." and "..")
        """
        with self._channel("list", path) as sftp:
            attrs = sftp.listdir_attr(path)

        entries: list[RemoteEntry] = []
        for attr in attrs:
            if not attr.filename or attr.filename in (".", ".."):
                continue
            entries.append(
                RemoteEntry(
                    name=attr.filename,
                    type=_entry_type(attr.st_mode),
                    size=int(attr.st_size or 0),
                    modify_time=int(attr.st_mtime or 0) * 1000,
                )
            )
        return entries

    def exists(self, path: str) -> bool:
        """Check whether a remote path exists."""
        try:
            with self._channel("stat", path) as sftp:
                sftp.stat(path)
        except RemoteSessionError as e:
            if isinstance(e.__cause__, FileNotFoundError):
                return False
            raise
        return True

    def mkdir(self, path: str, recursive: bool = False) -> None:
        """Create a remote directory.

        Args:
            path: Remote directory path
            recursive: Create missing parents; existing directories are
                not an error
        """
        if not recursive:
            with self._channel("mkdir", path) as sftp:
                sftp.mkdir(path)
            return

        current = "/" if path.startswith("/") else ""
        for segment in [p for p in path.split("/") if p]:
            current = posixpath.join(current, segment) if current else segment
            if self.exists(current):
                continue
            try:
                with self._channel("mkdir", current) as sftp:
                    sftp.mkdir(current)
            except RemoteSessionError:
                # Another worker may have created it in the meantime
                if not self.exists(current):
                    raise

    def get(self, path: str) -> BinaryIO:
        """Open a remote file for streaming reads.

        The returned file object keeps its channel checked out until it is
        closed, so the caller must close it (it is a context manager).
        """
        channel = self._checkout()
        try:
            with self._operation("get", path):
                handle = channel.open(path, "rb")
                handle.prefetch()
        except RemoteSessionError:
            self._checkin(channel)
            raise
        return _ChannelFile(handle, lambda: self._checkin(channel))  # type: ignore[return-value]

    def put(self, local_path: Union[str, Path], remote_path: str) -> None:
        """Upload a local file, overwriting the remote target."""
        with self._channel("put", remote_path) as sftp:
            sftp.put(str(local_path), remote_path)

    def delete(self, path: str) -> None:
        """Delete a remote file."""
        with self._channel("delete", path) as sftp:
            sftp.remove(path)

    def rmdir(self, path: str, recursive: bool = False) -> None:
        """Remove a remote directory.

        Args:
            path: Remote directory path
            recursive: Delete contents first; otherwise the directory must
                be empty
        """
        if recursive:
            for entry in self.list(path):
                child = posixpath.join(path, entry.name)
                if entry.type == "dir":
                    self.rmdir(child, recursive=True)
                else:
                    self.delete(child)
        with self._channel("rmdir", path) as sftp:
            sftp.rmdir(path)
