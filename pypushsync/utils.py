"""Utility functions for pypushsync."""

import os
import posixpath

# =============================================================================
# Constants
# =============================================================================

# Chunk size used when streaming file content through a digest (1 MB)
HASH_CHUNK_SIZE: int = 1024 * 1024

# Number of dirty cache entries that triggers an automatic flush
DEFAULT_FLUSH_INTERVAL: int = 50

# Progress throttling
DEFAULT_SCAN_CHUNK: int = 100
DEFAULT_ANALYZE_CHUNK: int = 10
DEFAULT_TASK_CHUNK: int = 10

DEFAULT_WORKERS: int = 2

DEFAULT_TEXT_EXTENSIONS: tuple[str, ...] = (
    ".html",
    ".htm",
    ".xml",
    ".txt",
    ".json",
    ".js",
    ".mjs",
    ".cjs",
    ".css",
    ".md",
    ".svg",
)


# =============================================================================
# Path utilities
# =============================================================================


def to_posix(path: str) -> str:
    """Convert a platform path to slash-separated notation.

    Args:
        path: Path using the platform separator

    Returns:
        Path using forward slashes

    Examples:
        >>> to_posix("a/b/c.txt")
        'a/b/c.txt'
    """
    return "/".join(path.split(os.sep))


def join_remote(root: str, relative_path: str) -> str:
    """Join a remote root and a relative path.

    Examples:
        >>> join_remote("/var/www", "a/b.txt")
        '/var/www/a/b.txt'
        >>> join_remote("/var/www/", "a/b.txt")
        '/var/www/a/b.txt'
    """
    return posixpath.join(root, relative_path)


def path_depth(relative_path: str) -> int:
    """Return the number of segments in a slash-separated path."""
    return len(relative_path.split("/"))


def shorten_path(relative_path: str) -> str:
    """Shorten a path for progress display to its last two segments.

    Examples:
        >>> shorten_path("a/b/c/d.txt")
        '…/c/d.txt'
        >>> shorten_path("c/d.txt")
        'c/d.txt'
    """
    if not relative_path:
        return ""
    parts = relative_path.split("/")
    if len(parts) <= 2:
        return relative_path
    return f"…/{parts[-2]}/{parts[-1]}"


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


def format_duration(seconds: float) -> str:
    """Format a duration in seconds with two decimals."""
    return f"{seconds:.2f} s"
