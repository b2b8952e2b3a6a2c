"""Fingerprint cache for content comparison across sync runs.

Hashing binary files is the expensive part of a comparison. This module
keeps the SHA-256 of every binary file that needed a content comparison,
together with the size and timestamp observed when the hash was computed.
As long as both are unchanged the stored hash is reused instead of reading
the file again.

The cache is one JSON document per connection::

    {
      "version": 1,
      "local":  {"<ns>:<rel>": {"size": 1, "timestamp": 1700000000000, "hash": "..."}},
      "remote": {"<ns>:<rel>": {"size": 1, "modifyTime": 1700000000000, "hash": "..."}}
    }

Deleting the document is always safe; it only forces a full rehash.
"""

import hashlib
import json
import logging
import os
import threading
from pathlib import Path
from typing import BinaryIO, Callable, ContextManager, Literal, Union

from ..utils import DEFAULT_FLUSH_INTERVAL, HASH_CHUNK_SIZE

logger = logging.getLogger(__name__)

CACHE_VERSION = 1

Side = Literal["local", "remote"]

# Name of the timestamp field for each side of the document
_TIMESTAMP_FIELDS: dict[str, str] = {"local": "timestamp", "remote": "modifyTime"}

ContentFetcher = Callable[[], Union[BinaryIO, ContextManager[BinaryIO]]]


def hash_stream(stream: BinaryIO, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Stream binary content through SHA-256.

    Args:
        stream: Readable binary file object
        chunk_size: Bytes to read per iteration

    Returns:
        Hex digest of the content
    """
    digest = hashlib.sha256()
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        digest.update(chunk)
    return digest.hexdigest()


class FingerprintCache:
    """Persistent size+timestamp keyed hash cache, one table per side.

    Thread-safe: table updates, the dirty counter and flushing are guarded
    by a lock, while content hashing runs outside of it.
    """

    def __init__(
        self,
        cache_path: Path,
        namespace: str = "default",
        flush_interval: int = DEFAULT_FLUSH_INTERVAL,
    ):
        """Initialize the cache and load the backing document.

        Args:
            cache_path: JSON document to load from and flush to
            namespace: Key prefix, usually the connection name
            flush_interval: Number of new entries that triggers a flush
        """
        self.cache_path = Path(cache_path)
        self.namespace = namespace or "default"
        self.flush_interval = max(1, flush_interval)
        self.version = CACHE_VERSION
        self.tables: dict[str, dict[str, dict]] = {"local": {}, "remote": {}}
        self.dirty_count = 0
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        """Load the backing document; fall back to an empty cache."""
        if not self.cache_path.exists():
            logger.debug(f"No fingerprint cache found at {self.cache_path}")
            return

        try:
            with open(self.cache_path, encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("cache document is not an object")
            self.version = data.get("version", CACHE_VERSION)
            for side in ("local", "remote"):
                table = data.get(side) or {}
                if not isinstance(table, dict):
                    raise ValueError(f"'{side}' table is not an object")
                entries = {
                    key: entry for key, entry in table.items() if isinstance(entry, dict)
                }
                if len(entries) != len(table):
                    logger.warning(
                        f"Dropped {len(table) - len(entries)} malformed {side} "
                        f"entries from fingerprint cache {self.cache_path}"
                    )
                self.tables[side] = entries
            logger.debug(
                f"Loaded fingerprint cache with {len(self.tables['local'])} local "
                f"and {len(self.tables['remote'])} remote entries"
            )
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable fingerprint cache {self.cache_path}: {e}")
            self.tables = {"local": {}, "remote": {}}

    def key(self, relative_path: str) -> str:
        """Build the namespaced cache key for a relative path."""
        return f"{self.namespace}:{relative_path}"

    def lookup(self, side: Side, relative_path: str, size: int, timestamp: int):
        """Return the cached hash if size and timestamp match, else None."""
        field = _TIMESTAMP_FIELDS[side]
        with self._lock:
            cached = self.tables[side].get(self.key(relative_path))
        if (
            isinstance(cached, dict)
            and cached.get("size") == size
            and cached.get(field) == timestamp
            and cached.get("hash")
        ):
            return cached["hash"]
        return None

    def get_hash(
        self,
        side: Side,
        relative_path: str,
        size: int,
        timestamp: int,
        fetch_content: ContentFetcher,
    ) -> str:
        """Return the content hash of a file, computing it only when needed.

        Args:
            side: "local" or "remote"
            relative_path: Relative path of the file
            size: Current size of the file
            timestamp: Current modification time (ms) of the file
            fetch_content: Opens the file content as a binary stream

        Returns:
            SHA-256 hex digest
        """
        cached = self.lookup(side, relative_path, size, timestamp)
        if cached is not None:
            return cached

        logger.debug(f"Hashing {side} {relative_path}")
        with fetch_content() as stream:
            digest = hash_stream(stream)

        field = _TIMESTAMP_FIELDS[side]
        with self._lock:
            self.tables[side][self.key(relative_path)] = {
                "size": size,
                field: timestamp,
                "hash": digest,
            }
            self.dirty_count += 1
            if self.dirty_count >= self.flush_interval:
                self._write()
        return digest

    @property
    def dirty(self) -> bool:
        return self.dirty_count > 0

    def flush(self, force: bool = False) -> None:
        """Write the cache document if anything changed (or when forced)."""
        with self._lock:
            if self.dirty_count == 0 and not force:
                return
            self._write()

    def _write(self) -> None:
        # Caller holds the lock
        document = {
            "version": self.version,
            "local": self.tables["local"],
            "remote": self.tables["remote"],
        }
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.cache_path.with_name(self.cache_path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        os.replace(tmp_path, self.cache_path)
        logger.debug(f"Flushed fingerprint cache to {self.cache_path}")
        self.dirty_count = 0

    def clear(self) -> bool:
        """Delete the backing document and empty the tables.

        Returns:
            True if a document was deleted, False if none existed
        """
        with self._lock:
            self.tables = {"local": {}, "remote": {}}
            self.dirty_count = 0
            if self.cache_path.exists():
                self.cache_path.unlink()
                logger.debug(f"Cleared fingerprint cache at {self.cache_path}")
                return True
        return False
