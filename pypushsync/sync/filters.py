"""Inclusion filtering and file classification for sync scans."""

import logging
import posixpath
import threading
from collections.abc import Iterable
from typing import Optional

from pathspec import PathSpec

from ..utils import DEFAULT_TEXT_EXTENSIONS

logger = logging.getLogger(__name__)


def _compile(patterns: Iterable[str]) -> Optional[PathSpec]:
    cleaned = [p.strip() for p in patterns if p and p.strip()]
    if not cleaned:
        return None
    return PathSpec.from_lines("gitwildmatch", cleaned)


class PathFilter:
    """Decides whether a relative path takes part in the sync.

    Patterns use gitignore syntax. When include patterns are given, a path
    must match at least one of them; a path matching any exclude pattern is
    always rejected.

    Note that a pattern without a slash matches at any depth: ``*.html``
    selects ``index.html`` as well as ``blog/post.html``. Glob matchers in
    the minimatch style only match such a pattern against top-level names.
    Anchor a pattern with a leading slash (``/*.html``) to restrict it to
    the sync root. Dotfiles are matched like any other name.

    Paths that are listed for sidecar transfer are excluded from the diff.
    When such a path is rejected it is remembered in ``auto_excluded`` so
    the summary can report it.

    Examples:
        >>> f = PathFilter(include=["*.html"], exclude=["drafts/"])
        >>> f.is_included("index.html")
        True
        >>> f.is_included("drafts/post.html")
        False
    """

    def __init__(
        self,
        include: Optional[list[str]] = None,
        exclude: Optional[list[str]] = None,
        sidecar_paths: Optional[list[str]] = None,
    ):
        """Initialize the filter.

        Args:
            include: Patterns a path must match (empty means everything)
            exclude: Patterns that reject a path
            sidecar_paths: Sidecar upload/download patterns; appended to
                the exclude list
        """
        self.include = list(include or [])
        self.exclude = list(exclude or [])
        self.sidecar_paths = list(sidecar_paths or [])
        self._include_spec = _compile(self.include)
        self._exclude_spec = _compile(self.exclude + self.sidecar_paths)
        self._sidecar_spec = _compile(self.sidecar_paths)
        self._auto_excluded: set[str] = set()
        self._lock = threading.Lock()

    def is_included(self, relative_path: str) -> bool:
        """Check whether a relative path should be synced."""
        if self._include_spec is not None and not self._include_spec.match_file(
            relative_path
        ):
            return False

        if self._exclude_spec is not None and self._exclude_spec.match_file(
            relative_path
        ):
            if self._sidecar_spec is not None and self._sidecar_spec.match_file(
                relative_path
            ):
                with self._lock:
                    self._auto_excluded.add(relative_path)
            return False

        return True

    __call__ = is_included

    @property
    def auto_excluded(self) -> list[str]:
        """Sorted sidecar paths that were excluded from the diff."""
        with self._lock:
            return sorted(self._auto_excluded)


class FileClassifier:
    """Classifies files as text or binary by extension."""

    def __init__(self, text_extensions: Optional[Iterable[str]] = None):
        extensions = (
            DEFAULT_TEXT_EXTENSIONS if text_extensions is None else text_extensions
        )
        self.text_extensions = frozenset(
            e.lower() if e.startswith(".") else f".{e.lower()}" for e in extensions
        )

    def is_text(self, relative_path: str) -> bool:
        """Return True if the path has a text extension (case-insensitive)."""
        _, ext = posixpath.splitext(relative_path)
        return ext.lower() in self.text_extensions
