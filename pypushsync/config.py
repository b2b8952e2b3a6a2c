"""Configuration loading for pypushsync.

Connections are defined in a JSON file (``sync.config.json`` by default)::

    {
      "connections": {
        "prod": {
          "host": "example.org", "port": 22, "user": "deploy",
          "sync": {"localRoot": "./public", "remoteRoot": "/var/www/html"}
        }
      },
      "exclude": ["**/.DS_Store"]
    }
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from .exceptions import ConfigError
from .sync.filters import FileClassifier, PathFilter
from .sync.sidecar import normalize_list
from .utils import (
    DEFAULT_ANALYZE_CHUNK,
    DEFAULT_SCAN_CHUNK,
    DEFAULT_TEXT_EXTENSIONS,
    DEFAULT_WORKERS,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "sync.config.json"
PASSWORD_ENV_VAR = "PYPUSHSYNC_PASSWORD"
LOG_LEVELS = ("laconic", "normal", "verbose")


@dataclass
class SyncTarget:
    """Everything needed to sync one named connection."""

    name: str
    host: str
    local_root: Path
    remote_root: str
    port: int = 22
    user: Optional[str] = None
    password: Optional[str] = None
    private_key: Optional[str] = None
    workers: int = DEFAULT_WORKERS
    cache_path: Optional[Path] = None
    fail_on_item_errors: bool = False

    sidecar_local_root: Optional[Path] = None
    sidecar_remote_root: Optional[str] = None
    upload_list: list[str] = field(default_factory=list)
    download_list: list[str] = field(default_factory=list)

    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    text_extensions: list[str] = field(
        default_factory=lambda: list(DEFAULT_TEXT_EXTENSIONS)
    )
    cleanup_empty_dirs: bool = True
    cleanup_empty_roots: bool = False

    log_level: str = "normal"
    log_file: Optional[Path] = None
    scan_chunk: int = DEFAULT_SCAN_CHUNK
    analyze_chunk: int = DEFAULT_ANALYZE_CHUNK
    parallel_scan: bool = True

    def __post_init__(self) -> None:
        if self.cache_path is None:
            self.cache_path = Path(f".sync-cache.{self.name}.json").resolve()
        if self.sidecar_local_root is None:
            self.sidecar_local_root = self.local_root
        if self.sidecar_remote_root is None:
            self.sidecar_remote_root = self.remote_root

    @property
    def is_verbose(self) -> bool:
        return self.log_level == "verbose"

    @property
    def is_laconic(self) -> bool:
        return self.log_level == "laconic"

    def build_path_filter(self) -> PathFilter:
        """Create the inclusion predicate, excluding sidecar paths."""
        return PathFilter(
            include=self.include,
            exclude=self.exclude,
            sidecar_paths=self.upload_list + self.download_list,
        )

    def build_classifier(self) -> FileClassifier:
        return FileClassifier(self.text_extensions)


@dataclass
class SyncConfig:
    """Parsed configuration file."""

    path: Path
    data: dict[str, Any]

    @property
    def targets(self) -> list[str]:
        return sorted(self.data.get("connections", {}))

    def get_target(self, name: str, log_level: Optional[str] = None) -> SyncTarget:
        """Build the SyncTarget for a named connection.

        Args:
            name: Connection name
            log_level: Overrides the configured log level

        Returns:
            SyncTarget

        Raises:
            ConfigError: If the connection is unknown or incomplete
        """
        connections = self.data["connections"]
        conn = connections.get(name)
        if not isinstance(conn, dict):
            known = ", ".join(self.targets) or "none"
            raise ConfigError(
                f"Connection '{name}' not found in {self.path} (known: {known})"
            )

        sync_cfg = conn.get("sync", conn)
        sidecar_cfg = conn.get("sidecar") or {}
        progress = self.data.get("progress") or {}
        for key, section in (
            (f"connections.{name}.sync", sync_cfg),
            (f"connections.{name}.sidecar", sidecar_cfg),
            ("progress", progress),
        ):
            if not isinstance(section, dict):
                raise ConfigError(f"'{key}' must be an object in {self.path}")

        if not sync_cfg.get("localRoot") or not sync_cfg.get("remoteRoot"):
            raise ConfigError(
                f"Connection '{name}' is missing sync.localRoot or sync.remoteRoot"
            )
        if not conn.get("host"):
            raise ConfigError(f"Connection '{name}' is missing host")

        level = (log_level or self.data.get("logLevel") or "normal").lower()
        if level not in LOG_LEVELS:
            raise ConfigError(
                f"Invalid logLevel '{level}' (expected one of {', '.join(LOG_LEVELS)})"
            )
        verbose = level == "verbose"

        log_file_pattern = self.data.get("logFile", f".sync.{name}.log")
        log_file = (
            Path(log_file_pattern.replace("{target}", name)).resolve()
            if log_file_pattern
            else None
        )

        try:
            return SyncTarget(
                name=name,
                host=conn["host"],
                port=int(conn.get("port", 22)),
                user=conn.get("user"),
                password=conn.get("password") or os.environ.get(PASSWORD_ENV_VAR),
                private_key=conn.get("privateKey"),
                local_root=Path(sync_cfg["localRoot"]).expanduser().resolve(),
                remote_root=sync_cfg["remoteRoot"],
                workers=int(conn.get("worker", DEFAULT_WORKERS)),
                cache_path=(
                    Path(conn["syncCache"]).resolve() if conn.get("syncCache") else None
                ),
                fail_on_item_errors=bool(conn.get("failOnItemErrors", False)),
                sidecar_local_root=(
                    Path(sidecar_cfg["localRoot"]).expanduser().resolve()
                    if sidecar_cfg.get("localRoot")
                    else None
                ),
                sidecar_remote_root=sidecar_cfg.get("remoteRoot"),
                upload_list=normalize_list(sidecar_cfg.get("uploadList", [])),
                download_list=normalize_list(sidecar_cfg.get("downloadList", [])),
                include=list(self.data.get("include", [])),
                exclude=list(self.data.get("exclude", [])),
                text_extensions=list(
                    self.data.get("textExtensions", DEFAULT_TEXT_EXTENSIONS)
                ),
                cleanup_empty_dirs=bool(self.data.get("cleanupEmptyDirs", True)),
                cleanup_empty_roots=bool(self.data.get("cleanupEmptyRoots", False)),
                log_level=level,
                log_file=log_file,
                scan_chunk=int(
                    progress.get("scanChunk", 1 if verbose else DEFAULT_SCAN_CHUNK)
                ),
                analyze_chunk=int(
                    progress.get("analyzeChunk", 1 if verbose else DEFAULT_ANALYZE_CHUNK)
                ),
                parallel_scan=bool(progress.get("parallelScan", True)),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value in connection '{name}': {e}") from e


def load_config(path: Optional[Path] = None) -> SyncConfig:
    """Load and validate the configuration file.

    Args:
        path: Config file path (defaults to ./sync.config.json)

    Returns:
        SyncConfig

    Raises:
        ConfigError: If the file is missing, unparsable or has no connections
    """
    config_path = Path(path or DEFAULT_CONFIG_FILE).resolve()
    if not config_path.exists():
        raise ConfigError(f"Configuration file missing: {config_path}")

    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Error reading {config_path}: {e}") from e

    if not isinstance(data, dict) or not isinstance(data.get("connections"), dict):
        raise ConfigError(f"{config_path} must have a 'connections' object")

    logger.debug(f"Loaded configuration from {config_path}")
    return SyncConfig(path=config_path, data=data)
