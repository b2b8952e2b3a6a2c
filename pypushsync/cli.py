"""CLI interface for pypushsync."""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import click

from .cli_progress import SyncProgressDisplay
from .config import DEFAULT_CONFIG_FILE, LOG_LEVELS, SyncTarget, load_config
from .exceptions import ConfigError, PushSyncError
from .output import OutputFormatter
from .session import SftpSession, describe_connection_error
from .sync.directories import DirectoryManager, DirStats
from .sync.engine import SyncEngine
from .sync.progress import SyncProgressTracker
from .sync.state import FingerprintCache

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def create_session(target: SyncTarget) -> SftpSession:
    """Create the SFTP session for a target."""
    return SftpSession(
        target.host,
        port=target.port,
        user=target.user,
        password=target.password,
        key_filename=(
            os.path.expanduser(target.private_key) if target.private_key else None
        ),
        # Scan and analysis use up to two remote channels at once
        max_channels=max(target.workers, 2),
    )


def _load_target(
    ctx: Any, name: str, log_level: Optional[str] = None
) -> SyncTarget:
    out: OutputFormatter = ctx.obj["out"]
    try:
        return load_config(ctx.obj["config_path"]).get_target(name, log_level)
    except ConfigError as e:
        out.error(str(e))
        ctx.exit(1)


def _attach_log_file(path: Path, verbose: bool) -> logging.Handler:
    """Send the package log and the console transcript to a file."""
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.setLevel(logging.DEBUG if verbose else logging.INFO)

    package_logger = logging.getLogger("pypushsync")
    package_logger.addHandler(handler)
    if package_logger.getEffectiveLevel() > handler.level:
        package_logger.setLevel(handler.level)

    # The transcript only goes to the file; the console already shows it
    transcript = logging.getLogger("pypushsync.output")
    transcript.propagate = False
    transcript.addHandler(handler)
    return handler


def _detach_log_file(handler: logging.Handler) -> None:
    logging.getLogger("pypushsync").removeHandler(handler)
    logging.getLogger("pypushsync.output").removeHandler(handler)
    logging.getLogger("pypushsync.output").propagate = True
    handler.close()


@click.group()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="Path to the JSON configuration file",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option()
@click.pass_context
def main(ctx: Any, config_path: Path, quiet: bool, verbose: bool) -> None:
    """pypushsync - Push a local directory to an SFTP server."""
    # Store settings in context for subcommands to access
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["out"] = OutputFormatter(quiet=quiet)
    ctx.obj["verbose"] = verbose

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        handlers=[console_handler],
    )
    if verbose:
        logging.getLogger("pypushsync").setLevel(logging.DEBUG)
    # Keep paramiko's transport chatter out of the console
    logging.getLogger("paramiko").setLevel(logging.WARNING)


@main.command()
@click.argument("target_name", metavar="TARGET")
@click.option("--dry-run", is_flag=True, help="Show what would be done")
@click.option(
    "--sidecar-upload", is_flag=True, help="Upload the files of the upload list"
)
@click.option(
    "--sidecar-download", is_flag=True, help="Download the files of the download list"
)
@click.option(
    "--skip-sync",
    is_flag=True,
    help="Skip the regular sync, only run the sidecar transfers",
)
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(min=1),
    default=None,
    help="Number of parallel transfers (overrides the config)",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS),
    default=None,
    help="Output detail (overrides the config)",
)
@click.option("--no-progress", is_flag=True, help="Disable progress bars")
@click.pass_context
def sync(
    ctx: Any,
    target_name: str,
    dry_run: bool,
    sidecar_upload: bool,
    sidecar_download: bool,
    skip_sync: bool,
    workers: Optional[int],
    log_level: Optional[str],
    no_progress: bool,
) -> None:
    """Synchronize the local root of TARGET to its remote root.

    New and changed files are uploaded, remote files without a local
    counterpart are deleted and empty remote directories are pruned.

    Examples:
        pypushsync sync prod --dry-run
        pypushsync sync prod --sidecar-upload
        pypushsync sync prod --skip-sync --sidecar-download
    """
    out: OutputFormatter = ctx.obj["out"]
    target = _load_target(ctx, target_name, log_level)
    if workers is not None:
        target.workers = workers
    if skip_sync and not (sidecar_upload or sidecar_download):
        out.warning("--skip-sync without --sidecar-upload/--sidecar-download does nothing")

    out.laconic = target.is_laconic
    verbose = ctx.obj["verbose"] or target.is_verbose
    if verbose:
        logging.getLogger("pypushsync").setLevel(logging.DEBUG)

    log_handler = None
    if target.log_file is not None:
        try:
            log_handler = _attach_log_file(target.log_file, verbose)
        except OSError as e:
            out.warning(f"Could not open log file {target.log_file}: {e}")
        else:
            out.info(f"Log file: {target.log_file}")

    cache = FingerprintCache(target.cache_path, namespace=target.name)
    session = create_session(target)

    try:
        if no_progress or out.quiet or dry_run:
            engine = SyncEngine(session, cache, output=out)
            result = engine.run(
                target,
                dry_run=dry_run,
                sidecar_upload=sidecar_upload,
                sidecar_download=sidecar_download,
                skip_sync=skip_sync,
            )
        else:
            with SyncProgressDisplay(console=out.console) as display:
                engine = SyncEngine(
                    session, cache, output=out, progress=display.create_tracker()
                )
                result = engine.run(
                    target,
                    dry_run=dry_run,
                    sidecar_upload=sidecar_upload,
                    sidecar_download=sidecar_download,
                    skip_sync=skip_sync,
                )
    except KeyboardInterrupt:
        out.warning("\nSync cancelled by user")
        ctx.exit(130)  # Standard exit code for SIGINT
    finally:
        if log_handler is not None:
            _detach_log_file(log_handler)

    logger.debug(f"Sync result: {result.to_dict()}")
    if not result.success:
        ctx.exit(1)


@main.command()
@click.argument("target_name", metavar="TARGET")
@click.option("--dry-run", is_flag=True, help="Only list the directories")
@click.pass_context
def prune(ctx: Any, target_name: str, dry_run: bool) -> None:
    """Remove empty directories below the remote root of TARGET.

    The remote root itself is kept unless cleanupEmptyRoots is enabled.
    """
    out: OutputFormatter = ctx.obj["out"]
    target = _load_target(ctx, target_name)

    stats = DirStats()
    session = create_session(target)
    try:
        with session:
            manager = DirectoryManager(
                session,
                target.remote_root,
                stats=stats,
                output=out,
                progress=SyncProgressTracker(),
                remove_root=target.cleanup_empty_roots,
            )
            manager.cleanup_empty_dirs(dry_run=dry_run)
    except PushSyncError as e:
        out.error(f"Cleanup failed: {e}")
        hint = describe_connection_error(e)
        if hint:
            out.warning(f"Possible cause: {hint}")
        ctx.exit(1)

    verb = "Would remove" if dry_run else "Removed"
    out.success(
        f"{verb} {stats.cleanup_removed} empty director"
        f"{'y' if stats.cleanup_removed == 1 else 'ies'} "
        f"({stats.cleanup_visited} checked)"
    )


@main.command("cache-clear")
@click.argument("target_name", metavar="TARGET")
@click.pass_context
def cache_clear(ctx: Any, target_name: str) -> None:
    """Delete the fingerprint cache of TARGET.

    The next sync recomputes all hashes it needs.
    """
    out: OutputFormatter = ctx.obj["out"]
    target = _load_target(ctx, target_name)

    cache = FingerprintCache(target.cache_path, namespace=target.name)
    try:
        removed = cache.clear()
    except OSError as e:
        out.error(f"Could not delete {target.cache_path}: {e}")
        ctx.exit(1)

    if removed:
        out.success(f"Deleted cache {target.cache_path}")
    else:
        out.info(f"No cache found at {target.cache_path}")


if __name__ == "__main__":
    main()
