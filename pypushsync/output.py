"""Console output formatting for pypushsync."""

import logging
from typing import Optional

from rich.console import Console
from rich.markup import escape

# Mirrors user-facing messages into the log file handler
transcript = logging.getLogger("pypushsync.output")


class OutputFormatter:
    """Formats user-facing messages on a rich console.

    Every message is also written to the ``pypushsync.output`` logger so a
    file handler attached by the CLI receives the full transcript, even in
    quiet mode.
    """

    def __init__(
        self,
        quiet: bool = False,
        laconic: bool = False,
        console: Optional[Console] = None,
    ):
        """Initialize output formatter.

        Args:
            quiet: Suppress non-essential output (errors are always shown)
            laconic: Suppress per-file listings
            console: Rich console to print on (defaults to stdout)
        """
        self.quiet = quiet
        self.laconic = laconic
        self.console = console or Console(highlight=False, soft_wrap=True)

    def _emit(self, style: str, prefix: str, message: str, level: int) -> None:
        transcript.log(level, f"{prefix}{message}")
        if self.quiet and level < logging.ERROR:
            return
        text = escape(message)
        self.console.print(f"[{style}]{text}[/{style}]" if style else text)

    def print(self, message: str = "") -> None:
        """Print a plain message."""
        self._emit("", "", message, logging.INFO)

    def info(self, message: str) -> None:
        """Print an informational message."""
        self._emit("", "", message, logging.INFO)

    def heading(self, message: str) -> None:
        """Print a phase heading."""
        self._emit("bold cyan", "", message, logging.INFO)

    def success(self, message: str) -> None:
        """Print a success message."""
        self._emit("bold green", "", message, logging.INFO)

    def warning(self, message: str) -> None:
        """Print a warning message."""
        self._emit("yellow", "[WARN] ", message, logging.WARNING)

    def error(self, message: str) -> None:
        """Print an error message."""
        self._emit("bold red", "[ERROR] ", message, logging.ERROR)

    def change(self, symbol: str, label: str, relative_path: str) -> None:
        """Print a single planned change unless laconic output is active."""
        if self.laconic:
            return
        styles = {"+": "green", "~": "yellow", "-": "red"}
        style = styles.get(symbol, "default")
        transcript.info(f"   {symbol} {label} {relative_path}")
        if self.quiet:
            return
        self.console.print(
            f"   [{style}]{symbol} {escape(label)}[/{style}] {escape(relative_path)}"
        )
