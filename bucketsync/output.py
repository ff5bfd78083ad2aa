"""Console output helpers built on rich."""

import json
from typing import Any

from rich.console import Console


class OutputFormatter:
    """Formats user-facing messages for the terminal.

    Errors are always written to stderr. Everything else is suppressed in
    quiet mode.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize the formatter.

        Args:
            json_output: Whether results should be emitted as JSON
            quiet: Suppress non-essential output
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(highlight=False)
        self.err_console = Console(stderr=True, highlight=False)

    def print(self, message: str = "") -> None:
        """Print a plain message."""
        if not self.quiet:
            self.console.print(message, markup=False)

    def info(self, message: str) -> None:
        """Print an informational message."""
        if not self.quiet:
            self.console.print(message, markup=False)

    def success(self, message: str) -> None:
        """Print a success message."""
        if not self.quiet:
            self.console.print(message, style="green", markup=False)

    def warning(self, message: str) -> None:
        """Print a warning message."""
        if not self.quiet:
            self.console.print(message, style="yellow", markup=False)

    def error(self, message: str) -> None:
        """Print an error message to stderr."""
        self.err_console.print(message, style="bold red", markup=False)

    def output_json(self, data: Any) -> None:
        """Print data as JSON."""
        self.console.print_json(json.dumps(data, default=str))
