"""Console output formatting for the CLI and the sync engine."""

import json
from typing import Any, Optional

from rich.console import Console
from rich.table import Table

from .utils import format_size


class OutputFormatter:
    """Prints status messages, tables and JSON documents.

    In quiet mode only errors are printed; in JSON mode human-readable
    messages go to stderr so stdout carries nothing but the JSON document.
    """

    def __init__(
        self,
        json_output: bool = False,
        quiet: bool = False,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
    ):
        self.json_output = json_output
        self.quiet = quiet
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    @property
    def _status_console(self) -> Console:
        return self.err_console if self.json_output else self.console

    def print(self, message: str = "") -> None:
        if not self.quiet:
            self._status_console.print(message)

    def info(self, message: str) -> None:
        if not self.quiet:
            self._status_console.print(message)

    def success(self, message: str) -> None:
        if not self.quiet:
            self._status_console.print(f"[green]✓[/green] {message}")

    def warning(self, message: str) -> None:
        if not self.quiet:
            self._status_console.print(f"[yellow]⚠[/yellow] {message}")

    def error(self, message: str) -> None:
        self.err_console.print(f"[red]✗[/red] {message}")

    def output_json(self, data: Any) -> None:
        """Print a JSON document to stdout (even in quiet mode)."""
        self.console.print_json(json.dumps(data, default=str))

    def output_table(
        self, columns: list[str], rows: list[list[Any]], title: Optional[str] = None
    ) -> None:
        """Print a table of rows."""
        if self.quiet:
            return
        table = Table(title=title)
        for column in columns:
            table.add_column(column)
        for row in rows:
            table.add_row(*(str(value) for value in row))
        self._status_console.print(table)

    def format_size(self, size_bytes: int) -> str:
        return format_size(size_bytes)
