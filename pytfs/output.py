"""Console output formatting for the CLI."""

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table


class OutputFormatter:
    """Writes user-facing messages as rich text or JSON."""

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize the formatter.

        Args:
            json_output: Emit machine-readable JSON instead of text
            quiet: Suppress informational messages
        """
        self.json_output = json_output
        self.quiet = quiet
        self.console = Console(highlight=False)
        self.err_console = Console(stderr=True, highlight=False)

    def print(self, message: str = "") -> None:
        if not self.json_output:
            self.console.print(escape(message))

    def info(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(escape(message))

    def success(self, message: str) -> None:
        if not self.quiet and not self.json_output:
            self.console.print(f"[green]{escape(message)}[/green]")

    def warning(self, message: str) -> None:
        self.err_console.print(f"[yellow]{escape(message)}[/yellow]")

    def error(self, message: str) -> None:
        self.err_console.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def output_json(self, data: Any) -> None:
        self.console.print_json(json.dumps(data))

    def print_table(self, columns: list[str], rows: list[list[str]]) -> None:
        """Print rows as a table (or a list of objects in JSON mode)."""
        if self.json_output:
            self.output_json([dict(zip(columns, row)) for row in rows])
            return
        table = Table(*columns, show_header=True, header_style="bold")
        for row in rows:
            table.add_row(*(escape(cell) for cell in row))
        self.console.print(table)

    def print_summary(self, title: str, items: list[tuple[str, str]]) -> None:
        """Print a titled list of key/value pairs."""
        if self.json_output:
            self.output_json({key: value for key, value in items})
            return
        if self.quiet:
            return
        self.console.print(f"\n[bold]{escape(title)}[/bold]")
        for key, value in items:
            self.console.print(f"  {escape(key)}: {escape(value)}")
