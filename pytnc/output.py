"""Console output helpers shared by the CLI and the sync engine."""

import json
from typing import Any, Optional

import click


class OutputFormatter:
    """Formats user-facing messages.

    Informational messages are suppressed in quiet mode and in JSON mode so
    that JSON output stays machine readable. Errors always go to stderr.
    """

    def __init__(self, json_output: bool = False, quiet: bool = False):
        """Initialize output formatter.

        Args:
            json_output: Emit results as JSON instead of text
            quiet: Suppress non-essential output
        """
        self.json_output = json_output
        self.quiet = quiet

    @property
    def _silent(self) -> bool:
        return self.quiet or self.json_output

    def print(self, message: str = "") -> None:
        """Print a plain line."""
        if not self._silent:
            click.echo(message)

    def info(self, message: str) -> None:
        """Print an informational line."""
        if not self._silent:
            click.echo(message)

    def success(self, message: str) -> None:
        """Print a success line in green."""
        if not self._silent:
            click.secho(message, fg="green")

    def warning(self, message: str) -> None:
        """Print a warning line in yellow."""
        if not self._silent:
            click.secho(message, fg="yellow")

    def error(self, message: str) -> None:
        """Print an error line in red to stderr."""
        click.secho(message, fg="red", err=True)

    def output_json(self, data: Any) -> None:
        """Write data as indented JSON to stdout."""
        click.echo(json.dumps(data, indent=2, default=str))

    def print_summary(
        self, title: str, rows: list[tuple[str, Any]], footer: Optional[str] = None
    ) -> None:
        """Print a titled block of key/value rows.

        Args:
            title: Heading of the block
            rows: (label, value) pairs
            footer: Optional closing line
        """
        if self._silent:
            return
        width = max((len(label) for label, _ in rows), default=0)
        click.secho(title, bold=True)
        click.echo("=" * max(len(title), 20))
        for label, value in rows:
            click.echo(f"{label + ':':<{width + 1}} {value}")
        if footer:
            click.echo(footer)
