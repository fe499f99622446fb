"""Output formatting for CLI commands."""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from migrata.core.types import ChangeSetStatus
from migrata.exceptions import MigrataError

console = Console()

STATE_STYLES = {
    "pending": "yellow",
    "applied": "green",
    "changed": "cyan",
    "conflict": "bold red",
    "excluded": "dim",
}


class OutputFormatter:
    """Formats output for terminal or JSON mode."""

    def __init__(self, json_mode: bool = False) -> None:
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode

    def print_table(
        self,
        title: str,
        data: list[dict[str, Any]],
        columns: list[str],
    ) -> None:
        """Print data as Rich table or JSON array."""
        if self.json_mode:
            print(json.dumps(data, default=str, indent=2))
        else:
            table = Table(title=title, show_header=True, header_style="bold magenta")
            for col in columns:
                table.add_column(col)
            for row in data:
                table.add_row(*["" if row.get(col) is None else str(row[col]) for col in columns])
            console.print(table)

    def print_status(self, statuses: list[ChangeSetStatus]) -> None:
        """Print change-set states, colored by state."""
        if self.json_mode:
            print(json.dumps([s.model_dump() for s in statuses], default=str, indent=2))
            return

        pending = sum(1 for s in statuses if s.state == "pending")
        table = Table(
            title=f"Change-sets ({pending} pending)",
            show_header=True,
            header_style="bold magenta",
        )
        table.add_column("Author")
        table.add_column("ID")
        table.add_column("State")
        table.add_column("Applied")
        table.add_column("Description")
        for status in statuses:
            style = STATE_STYLES.get(str(status.state), "")
            table.add_row(
                status.author,
                status.id,
                f"[{style}]{status.state}[/{style}]" if style else str(status.state),
                str(status.applied_at or ""),
                status.description or "",
            )
        console.print(table)

    def print_success(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Print success message."""
        if self.json_mode:
            output = {"success": True, "message": message}
            if details:
                output.update(details)
            print(json.dumps(output, default=str, indent=2))
        else:
            console.print(f"✓ {message}", style="green")
            if details:
                for key, value in details.items():
                    if isinstance(value, list):
                        value = ", ".join(str(v) for v in value) or "-"
                    console.print(f"  {key}: {value}", style="dim")

    def print_error(self, error: Exception) -> None:
        """Print error message."""
        if self.json_mode:
            if isinstance(error, MigrataError):
                print(json.dumps(error.to_dict(), default=str, indent=2))
            else:
                print(json.dumps({"error": str(error)}, indent=2))
        else:
            error_text = str(error)
            if isinstance(error, MigrataError) and error.context:
                context_str = "\n".join(
                    f"{k}: {v}" for k, v in error.context.items() if v is not None
                )
                error_text = f"{error_text}\n\n{context_str}"

            panel = Panel(
                error_text,
                title="[red]Error[/red]",
                border_style="red",
            )
            console.print(panel)

    def print_sql(self, lines: list[str]) -> None:
        """Print rendered SQL, one statement per line."""
        if self.json_mode:
            print(json.dumps(lines, indent=2))
        elif not lines:
            console.print("-- Nothing to apply; the database is up to date")
        else:
            # plain print keeps the output pipeable into a SQL client
            for line in lines:
                print(line)
