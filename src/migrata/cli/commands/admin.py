"""Ledger and lock administration commands."""

from typing import Annotated

import typer

from migrata.cli.context import CLIContext
from migrata.cli.output import OutputFormatter


def history(
    ctx: typer.Context,
    limit: Annotated[
        int,
        typer.Option("--limit", "-l", help="Maximum number of entries"),
    ] = 20,
) -> None:
    """Show the ledger, newest entries first.

    Examples:

        migrata history
        migrata --json history --limit 5
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        entries = [r.model_dump() for r in cli_ctx.get_migrator().history(limit=limit)]

        if not entries and not cli_ctx.json_output:
            typer.echo("No change-sets have been applied")
        else:
            formatter.print_table(
                f"Ledger ({len(entries)} entries)",
                entries,
                ["order_executed", "author", "change_set_id", "exec_type", "applied_at"],
            )

    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


def release_locks(
    ctx: typer.Context,
) -> None:
    """Release the change-log lock left behind by a crashed run.

    Examples:

        migrata release-locks
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        released = cli_ctx.get_migrator().release_locks()
        formatter.print_success(
            "Lock released" if released else "Lock was not held",
            {"released": released},
        )

    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
