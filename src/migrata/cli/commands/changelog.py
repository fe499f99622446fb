"""Change-log commands: update, update-sql, status, validate, rollback."""

from typing import Annotated

import typer

from migrata.cli.context import CLIContext, get_changelog_path
from migrata.cli.output import OutputFormatter

ChangelogOption = Annotated[
    str | None,
    typer.Option(
        "--changelog",
        "-c",
        envvar="MIGRATA_CHANGELOG",
        help="Change-log file (YAML or JSON)",
    ),
]

ContextOption = Annotated[
    list[str] | None,
    typer.Option(
        "--context",
        help="Only run change-sets for this context (repeatable)",
    ),
]


def update(
    ctx: typer.Context,
    changelog: ChangelogOption = None,
    context: ContextOption = None,
) -> None:
    """Apply all pending change-sets in change-log order.

    Exits with code 0 when everything is applied or nothing was pending.

    Examples:

        migrata update
        migrata -d postgresql://localhost/app update -c db/changelog.yaml --context prod
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)
    path = get_changelog_path(changelog)

    try:
        result = cli_ctx.get_migrator().update(path, contexts=context)

        if result.up_to_date:
            message = "Database is up to date"
        else:
            message = f"Applied {len(result.applied) + len(result.reran)} change-sets"
        formatter.print_success(
            message,
            {
                "changelog": path,
                "applied": result.applied,
                "reran": result.reran,
                "skipped": len(result.skipped),
                "excluded": len(result.excluded),
                "deployment_id": result.deployment_id,
            },
        )

    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


def update_sql(
    ctx: typer.Context,
    changelog: ChangelogOption = None,
    context: ContextOption = None,
) -> None:
    """Print the SQL that update would run, without running it.

    Examples:

        migrata update-sql > pending.sql
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        lines = cli_ctx.get_migrator().update_sql(get_changelog_path(changelog), contexts=context)
        formatter.print_sql(lines)

    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


def status(
    ctx: typer.Context,
    changelog: ChangelogOption = None,
    context: ContextOption = None,
) -> None:
    """Show which change-sets are pending, applied, changed or conflicting.

    Examples:

        migrata status
        migrata --json status -c db/changelog.json
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        statuses = cli_ctx.get_migrator().status(get_changelog_path(changelog), contexts=context)
        formatter.print_status(statuses)

    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


def validate(
    ctx: typer.Context,
    changelog: ChangelogOption = None,
) -> None:
    """Parse the change-log and check applied checksums.

    Examples:

        migrata validate -c db/changelog.yaml
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)
    path = get_changelog_path(changelog)

    try:
        change_sets = cli_ctx.get_migrator().validate(path)
        formatter.print_success(
            "Change-log is valid",
            {"changelog": path, "change_sets": len(change_sets)},
        )

    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


def rollback(
    ctx: typer.Context,
    changelog: ChangelogOption = None,
    count: Annotated[
        int,
        typer.Option("--count", "-n", min=1, help="Number of change-sets to roll back"),
    ] = 1,
) -> None:
    """Roll back the most recently applied change-sets.

    Examples:

        migrata rollback
        migrata rollback --count 3
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        rolled_back = cli_ctx.get_migrator().rollback(get_changelog_path(changelog), count)
        formatter.print_success(
            f"Rolled back {len(rolled_back)} change-sets",
            {"rolled_back": rolled_back},
        )

    except Exception as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
