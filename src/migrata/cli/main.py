"""migrata CLI - Main entry point."""

import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

import migrata
from migrata.cli.context import CLIContext, get_database_url

app = typer.Typer(
    name="migrata",
    help="migrata CLI - change-log driven schema migrations",
    no_args_is_help=True,
)

def configure_logging(verbose: bool) -> None:
    """Route migrata's loggers through rich on stderr."""
    logger = logging.getLogger("migrata")
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=Console(stderr=True), show_path=False))
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


@app.callback()
def main_callback(
    ctx: typer.Context,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            envvar="MIGRATA_URL",
            help="Database URL (PostgreSQL or SQLite)",
        ),
    ] = None,
    echo: Annotated[
        bool,
        typer.Option(
            "--echo",
            "-e",
            help="Echo SQL statements to console",
        ),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            "-j",
            help="Output as JSON (machine-readable)",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Log each change-set as it runs",
        ),
    ] = False,
) -> None:
    """Initialize CLI context with global options."""
    configure_logging(verbose)

    cli_ctx = CLIContext(
        database_url=get_database_url(database),
        echo=echo,
        json_output=json_output,
    )

    ctx.obj = cli_ctx


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"migrata v{migrata.__version__}")


from migrata.cli.commands import admin, changelog  # noqa: E402

app.command(name="update")(changelog.update)
app.command(name="update-sql")(changelog.update_sql)
app.command(name="status")(changelog.status)
app.command(name="validate")(changelog.validate)
app.command(name="rollback")(changelog.rollback)
app.command(name="history")(admin.history)
app.command(name="release-locks")(admin.release_locks)


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
