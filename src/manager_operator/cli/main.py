"""Main CLI entry point using Typer."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from manager_operator import __version__
from manager_operator.cli.commands import config, reconcile, run
from manager_operator.logging.config import configure_logging

app = typer.Typer(
    name="manager-operator",
    help="Operator that converges the Manager custom resource.",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"manager-operator version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Emit logs as JSON lines.",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        envvar="MANAGER_OPERATOR_CONFIG",
        help="YAML configuration file; environment variables take precedence.",
    ),
) -> None:
    """Manager operator - drive the Manager resource toward its desired state."""
    configure_logging(verbose=verbose, debug=debug, json_output=json_logs)
    ctx.obj = {"config_file": config_file}


app.command()(run.run)
app.command()(reconcile.reconcile)
app.command(name="config")(config.show_config)


if __name__ == "__main__":
    app()
