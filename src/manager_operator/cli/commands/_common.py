"""Helpers shared by the CLI commands."""

from __future__ import annotations

import typer
from rich.console import Console

from manager_operator.integrations.kubernetes.config import ConfigFileError, OperatorConfig

console = Console()


def load_config(ctx: typer.Context) -> OperatorConfig:
    """Load the operator configuration, exiting with code 2 if it is invalid."""
    obj = ctx.obj or {}
    try:
        return OperatorConfig.load(obj.get("config_file"))
    except ConfigFileError as e:
        console.print(f"[red]{e.message}[/red]")
        if e.details:
            console.print(f"[dim]{e.details}[/dim]")
        raise typer.Exit(code=2) from e
