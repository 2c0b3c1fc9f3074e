"""Config command for showing the effective configuration."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.syntax import Syntax

from manager_operator.cli.commands._common import load_config

console = Console()


def show_config(ctx: typer.Context) -> None:
    """Show the effective configuration after file and environment overrides."""
    config = load_config(ctx)
    console.print(Syntax(config.to_yaml(), "yaml"))
