"""Run command for hosting the controller under kopf."""

from __future__ import annotations

import structlog
import typer
from rich.console import Console

from manager_operator.cli.commands._common import load_config
from manager_operator.integrations.kubernetes import KubernetesClient, KubernetesError
from manager_operator.operator import ManagerOperator

console = Console()
logger = structlog.get_logger()


def run(ctx: typer.Context) -> None:
    """Watch the cluster and reconcile the Manager until interrupted."""
    config = load_config(ctx)
    try:
        client = KubernetesClient(config)
    except KubernetesError as e:
        console.print(f"[red]Cannot connect to the cluster:[/red] {e}")
        raise typer.Exit(code=1) from e

    with client:
        logger.info("controller_starting", context=client.current_context)
        ManagerOperator(client, config).run()
