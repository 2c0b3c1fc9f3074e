"""Reconcile command for running a single pass."""

from __future__ import annotations

import structlog
import typer
from rich.console import Console
from rich.table import Table

from manager_operator.cli.commands._common import load_config
from manager_operator.integrations.kubernetes import KubernetesClient, KubernetesError
from manager_operator.services.kubernetes import ClusterObjectStore
from manager_operator.services.manager.readiness import ReadyFlag, license_api_served
from manager_operator.services.manager.reconciler import ManagerReconciler, ReconcileResult

console = Console()
logger = structlog.get_logger()


def print_result(result: ReconcileResult) -> None:
    """Render a pass outcome as tables."""
    table = Table(title="Manager Reconcile")
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value")
    table.add_row("Status", str(result.status))
    table.add_row(
        "Requeue after",
        f"{result.requeue_after:g}s" if result.requeue_after is not None else "-",
    )
    table.add_row("Error", str(result.error) if result.error else "-")
    console.print(table)

    if not result.reports:
        return
    components = Table(title="Components")
    components.add_column("Component", style="cyan", no_wrap=True)
    for column in ("Created", "Updated", "Unchanged", "Deleted"):
        components.add_column(column, justify="right")
    for report in result.reports:
        components.add_row(
            report.component,
            str(len(report.created)),
            str(len(report.updated)),
            str(len(report.unchanged)),
            str(len(report.deleted)),
        )
    console.print(components)


def reconcile(ctx: typer.Context) -> None:
    """Run one reconcile pass against the current cluster and show the outcome."""
    config = load_config(ctx)
    try:
        client = KubernetesClient(config)
    except KubernetesError as e:
        console.print(f"[red]Cannot connect to the cluster:[/red] {e}")
        raise typer.Exit(code=1) from e

    with client:
        flag = ReadyFlag()
        if license_api_served(client):
            flag.mark_ready()
        reconciler = ManagerReconciler(ClusterObjectStore(client), config, license_api_ready=flag)
        result = reconciler.reconcile()

    logger.debug("single_pass_finished", status=str(result.status))
    print_result(result)
    if result.error is not None:
        raise typer.Exit(code=1)
