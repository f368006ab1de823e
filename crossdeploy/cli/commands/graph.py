"""``crossdeploy graph`` — show the assembled stage/action graph.

Assembles the pipeline from the current settings.  Assembly fails (exit 1)
on any configuration or gate violation, so this doubles as a config check.
"""

from __future__ import annotations

import json

import typer
from rich.console import Console
from rich.table import Table

from crossdeploy.config import get_settings
from crossdeploy.core.arns import ArnConstructionError
from crossdeploy.core.config_guard import TrustBoundaryError
from crossdeploy.core.stage_graph import GraphValidationError, assemble_pipeline

console = Console()


def graph_cmd(
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the graph as JSON instead of a table.",
    ),
) -> None:
    """Show the stage graph the pipeline would run."""
    config = get_settings().to_pipeline_config()
    try:
        graph = assemble_pipeline(config)
    except TrustBoundaryError as exc:
        console.print(f"[bold red]Pipeline rejected ({exc.kind.value}):[/bold red] {exc}")
        raise typer.Exit(code=1)
    except (ArnConstructionError, GraphValidationError) as exc:
        console.print(f"[bold red]Pipeline rejected:[/bold red] {exc}")
        raise typer.Exit(code=1)

    if as_json:
        typer.echo(json.dumps(graph.model_dump(mode="json"), indent=2))
        return

    table = Table(title=f"{graph.pipeline_name} ({graph.repository}@{graph.branch})")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Stage", style="cyan")
    table.add_column("Action")
    table.add_column("Kind")
    table.add_column("Order", justify="right")
    table.add_column("Account")

    for stage in sorted(graph.stages, key=lambda s: s.ordinal):
        label = f"{stage.name} [yellow](gate)[/yellow]" if stage.is_gate else stage.name
        for i, action in enumerate(stage.actions):
            table.add_row(
                str(stage.ordinal) if i == 0 else "",
                label if i == 0 else "",
                action.name,
                action.kind.value,
                str(action.run_order),
                action.account_id or "[dim]-[/dim]",
            )

    console.print(table)
    console.print(f"[dim]key: {graph.key_arn}[/dim]")
    console.print(f"[dim]fingerprint: {graph.fingerprint()}[/dim]")
