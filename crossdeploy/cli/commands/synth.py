"""``crossdeploy synth`` — synthesize the CDK app into a cloud assembly.

Builds the three stacks from the current settings.  ``aws-cdk-lib`` needs a
Node.js runtime; it is only imported when this command runs.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from crossdeploy.config import get_settings
from crossdeploy.core.arns import ArnConstructionError
from crossdeploy.core.config_guard import TrustBoundaryError
from crossdeploy.core.stage_graph import GraphValidationError

console = Console()


def synth_cmd(
    outdir: Path = typer.Option(
        Path("cdk.out"),
        "--outdir",
        "-o",
        help="Directory for the cloud assembly.",
    ),
) -> None:
    """Synthesize the dev setup, cross-account IAM and pipeline stacks."""
    config = get_settings().to_pipeline_config()
    try:
        from crossdeploy.infra.app import build_app

        assembly = build_app(config, outdir=str(outdir)).synth()
    except (TrustBoundaryError, ArnConstructionError, GraphValidationError) as exc:
        console.print(f"[bold red]Pipeline rejected:[/bold red] {exc}")
        raise typer.Exit(code=1)

    for stack in assembly.stacks:
        console.print(f"[green]Synthesized[/green] {stack.stack_name} -> {stack.template_file}")
    console.print(f"[dim]Cloud assembly written to {assembly.directory}[/dim]")
