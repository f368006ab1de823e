"""``crossdeploy trigger BRANCH REPOSITORY`` — run the pipeline locally.

Simulates a push and walks the assembled pipeline against scripted
collaborators, then shows the run monitor.  Useful to see how a failed scan,
a failed integration test or a rejected approval stops promotion.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from crossdeploy.config import get_settings
from crossdeploy.core.arns import ArnConstructionError
from crossdeploy.core.artifact_store import VersionedArtifactStore
from crossdeploy.core.config_guard import TrustBoundaryError
from crossdeploy.core.orchestrator import PipelineOrchestrator
from crossdeploy.core.scripted import scripted_collaborators
from crossdeploy.core.stage_graph import GraphValidationError, assemble_pipeline
from crossdeploy.models.outcomes import PushEvent
from crossdeploy.models.stages import RunStatus
from crossdeploy.monitor.projection import MonitorProjection
from crossdeploy.monitor.renderer import MonitorRenderer

console = Console()


def trigger_cmd(
    branch: str = typer.Argument(..., help="Branch that was pushed."),
    repository: str = typer.Argument(..., help="Repository that was pushed to."),
    commit: Optional[str] = typer.Option(
        None,
        "--commit",
        "-c",
        help="Commit id of the push (defaults to the branch head).",
    ),
    fail_scan: bool = typer.Option(
        False,
        "--fail-scan",
        help="Make the application template fail the security scan.",
    ),
    fail_test: bool = typer.Option(
        False,
        "--fail-test",
        help="Make the integration test workflow fail.",
    ),
    decision: Optional[bool] = typer.Option(
        None,
        "--approve/--reject",
        help="Decide the manual gate. Without either flag the run waits.",
    ),
    approver: str = typer.Option(
        "cli",
        "--approver",
        help="Name recorded with the approval decision.",
    ),
    artifact_dir: Optional[Path] = typer.Option(
        None,
        "--artifacts",
        "-a",
        help="Path to the local artifact store.",
    ),
) -> None:
    """Run the pipeline for one push and show the run monitor."""
    settings = get_settings()
    config = settings.to_pipeline_config()
    try:
        graph = assemble_pipeline(config)
    except TrustBoundaryError as exc:
        console.print(f"[bold red]Pipeline rejected ({exc.kind.value}):[/bold red] {exc}")
        raise typer.Exit(code=1)
    except (ArnConstructionError, GraphValidationError) as exc:
        console.print(f"[bold red]Pipeline rejected:[/bold red] {exc}")
        raise typer.Exit(code=1)

    store = VersionedArtifactStore(
        artifact_dir or settings.artifact_store_path,
        bucket_name=config.artifact_bucket_name,
        key_arn=graph.key_arn,
        pipeline_name=config.pipeline_name,
    )
    orchestrator = PipelineOrchestrator(
        graph,
        store,
        scripted_collaborators(config, fail_scan=fail_scan, fail_test=fail_test),
        max_parallel_actions=settings.max_parallel_actions,
    )

    report = orchestrator.handle_push(
        PushEvent(repository=repository, branch=branch, commit_id=commit)
    )
    if report is None:
        console.print(
            f"[yellow]No run started:[/yellow] {graph.pipeline_name} watches "
            f"{graph.repository}@{graph.branch}"
        )
        return

    if report.pending_approval is not None and decision is not None:
        if decision:
            report = orchestrator.approve(report.run_id, approver=approver)
        else:
            report = orchestrator.reject(report.run_id, approver=approver, reason="rejected from CLI")

    renderer = MonitorRenderer(console=console)
    renderer.print_snapshot(MonitorProjection(orchestrator.ledger, graph).snapshot(report.run_id))

    if report.status == RunStatus.STOPPED:
        failure = report.failure
        console.print(
            f"[bold red]Run {report.run_id} stopped[/bold red] "
            f"({failure.kind.value if failure else 'unknown'})"
        )
        raise typer.Exit(code=1)
    if report.pending_approval is not None:
        console.print(
            f"[yellow]Run {report.run_id} is waiting for approval until "
            f"{report.pending_approval.expires_at:%Y-%m-%d %H:%M} UTC[/yellow]"
        )
        return
    console.print(f"[bold green]Run {report.run_id} completed.[/bold green]")
