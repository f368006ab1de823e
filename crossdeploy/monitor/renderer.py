"""Rich terminal rendering of a run: one row per stage, one indented row per action.

States are colour coded: succeeded green, running yellow, pending dim, and
failed or blocked red.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from crossdeploy.models.stages import StageState

if TYPE_CHECKING:
    from crossdeploy.monitor.projection import MonitorSnapshot


_STATE_STYLES: dict[StageState, str] = {
    StageState.SUCCEEDED: "bold green",
    StageState.FAILED: "bold red",
    StageState.RUNNING: "bold yellow",
    StageState.PENDING: "dim",
    StageState.BLOCKED: "bold red",
}


def _label(state: StageState) -> str:
    style = _STATE_STYLES.get(state, "")
    return f"[{style}]{state.value.upper()}[/{style}]" if style else state.value.upper()


class MonitorRenderer:
    """Renders ``MonitorSnapshot`` as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_snapshot(self, snapshot: MonitorSnapshot) -> Panel:
        """Render a snapshot as a Panel holding the stage/action table."""
        table = self._build_table(snapshot)

        summary_parts: list[str] = [
            f"[bold]Run:[/bold] {snapshot.run_id}",
            f"[bold]Progress:[/bold] {snapshot.completed_count}/{snapshot.total_stages}",
            f"[bold]Artifacts:[/bold] {snapshot.artifact_count}",
        ]
        chain_status = (
            "[green]valid[/green]" if snapshot.chain_valid else "[bold red]BROKEN[/bold red]"
        )
        summary_parts.append(f"[bold]Chain:[/bold] {chain_status}")

        lines: list[Text] = [Text.from_markup("  |  ".join(summary_parts))]
        failed = snapshot.failed_action
        if failed is not None:
            stage, action = failed
            lines.append(
                Text.from_markup(
                    f"[bold red]Stopped at {stage.name}/{action.name}:[/bold red] "
                )
                + Text(action.reason or "no reason given")
            )
        waiting = snapshot.awaiting_approval
        if waiting is not None:
            lines.append(
                Text.from_markup(f"[yellow]Waiting for approval:[/yellow] {waiting.name}")
            )

        return Panel(
            Group(table, Text(""), *lines),
            title=f"[bold]{snapshot.pipeline_name}[/bold]",
            subtitle=f"Last updated: {snapshot.last_updated.strftime('%Y-%m-%d %H:%M:%S UTC')}",
            border_style="blue",
            padding=(1, 2),
        )

    def _build_table(self, snapshot: MonitorSnapshot) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=3, justify="right")
        table.add_column("Stage / Action", min_width=30)
        table.add_column("State", min_width=11, justify="center")
        table.add_column("Details", min_width=20)

        for stage in snapshot.stages:
            style = _STATE_STYLES.get(stage.state, "")
            gate = " [cyan](gate)[/cyan]" if stage.is_gate else ""
            table.add_row(
                str(stage.ordinal),
                f"[{style}]{stage.name}[/{style}]{gate}",
                _label(stage.state),
                self._details(stage.reason, stage.entered_at),
            )
            for action in stage.actions:
                table.add_row(
                    "",
                    f"  [dim]{action.run_order}.[/dim] {action.name}",
                    _label(action.state),
                    self._details(action.reason, action.entered_at),
                )
        return table

    @staticmethod
    def _details(reason: str, entered_at) -> str:
        parts: list[str] = []
        if reason:
            parts.append(reason.replace("[", r"\["))
        if entered_at:
            parts.append(f"[dim]{entered_at.strftime('%H:%M:%S')}[/dim]")
        return " | ".join(parts) if parts else "[dim]-[/dim]"

    def print_snapshot(self, snapshot: MonitorSnapshot) -> None:
        self.console.print(self.render_snapshot(snapshot))

    def print_chain_verification(self, run_id: str, valid: bool) -> None:
        if valid:
            self.console.print(f"[green]Hash chain for run {run_id} is valid.[/green]")
        else:
            self.console.print(f"[bold red]Hash chain for run {run_id} is BROKEN![/bold red]")
