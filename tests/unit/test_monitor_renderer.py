"""Unit tests for the MonitorRenderer — Rich panel output and state labels."""

from __future__ import annotations

from datetime import datetime, timezone

from rich.console import Console
from rich.panel import Panel

from crossdeploy.models.stages import ActionKind, StageState
from crossdeploy.monitor.projection import ActionStatus, MonitorSnapshot, StageStatus
from crossdeploy.monitor.renderer import _STATE_LABELS, _STATE_STYLES, MonitorRenderer


def _make_snapshot(*, chain_valid: bool = True, stages: list[StageStatus] | None = None) -> MonitorSnapshot:
    default_stages = stages or [
        StageStatus(
            name="Source",
            ordinal=0,
            state=StageState.SUCCEEDED,
            actions=[
                ActionStatus(
                    name="CodeCommit_Source",
                    kind=ActionKind.SOURCE,
                    state=StageState.SUCCEEDED,
                )
            ],
        ),
        StageStatus(
            name="Build",
            ordinal=1,
            is_gate=True,
            state=StageState.FAILED,
            reason="security scan failed",
            actions=[
                ActionStatus(
                    name="CDK_Synth",
                    kind=ActionKind.BUILD,
                    state=StageState.FAILED,
                    reason="security scan failed for [ApplicationStack.template.json]",
                )
            ],
        ),
        StageStatus(name="Deploy_to_Dev", ordinal=2, state=StageState.BLOCKED),
    ]
    return MonitorSnapshot(
        run_id="xd-render-001",
        pipeline_name="KinesisApplicationPipeline",
        stages=default_stages,
        chain_valid=chain_valid,
        last_updated=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


def _render_text(snapshot: MonitorSnapshot) -> str:
    console = Console(record=True, width=140)
    MonitorRenderer(console=console).print_snapshot(snapshot)
    return console.export_text()


class TestMonitorRenderer:
    def test_returns_panel(self):
        assert isinstance(MonitorRenderer().render_snapshot(_make_snapshot()), Panel)

    def test_every_state_has_style_and_label(self):
        for state in StageState:
            assert state in _STATE_STYLES
            assert state in _STATE_LABELS

    def test_shows_stages_and_actions(self):
        text = _render_text(_make_snapshot())
        assert "KinesisApplicationPipeline" in text
        assert "Source" in text
        assert "CDK_Synth" in text
        assert "BLOCKED" in text
        assert "Progress: 1/3" in text

    def test_shows_stop_reason(self):
        text = _render_text(_make_snapshot())
        assert "Stopped at Build/CDK_Synth:" in text
        assert "[ApplicationStack.template.json]" in text

    def test_chain_status(self):
        assert "valid" in _render_text(_make_snapshot(chain_valid=True))
        assert "BROKEN" in _render_text(_make_snapshot(chain_valid=False))

    def test_waiting_for_approval(self):
        stages = [
            StageStatus(
                name="Manual_Approve",
                ordinal=4,
                is_gate=True,
                state=StageState.RUNNING,
                actions=[
                    ActionStatus(
                        name="Approve_Promotion",
                        kind=ActionKind.APPROVAL,
                        state=StageState.RUNNING,
                    )
                ],
            )
        ]
        text = _render_text(_make_snapshot(stages=stages))
        assert "Waiting for approval: Approve_Promotion" in text

    def test_print_chain_verification(self):
        console = Console(record=True, width=120)
        renderer = MonitorRenderer(console=console)
        renderer.print_chain_verification("xd-1", True)
        renderer.print_chain_verification("xd-2", False)
        text = console.export_text()
        assert "Hash chain for run xd-1 is valid." in text
        assert "Hash chain for run xd-2 is BROKEN!" in text
