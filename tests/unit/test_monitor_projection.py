"""Tests for MonitorProjection — snapshots are pure replays of the ledger."""

from __future__ import annotations

from crossdeploy.core.run_ledger import RunLedger
from crossdeploy.models.stages import ActionKind, StageState
from crossdeploy.monitor.projection import MonitorProjection


class TestMonitorProjection:
    def test_empty_run(self, pipeline_graph):
        snap = MonitorProjection(RunLedger(), pipeline_graph).snapshot("xd-none")
        assert snap.total_stages == 6
        assert snap.completed_count == 0
        assert all(s.state == StageState.PENDING for s in snap.stages)
        assert snap.chain_valid is True

    def test_waiting_run(self, make_orchestrator, pipeline_graph):
        orch = make_orchestrator()
        run_id = orch.start_run().run_id
        snap = MonitorProjection(orch.ledger, pipeline_graph).snapshot(run_id)

        assert snap.pipeline_name == "KinesisApplicationPipeline"
        assert snap.completed_count == 4
        waiting = snap.awaiting_approval
        assert waiting is not None
        assert waiting.name == "Approve_Promotion"
        assert waiting.kind == ActionKind.APPROVAL
        assert snap.failed_action is None
        assert snap.artifact_count == 2

    def test_failed_run(self, make_orchestrator, pipeline_graph, world):
        world.invoker.succeed = False
        orch = make_orchestrator()
        run_id = orch.start_run().run_id
        snap = MonitorProjection(orch.ledger, pipeline_graph).snapshot(run_id)

        stage, action = snap.failed_action
        assert stage.name == "Integration_Test"
        assert action.name == "Invoke_StateMachine"
        assert action.reason == "States.TaskFailed"
        assert [s.name for s in snap.blocked_stages] == ["Manual_Approve", "Deploy_to_Prod"]
        assert snap.awaiting_approval is None

    def test_snapshot_matches_report(self, make_orchestrator, pipeline_graph):
        orch = make_orchestrator()
        run_id = orch.start_run().run_id
        orch.approve(run_id)
        report = orch.report(run_id)
        snap = MonitorProjection(orch.ledger, pipeline_graph).snapshot(run_id)
        assert {s.name: s.state for s in snap.stages} == report.stage_states
        assert snap.completed_count == snap.total_stages

    def test_action_order_and_run_order(self, pipeline_graph):
        snap = MonitorProjection(RunLedger(), pipeline_graph).snapshot("xd-none")
        integ = next(s for s in snap.stages if s.name == "Integration_Test")
        assert [(a.name, a.run_order) for a in integ.actions] == [
            ("Deploy_Integration_Test_StateMachine", 1),
            ("Invoke_StateMachine", 2),
        ]
        assert integ.is_gate is True
