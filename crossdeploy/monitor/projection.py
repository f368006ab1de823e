"""MonitorProjection — pure read-only view over the RunLedger.

The monitor displays what the ledger says happened; it computes nothing the
ledger does not already record.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from crossdeploy.core.run_ledger import LedgerIntegrityError, RunLedger
from crossdeploy.models.ledger import LedgerEntry
from crossdeploy.models.stages import ActionKind, PipelineGraph, StageState


class ActionStatus(BaseModel):
    """Point-in-time status of one action, derived from ledger entries."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: ActionKind
    run_order: int = 1
    state: StageState = StageState.PENDING
    entered_at: datetime | None = None
    reason: str = ""
    artifact_refs: list[str] = []

    @property
    def awaiting_approval(self) -> bool:
        return self.kind == ActionKind.APPROVAL and self.state == StageState.RUNNING


class StageStatus(BaseModel):
    """Point-in-time status of one stage and its actions."""

    model_config = ConfigDict(frozen=True)

    name: str
    ordinal: int
    is_gate: bool = False
    state: StageState = StageState.PENDING
    entered_at: datetime | None = None
    reason: str = ""
    actions: list[ActionStatus] = []


class MonitorSnapshot(BaseModel):
    """A frozen, point-in-time snapshot of one pipeline run."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    pipeline_name: str
    stages: list[StageStatus] = []
    artifact_count: int = 0
    chain_valid: bool = True
    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def completed_count(self) -> int:
        return sum(1 for s in self.stages if s.state == StageState.SUCCEEDED)

    @property
    def total_stages(self) -> int:
        return len(self.stages)

    @property
    def failed_action(self) -> tuple[StageStatus, ActionStatus] | None:
        """The first failed action, with its stage."""
        for stage in self.stages:
            for action in stage.actions:
                if action.state == StageState.FAILED:
                    return stage, action
        return None

    @property
    def awaiting_approval(self) -> ActionStatus | None:
        for stage in self.stages:
            for action in stage.actions:
                if action.awaiting_approval:
                    return action
        return None

    @property
    def blocked_stages(self) -> list[StageStatus]:
        return [s for s in self.stages if s.state == StageState.BLOCKED]


class MonitorProjection:
    """Replays a run's ledger entries against the pipeline's stage graph.

    Parameters
    ----------
    ledger:
        The RunLedger to project from.
    graph:
        Supplies stage order, gate flags and action kinds for display.
    """

    def __init__(self, ledger: RunLedger, graph: PipelineGraph) -> None:
        self._ledger = ledger
        self._graph = graph

    def snapshot(self, run_id: str) -> MonitorSnapshot:
        """Re-read the ledger and return a fresh snapshot of ``run_id``."""
        entries = self._ledger.get_run_entries(run_id)
        stage_info, action_info = self._replay(entries)

        stages: list[StageStatus] = []
        for stage in sorted(self._graph.stages, key=lambda s: s.ordinal):
            actions = []
            for action in stage.actions:
                info = action_info.get((stage.name, action.name), {})
                actions.append(
                    ActionStatus(
                        name=action.name,
                        kind=action.kind,
                        run_order=action.run_order,
                        state=info.get("state", StageState.PENDING),
                        entered_at=info.get("entered_at"),
                        reason=info.get("reason", ""),
                        artifact_refs=info.get("artifact_refs", []),
                    )
                )
            info = stage_info.get(stage.name, {})
            stages.append(
                StageStatus(
                    name=stage.name,
                    ordinal=stage.ordinal,
                    is_gate=stage.is_gate,
                    state=info.get("state", StageState.PENDING),
                    entered_at=info.get("entered_at"),
                    reason=info.get("reason", ""),
                    actions=actions,
                )
            )

        refs: set[str] = set()
        for entry in entries:
            refs.update(entry.artifact_references)

        return MonitorSnapshot(
            run_id=run_id,
            pipeline_name=self._graph.pipeline_name,
            stages=stages,
            artifact_count=len(refs),
            chain_valid=self._check_chain_valid(run_id),
            last_updated=entries[-1].timestamp_utc if entries else datetime.now(timezone.utc),
        )

    @staticmethod
    def _replay(
        entries: list[LedgerEntry],
    ) -> tuple[dict[str, dict[str, Any]], dict[tuple[str, str], dict[str, Any]]]:
        stages: dict[str, dict[str, Any]] = {}
        actions: dict[tuple[str, str], dict[str, Any]] = {}

        for entry in entries:
            try:
                to_state = StageState(entry.to_state)
            except ValueError:
                continue
            if entry.action_name:
                info = actions.setdefault(
                    (entry.stage_id, entry.action_name), {"artifact_refs": []}
                )
                info["artifact_refs"].extend(entry.artifact_references)
            else:
                info = stages.setdefault(entry.stage_id, {})
            info["state"] = to_state
            info["entered_at"] = entry.timestamp_utc
            info["reason"] = entry.reason

        return stages, actions

    def _check_chain_valid(self, run_id: str) -> bool:
        """Check hash chain integrity without raising."""
        try:
            return self._ledger.verify_chain(run_id)
        except LedgerIntegrityError:
            return False
