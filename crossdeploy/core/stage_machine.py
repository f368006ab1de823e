"""Deterministic stage/action state machine.

Enforces:
- Valid state transitions only (VALID_TRANSITIONS table)
- Prerequisite stages SUCCEEDED before a stage enters RUNNING
- Actions only run inside a RUNNING stage
- A stage SUCCEEDS only when every one of its actions succeeded
- Cascade blocking of every downstream stage and action on failure
- Every transition recorded in the run ledger
"""

from __future__ import annotations

from crossdeploy.core.prerequisite_graph import PrerequisiteGraph, PrerequisiteNotMetError
from crossdeploy.core.run_ledger import RunLedger
from crossdeploy.models.ledger import LedgerEntry
from crossdeploy.models.stages import VALID_TRANSITIONS, StageState


class InvalidTransitionError(RuntimeError):
    """Raised when a requested state transition is not valid."""


class StageMachine:
    """Tracks stage and action states per run and records every transition.

    Parameters
    ----------
    ledger:
        The run ledger to record transitions into.
    graph:
        The prerequisite graph for dependency checking.
    """

    def __init__(self, ledger: RunLedger, graph: PrerequisiteGraph) -> None:
        self._ledger = ledger
        self._graph = graph
        # run_id -> {stage -> state}
        self._states: dict[str, dict[str, StageState]] = {}
        # run_id -> {(stage, action) -> state}
        self._action_states: dict[str, dict[tuple[str, str], StageState]] = {}

    # ------------------------------------------------------------------
    # State management
    # ------------------------------------------------------------------

    def _action_names(self, stage_id: str) -> list[str]:
        return [a.name for a in self._graph.get_stage_definition(stage_id).actions]

    def initialize_run(self, run_id: str) -> dict[str, StageState]:
        """Initialize all stages and actions to PENDING for a new run."""
        self._states[run_id] = {sid: StageState.PENDING for sid in self._graph.stage_ids}
        self._action_states[run_id] = {
            (sid, name): StageState.PENDING
            for sid in self._graph.stage_ids
            for name in self._action_names(sid)
        }
        return dict(self._states[run_id])

    def _ensure(self, run_id: str) -> None:
        if run_id not in self._states:
            self._rebuild_state(run_id)

    def _rebuild_state(self, run_id: str) -> None:
        """Rebuild in-memory state by replaying the ledger."""
        self.initialize_run(run_id)
        for entry in self._ledger.get_run_entries(run_id):
            try:
                to_state = StageState(entry.to_state)
            except ValueError:
                continue
            if entry.action_name:
                self._action_states[run_id][(entry.stage_id, entry.action_name)] = to_state
            else:
                self._states[run_id][entry.stage_id] = to_state

    def get_current_state(self, run_id: str, stage_id: str) -> StageState:
        self._ensure(run_id)
        return self._states[run_id].get(stage_id, StageState.PENDING)

    def get_all_states(self, run_id: str) -> dict[str, StageState]:
        """Return a snapshot of all stage states for a run."""
        self._ensure(run_id)
        return dict(self._states[run_id])

    def get_action_state(self, run_id: str, stage_id: str, action_name: str) -> StageState:
        self._ensure(run_id)
        return self._action_states[run_id].get((stage_id, action_name), StageState.PENDING)

    def get_all_action_states(self, run_id: str) -> dict[str, StageState]:
        """Return ``{"Stage/Action": state}`` for every action in the run."""
        self._ensure(run_id)
        return {
            f"{stage}/{action}": state
            for (stage, action), state in self._action_states[run_id].items()
        }

    # ------------------------------------------------------------------
    # Transition logic
    # ------------------------------------------------------------------

    @staticmethod
    def _check_allowed(label: str, current: StageState, target: StageState) -> None:
        allowed = VALID_TRANSITIONS.get(current, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot transition {label} from {current.value} to {target.value}. "
                f"Allowed: {sorted(s.value for s in allowed)}"
            )

    def _record(
        self,
        run_id: str,
        stage_id: str,
        current: StageState,
        target: StageState,
        *,
        action_name: str = "",
        reason: str = "",
        input_hash: str = "",
        output_hash: str = "",
        artifact_references: list[str] | None = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            run_id=run_id,
            stage_id=stage_id,
            action_name=action_name,
            state_transition=f"{current.value}->{target.value}",
            reason=reason,
            input_hash=input_hash,
            output_hash=output_hash,
            artifact_references=artifact_references or [],
        )
        return self._ledger.append(entry)

    def transition(
        self,
        run_id: str,
        stage_id: str,
        target_state: StageState,
        *,
        reason: str = "",
    ) -> LedgerEntry:
        """Transition a stage, recording it in the ledger.

        Validates:
        1. The transition is allowed by VALID_TRANSITIONS.
        2. If target is RUNNING, prerequisite stages have SUCCEEDED.
        3. If target is SUCCEEDED, every action in the stage has SUCCEEDED.
        On FAILED, pending actions of the stage and every downstream stage
        are BLOCKED.
        """
        self._ensure(run_id)
        states = self._states[run_id]
        current = states.get(stage_id, StageState.PENDING)
        self._check_allowed(stage_id, current, target_state)

        if target_state == StageState.RUNNING:
            if not self._graph.are_prerequisites_met(stage_id, states):
                reasons = self._graph.get_blocking_reasons(stage_id, states)
                raise PrerequisiteNotMetError(
                    f"Cannot start {stage_id}: prerequisites not met. "
                    f"Blocked by: {'; '.join(reasons)}"
                )

        if target_state == StageState.SUCCEEDED:
            unfinished = [
                name
                for name in self._action_names(stage_id)
                if self._action_states[run_id][(stage_id, name)] != StageState.SUCCEEDED
            ]
            if unfinished:
                raise InvalidTransitionError(
                    f"Cannot mark {stage_id} succeeded: actions not succeeded: "
                    f"{', '.join(unfinished)}"
                )

        sealed = self._record(run_id, stage_id, current, target_state, reason=reason)
        states[stage_id] = target_state

        if target_state == StageState.FAILED:
            self._block_pending_actions(run_id, stage_id, reason=f"{stage_id} failed")
            for blocked_id in self._graph.cascade_block(stage_id, states):
                self._record(
                    run_id,
                    blocked_id,
                    StageState.PENDING,
                    StageState.BLOCKED,
                    reason=f"upstream {stage_id} failed",
                )
                self._block_pending_actions(
                    run_id, blocked_id, reason=f"upstream {stage_id} failed"
                )

        return sealed

    def _block_pending_actions(self, run_id: str, stage_id: str, *, reason: str) -> None:
        actions = self._action_states[run_id]
        for name in self._action_names(stage_id):
            if actions[(stage_id, name)] == StageState.PENDING:
                self._record(
                    run_id,
                    stage_id,
                    StageState.PENDING,
                    StageState.BLOCKED,
                    action_name=name,
                    reason=reason,
                )
                actions[(stage_id, name)] = StageState.BLOCKED

    def transition_action(
        self,
        run_id: str,
        stage_id: str,
        action_name: str,
        target_state: StageState,
        *,
        reason: str = "",
        input_hash: str = "",
        output_hash: str = "",
        artifact_references: list[str] | None = None,
    ) -> LedgerEntry:
        """Transition one action; the enclosing stage must be RUNNING."""
        self._ensure(run_id)
        key = (stage_id, action_name)
        actions = self._action_states[run_id]
        if key not in actions:
            raise KeyError(f"Unknown action {stage_id}/{action_name}")

        stage_state = self._states[run_id].get(stage_id, StageState.PENDING)
        if stage_state != StageState.RUNNING:
            raise InvalidTransitionError(
                f"Cannot move {stage_id}/{action_name}: stage is {stage_state.value}"
            )

        current = actions[key]
        self._check_allowed(f"{stage_id}/{action_name}", current, target_state)
        sealed = self._record(
            run_id,
            stage_id,
            current,
            target_state,
            action_name=action_name,
            reason=reason,
            input_hash=input_hash,
            output_hash=output_hash,
            artifact_references=artifact_references,
        )
        actions[key] = target_state
        return sealed

    # ------------------------------------------------------------------
    # Convenience methods
    # ------------------------------------------------------------------

    def can_start(self, run_id: str, stage_id: str) -> tuple[bool, list[str]]:
        """Check if a stage can transition to RUNNING.

        Returns (can_start, blocking_reasons).
        """
        self._ensure(run_id)
        current = self._states[run_id].get(stage_id, StageState.PENDING)
        if current != StageState.PENDING:
            return False, [f"Stage is currently {current.value}, not pending"]

        states = self._states[run_id]
        if not self._graph.are_prerequisites_met(stage_id, states):
            return False, self._graph.get_blocking_reasons(stage_id, states)

        return True, []

    def get_available_transitions(self, run_id: str, stage_id: str) -> set[StageState]:
        """Return the set of valid target states for a stage."""
        return VALID_TRANSITIONS.get(self.get_current_state(run_id, stage_id), set())
