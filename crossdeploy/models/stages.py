"""Stage/action graph models and the state machine transition table."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StageState(str, Enum):
    """State of a stage or of a single action inside a run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    BLOCKED = "blocked"  # downstream of a failure; never started


class RunStatus(str, Enum):
    """Overall status of a pipeline run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"


# Valid state transitions — enforced structurally by StageMachine.
# There is no way out of FAILED: a new trigger starts a new run.
VALID_TRANSITIONS: dict[StageState, set[StageState]] = {
    StageState.PENDING: {StageState.RUNNING, StageState.BLOCKED},
    StageState.RUNNING: {StageState.SUCCEEDED, StageState.FAILED},
    StageState.SUCCEEDED: set(),
    StageState.FAILED: set(),
    StageState.BLOCKED: set(),
}

TERMINAL_STATES: frozenset[StageState] = frozenset(
    {StageState.SUCCEEDED, StageState.FAILED, StageState.BLOCKED}
)


class ActionKind(str, Enum):
    """What an action does when the orchestrator reaches it."""

    SOURCE = "source"
    BUILD = "build"
    DEPLOY = "deploy"
    INVOKE = "invoke"
    APPROVAL = "approval"


class ActionDefinition(BaseModel):
    """A unit of work within a stage.

    Only the fields relevant to ``kind`` are populated; the rest keep their
    empty defaults so two assemblies of the same config compare equal.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    kind: ActionKind
    run_order: int = Field(default=1, ge=1)
    input_artifacts: tuple[str, ...] = ()
    output_artifacts: tuple[str, ...] = ()

    # Cross-account deploys: the role the pipeline assumes, and the role
    # CloudFormation assumes to create the stack.
    role_arn: str | None = None
    deployment_role_arn: str | None = None
    account_id: str = ""
    region: str = ""

    # source
    repository: str = ""
    branch: str = ""

    # deploy
    stack_name: str = ""
    template_file: str = ""
    capabilities: tuple[str, ...] = ()
    variables_namespace: str | None = None
    published_outputs: tuple[str, ...] = ()

    # invoke
    state_machine_arn: str = ""
    invoke_input: dict[str, Any] = {}

    # approval
    approval_timeout_minutes: int = 0


class StageDefinition(BaseModel):
    """An ordered phase of the pipeline.

    The prerequisite list encodes the DAG: a stage cannot enter RUNNING
    unless every prerequisite has SUCCEEDED.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    ordinal: int
    actions: tuple[ActionDefinition, ...]
    prerequisites: tuple[str, ...] = ()
    is_gate: bool = False

    def action(self, name: str) -> ActionDefinition:
        for action in self.actions:
            if action.name == name:
                return action
        raise KeyError(f"Stage {self.name} has no action {name!r}")

    def run_order_groups(self) -> list[tuple[int, list[ActionDefinition]]]:
        """Actions grouped by run_order, in increasing order.

        Actions sharing a run_order run concurrently; groups run strictly
        one after another.
        """
        groups: dict[int, list[ActionDefinition]] = {}
        for action in self.actions:
            groups.setdefault(action.run_order, []).append(action)
        return [(order, groups[order]) for order in sorted(groups)]


class PipelineGraph(BaseModel):
    """The assembled release pipeline: ordered stages plus shared resources."""

    model_config = ConfigDict(frozen=True)

    pipeline_name: str
    repository: str
    branch: str
    artifact_bucket: str
    key_arn: str
    stages: tuple[StageDefinition, ...]

    def stage(self, name: str) -> StageDefinition:
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise KeyError(f"Pipeline {self.pipeline_name} has no stage {name!r}")

    @property
    def stage_names(self) -> list[str]:
        return [s.name for s in sorted(self.stages, key=lambda s: s.ordinal)]

    def fingerprint(self) -> str:
        """Content address of the canonical graph — equal graphs, equal prints."""
        from crossdeploy.core.hasher import content_address

        return content_address(self.model_dump(mode="json"))
