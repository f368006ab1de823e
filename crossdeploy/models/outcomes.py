"""Action outcomes, collaborator payloads and the user-visible run report."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from crossdeploy.models.stages import RunStatus, StageState


class FailureKind(str, Enum):
    """Why a run stopped; ``CONFIGURATION`` means no run could be started."""

    CONFIGURATION = "configuration"
    SOURCE = "source"
    BUILD_GATE = "build_gate"
    DEPLOYMENT = "deployment"
    TEST_GATE = "test_gate"
    APPROVAL = "approval"


class ActionOutcome(BaseModel):
    """Result of executing one action.

    ``files`` become the action's output artifact; ``outputs`` are published
    into the action's variables namespace.
    """

    model_config = ConfigDict(frozen=True)

    succeeded: bool
    reason: str = ""
    files: dict[str, bytes] = {}
    outputs: dict[str, str] = {}
    details: dict[str, Any] = {}

    @classmethod
    def failure(cls, reason: str, **details: Any) -> "ActionOutcome":
        return cls(succeeded=False, reason=reason, details=details)


# ---------------------------------------------------------------------------
# Collaborator payloads
# ---------------------------------------------------------------------------


class SourceRevision(BaseModel):
    """A fetched commit: its id and the files of the working tree."""

    model_config = ConfigDict(frozen=True)

    commit_id: str
    files: dict[str, bytes]


class BuildPhase(str, Enum):
    """Build phases in the order they run."""

    INSTALL = "install"
    BUILD = "build"
    POST_BUILD = "post_build"


class BuildReport(BaseModel):
    """What the build toolchain reports back for one build.

    ``scan_results`` maps template file name to ``True`` when the static
    security scan passed; ``scan_findings`` carries the scanner's messages.
    """

    model_config = ConfigDict(frozen=True)

    phase_exit_codes: dict[BuildPhase, int] = {}
    produced_files: dict[str, bytes] = {}
    scan_results: dict[str, bool] = {}
    scan_findings: dict[str, list[str]] = {}


class DeployRequest(BaseModel):
    """Create-or-update of one stack in one account."""

    model_config = ConfigDict(frozen=True)

    stack_name: str
    template_file: str
    template_body: bytes
    account_id: str
    region: str
    role_arn: str | None = None
    deployment_role_arn: str | None = None
    capabilities: tuple[str, ...] = ()


class DeployResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    succeeded: bool
    stack_id: str = ""
    outputs: dict[str, str] = {}
    reason: str = ""


class InvokeResult(BaseModel):
    """Terminal status of a test workflow execution."""

    model_config = ConfigDict(frozen=True)

    succeeded: bool
    execution_arn: str = ""
    status: str = ""
    reason: str = ""


# ---------------------------------------------------------------------------
# Run reporting
# ---------------------------------------------------------------------------


class FailureInfo(BaseModel):
    """Which stage/action stopped the run, and the collaborator's reason."""

    model_config = ConfigDict(frozen=True)

    stage: str
    action: str
    kind: FailureKind
    reason: str

    @property
    def is_technical(self) -> bool:
        """Approval rejections and timeouts are not technical failures."""
        return self.kind != FailureKind.APPROVAL


class ApprovalRequest(BaseModel):
    """A pending manual gate."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    stage: str
    action: str
    requested_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    expires_at: datetime


class RunReport(BaseModel):
    """Point-in-time report of one pipeline run."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    status: RunStatus
    commit_id: str = ""
    current_stage: str | None = None
    stage_states: dict[str, StageState] = {}
    action_states: dict[str, StageState] = {}  # "Stage/Action" -> state
    failure: FailureInfo | None = None
    pending_approval: ApprovalRequest | None = None
    artifacts: dict[str, str] = {}  # artifact name -> version id
    variables: dict[str, dict[str, str]] = {}

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @property
    def stopped_at(self) -> str | None:
        return self.failure.stage if self.failure else None

    def action_state(self, stage: str, action: str) -> StageState:
        return self.action_states.get(f"{stage}/{action}", StageState.PENDING)


class PushEvent(BaseModel):
    """A push to a branch of a source repository."""

    model_config = ConfigDict(frozen=True)

    repository: str
    branch: str
    commit_id: str | None = None
