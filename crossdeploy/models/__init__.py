"""crossdeploy data models — all Pydantic v2, all frozen (immutable)."""

from crossdeploy.models.artifacts import Artifact, ArtifactManifest
from crossdeploy.models.config import AccountConfig, PipelineConfig, template_file
from crossdeploy.models.iam import (
    BucketGrant,
    DeploymentCapability,
    KeyGrant,
    PolicyDocument,
    PolicyStatement,
    RolePurpose,
    RoleRef,
)
from crossdeploy.models.ledger import LedgerEntry
from crossdeploy.models.outcomes import (
    ActionOutcome,
    ApprovalRequest,
    BuildPhase,
    BuildReport,
    DeployRequest,
    DeployResult,
    FailureInfo,
    FailureKind,
    InvokeResult,
    PushEvent,
    RunReport,
    SourceRevision,
)
from crossdeploy.models.stages import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    ActionDefinition,
    ActionKind,
    PipelineGraph,
    RunStatus,
    StageDefinition,
    StageState,
)

__all__ = [
    # config
    "AccountConfig",
    "PipelineConfig",
    "template_file",
    # stages
    "ActionKind",
    "ActionDefinition",
    "StageDefinition",
    "PipelineGraph",
    "StageState",
    "RunStatus",
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    # artifacts
    "Artifact",
    "ArtifactManifest",
    # iam
    "RolePurpose",
    "PolicyStatement",
    "PolicyDocument",
    "RoleRef",
    "DeploymentCapability",
    "KeyGrant",
    "BucketGrant",
    # ledger
    "LedgerEntry",
    # outcomes
    "FailureKind",
    "ActionOutcome",
    "SourceRevision",
    "BuildPhase",
    "BuildReport",
    "DeployRequest",
    "DeployResult",
    "InvokeResult",
    "FailureInfo",
    "ApprovalRequest",
    "PushEvent",
    "RunReport",
]
