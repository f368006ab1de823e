"""IAM capability models — statements, documents, roles, grants.

Cross-account trust is carried as explicit ``DeploymentCapability`` objects
(an action role plus a deployment role, each with its permission and trust
documents).  Stage definitions receive role ARNs from a capability; nothing
reads an ambient identity.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

POLICY_VERSION = "2012-10-17"


class RolePurpose(str, Enum):
    """Which of the two pipeline roles a document is for."""

    PIPELINE_ACTION = "pipeline_action"
    DEPLOYMENT = "deployment"


class PolicyStatement(BaseModel):
    """A single IAM statement."""

    model_config = ConfigDict(frozen=True)

    sid: str = ""
    effect: str = "Allow"
    actions: tuple[str, ...]
    resources: tuple[str, ...] = ()
    principals: dict[str, tuple[str, ...]] = {}

    def to_json(self) -> dict[str, Any]:
        """Render in the IAM policy grammar."""
        out: dict[str, Any] = {}
        if self.sid:
            out["Sid"] = self.sid
        out["Effect"] = self.effect
        if self.principals:
            out["Principal"] = {
                kind: (values[0] if len(values) == 1 else list(values))
                for kind, values in self.principals.items()
            }
        out["Action"] = self.actions[0] if len(self.actions) == 1 else list(self.actions)
        if self.resources:
            out["Resource"] = (
                self.resources[0] if len(self.resources) == 1 else list(self.resources)
            )
        return out


class PolicyDocument(BaseModel):
    """An ordered set of statements."""

    model_config = ConfigDict(frozen=True)

    statements: tuple[PolicyStatement, ...]

    def to_json(self) -> dict[str, Any]:
        return {
            "Version": POLICY_VERSION,
            "Statement": [s.to_json() for s in self.statements],
        }

    def statement(self, sid: str) -> PolicyStatement:
        for statement in self.statements:
            if statement.sid == sid:
                return statement
        raise KeyError(f"No statement with Sid {sid!r}")


class RoleRef(BaseModel):
    """A role by reference: its ARN plus who may assume it and what it may do."""

    model_config = ConfigDict(frozen=True)

    purpose: RolePurpose
    account_id: str
    role_name: str
    arn: str
    trust_policy: PolicyDocument
    permissions: PolicyDocument


class DeploymentCapability(BaseModel):
    """Everything a deploy action needs to act in one account."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    region: str
    action_role: RoleRef
    deployment_role: RoleRef


class KeyGrant(BaseModel):
    """Key usage granted to a principal outside the key's account."""

    model_config = ConfigDict(frozen=True)

    key_arn: str
    principal_arn: str
    actions: tuple[str, ...]


class BucketGrant(BaseModel):
    """Artifact bucket access granted to a principal outside the dev account."""

    model_config = ConfigDict(frozen=True)

    bucket_arn: str
    principal_arn: str
    actions: tuple[str, ...]
