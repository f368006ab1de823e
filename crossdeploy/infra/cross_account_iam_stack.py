"""The two pipeline roles of one account, rendered from ``TrustPolicyBuilder``.

``PipelineRoles`` is reused in two places: the prod account's
``CrossAccountIamStack`` and the dev account's ``CodePipelineStack``.
"""

from __future__ import annotations

from aws_cdk import CfnOutput, Stack
from aws_cdk import aws_iam as iam
from constructs import Construct

from crossdeploy.core.trust_policy import TrustPolicyBuilder
from crossdeploy.models.config import AccountConfig, PipelineConfig
from crossdeploy.models.iam import PolicyDocument, RoleRef


def _principal(trust_policy: PolicyDocument) -> iam.IPrincipal:
    """The single principal allowed to assume a role."""
    principals: list[iam.IPrincipal] = []
    for statement in trust_policy.statements:
        for kind, values in statement.principals.items():
            for value in values:
                if kind == "Service":
                    principals.append(iam.ServicePrincipal(value))
                else:
                    principals.append(iam.ArnPrincipal(value))
    if len(principals) != 1:
        raise ValueError(f"Expected one trusted principal, found {len(principals)}")
    return principals[0]


class PipelineRoles(Construct):
    """Creates the action role and the deployment role for one account."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        builder: TrustPolicyBuilder,
        account: AccountConfig,
    ) -> None:
        super().__init__(scope, construct_id)

        capability = builder.capability(account)
        self.action_role = self._role("PipelineActionRole", capability.action_role)
        self.deployment_role = self._role("DeploymentRole", capability.deployment_role)

    def _role(self, construct_id: str, ref: RoleRef) -> iam.Role:
        return iam.Role(
            self,
            construct_id,
            role_name=ref.role_name,
            assumed_by=_principal(ref.trust_policy),
            inline_policies={
                f"{ref.role_name}-policy": iam.PolicyDocument.from_json(
                    ref.permissions.to_json()
                )
            },
        )


class CrossAccountIamStack(Stack):
    """Roles in a target account that only the pipeline account may assume."""

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: PipelineConfig,
        account: AccountConfig | None = None,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        target = account or config.prod
        roles = PipelineRoles(
            self,
            "PipelineRoles",
            builder=TrustPolicyBuilder(config),
            account=target,
        )

        CfnOutput(self, "CfnOutputPipelineActionRoleArn", value=roles.action_role.role_arn)
        CfnOutput(self, "CfnOutputDeploymentRoleArn", value=roles.deployment_role.role_arn)
