"""Trust Policy Builder — scoped permission sets for the two pipeline roles.

Two roles exist in every target account:

* the **pipeline action role**, assumed by the pipeline (dev) account to
  drive CloudFormation and touch the artifact store, and
* the **deployment role**, assumed by CloudFormation to create the
  application's resources.

Every resource is built through :mod:`crossdeploy.core.arns`, so a missing
account, region or name raises ``ArnConstructionError`` while the documents
are being built, never later.
"""

from __future__ import annotations

import logging
import re

from crossdeploy.core import arns
from crossdeploy.models.config import AccountConfig, PipelineConfig
from crossdeploy.models.iam import (
    BucketGrant,
    DeploymentCapability,
    KeyGrant,
    PolicyDocument,
    PolicyStatement,
    RolePurpose,
    RoleRef,
)

logger = logging.getLogger(__name__)

CLOUDFORMATION_SERVICE = "cloudformation.amazonaws.com"

ARTIFACT_OBJECT_ACTIONS: tuple[str, ...] = (
    "s3:GetBucketLocation",
    "s3:GetObject",
    "s3:ListBucket",
    "s3:PutObject",
    "s3:DeleteObject",
    "s3:DeleteObjectVersion",
)

KEY_USE_ACTIONS: tuple[str, ...] = (
    "kms:DescribeKey",
    "kms:GenerateDataKey",
    "kms:Encrypt",
    "kms:ReEncryptFrom",
    "kms:ReEncryptTo",
    "kms:Decrypt",
)

KEY_DECRYPT_ACTIONS: tuple[str, ...] = ("kms:Decrypt", "kms:DescribeKey")

BUCKET_READ_PUT_ACTIONS: tuple[str, ...] = (
    "s3:GetObject",
    "s3:GetObjectVersion",
    "s3:GetBucketLocation",
    "s3:ListBucket",
    "s3:PutObject",
)

STACK_ACTIONS: tuple[str, ...] = (
    "cloudformation:DescribeStacks",
    "cloudformation:CreateStack",
    "cloudformation:UpdateStack",
)

# Actions that must never be granted on a wildcard resource.
_DESTRUCTIVE_ACTION_RE = re.compile(
    r"^(\*|Delete.*|Create.*Policy.*|Put.*Policy|CreateBucket|PassRole)$"
)


class TrustPolicyBuilder:
    """Builds role documents and grants for one pipeline configuration.

    Parameters
    ----------
    config:
        The pipeline configuration.  The dev account owns the key and the
        artifact bucket; their ARNs are resolved here, once.
    """

    def __init__(self, config: PipelineConfig) -> None:
        self.config = config
        self.pipeline_account_id = arns.validate_account_id(config.dev.account_id)
        self.key_arn = arns.kms_key_arn(
            config.dev.region, config.dev.account_id, config.kms_key_id
        )
        self.bucket_arn = arns.bucket_arn(config.artifact_bucket_name)
        self.bucket_objects_arn = arns.bucket_objects_arn(config.artifact_bucket_name)

    # ------------------------------------------------------------------
    # Role ARNs
    # ------------------------------------------------------------------

    def action_role_arn(self, account: AccountConfig) -> str:
        return arns.role_arn(account.account_id, account.action_role_name)

    def deployment_role_arn(self, account: AccountConfig) -> str:
        return arns.role_arn(account.account_id, account.deployment_role_name)

    # ------------------------------------------------------------------
    # Permission documents
    # ------------------------------------------------------------------

    def deployment_role_policy(self, account: AccountConfig) -> PolicyDocument:
        """Full resource lifecycle for what the application stack provisions."""
        acct = account.account_id
        region = account.region
        cfg = self.config
        statements = (
            PolicyStatement(
                sid="PassOwnRole",
                actions=("iam:PassRole",),
                resources=(self.deployment_role_arn(account),),
            ),
            PolicyStatement(
                sid="ManageStackIamResources",
                actions=(
                    "iam:GetRole",
                    "iam:GetRolePolicy",
                    "iam:PutRolePolicy",
                    "iam:CreateRole",
                    "iam:DeleteRole",
                    "iam:DeleteRolePolicy",
                    "iam:DetachRolePolicy",
                    "iam:AttachRolePolicy",
                    "iam:GetPolicy",
                    "iam:CreatePolicy",
                    "iam:DeletePolicy",
                    "iam:ListPolicyVersions",
                ),
                resources=tuple(
                    pattern(acct, name)
                    for pattern in (arns.stack_roles_pattern, arns.stack_policies_pattern)
                    for name in cfg.managed_stack_names
                ),
            ),
            PolicyStatement(
                sid="ManageKinesisStreams",
                actions=(
                    "kinesis:CreateStream",
                    "kinesis:ListStreams",
                    "kinesis:DescribeStream",
                    "kinesis:DescribeStreamSummary",
                    "kinesis:StartStreamEncryption",
                    "kinesis:DeleteStream",
                ),
                resources=(arns.kinesis_streams_pattern(region, acct),),
            ),
            PolicyStatement(
                sid="ManageDeliveryStreams",
                actions=(
                    "firehose:DescribeDeliveryStream",
                    "firehose:ListDeliveryStreams",
                    "firehose:CreateDeliveryStream",
                    "firehose:UpdateDestination",
                    "firehose:DeleteDeliveryStream",
                ),
                resources=(arns.firehose_streams_pattern(region, acct),),
            ),
            PolicyStatement(
                sid="ManageFunctions",
                actions=(
                    "lambda:GetFunction",
                    "lambda:CreateFunction",
                    "lambda:UpdateFunctionCode",
                    "lambda:UpdateFunctionConfiguration",
                    "lambda:DeleteFunction",
                ),
                resources=(arns.lambda_functions_pattern(region, acct),),
            ),
            PolicyStatement(
                sid="ManageStackBuckets",
                actions=(
                    "s3:CreateBucket",
                    "s3:DeleteBucket",
                    "s3:PutBucketTagging",
                    "s3:DeleteBucketTagging",
                    "s3:PutBucketVersioning",
                    "s3:GetEncryptionConfiguration",
                    "s3:PutEncryptionConfiguration",
                ),
                resources=tuple(
                    arns.stack_buckets_pattern(name) for name in cfg.managed_stack_names
                ),
            ),
            PolicyStatement(
                sid="ReadArtifacts",
                actions=ARTIFACT_OBJECT_ACTIONS,
                resources=(self.bucket_arn, self.bucket_objects_arn),
            ),
            PolicyStatement(
                sid="UseArtifactKey",
                actions=KEY_USE_ACTIONS,
                resources=(self.key_arn,),
            ),
            PolicyStatement(
                sid="ManageLogGroups",
                actions=(
                    "logs:CreateLogGroup",
                    "logs:DeleteLogGroup",
                    "logs:PutRetentionPolicy",
                    "logs:DeleteRetentionPolicy",
                    "logs:CreateLogStream",
                    "logs:DeleteLogStream",
                    "logs:PutLogEvents",
                    "logs:DescribeLogGroups",
                ),
                resources=(arns.log_groups_pattern(region, acct),),
            ),
            PolicyStatement(
                sid="ManageStateMachines",
                actions=(
                    "states:CreateStateMachine",
                    "states:UpdateStateMachine",
                    "states:DeleteStateMachine",
                    "states:DescribeStateMachine",
                    "states:ListStateMachines",
                    "states:TagResource",
                ),
                resources=(arns.state_machines_pattern(region, acct),),
            ),
        )
        return PolicyDocument(statements=statements)

    def pipeline_action_role_policy(self, account: AccountConfig) -> PolicyDocument:
        """Narrow operational access: artifacts, key, two named stacks, one PassRole."""
        statements = (
            PolicyStatement(
                sid="ArtifactStoreAccess",
                actions=ARTIFACT_OBJECT_ACTIONS,
                resources=(self.bucket_arn, self.bucket_objects_arn),
            ),
            PolicyStatement(
                sid="ArtifactKeyAccess",
                actions=KEY_USE_ACTIONS,
                resources=(self.key_arn,),
            ),
            PolicyStatement(
                sid="ManageNamedStacks",
                actions=STACK_ACTIONS,
                resources=tuple(
                    arns.stack_arn(account.region, account.account_id, name)
                    for name in self.config.managed_stack_names
                ),
            ),
            PolicyStatement(
                sid="PassDeploymentRole",
                actions=("iam:PassRole",),
                resources=(self.deployment_role_arn(account),),
            ),
        )
        return PolicyDocument(statements=statements)

    # ------------------------------------------------------------------
    # Trust documents
    # ------------------------------------------------------------------

    def action_role_trust_policy(self) -> PolicyDocument:
        """The pipeline account may assume the action role."""
        return PolicyDocument(
            statements=(
                PolicyStatement(
                    sid="PipelineAccountAssume",
                    actions=("sts:AssumeRole",),
                    principals={
                        "AWS": (arns.account_root_arn(self.pipeline_account_id),)
                    },
                ),
            )
        )

    def deployment_role_trust_policy(self) -> PolicyDocument:
        """Only CloudFormation may assume the deployment role."""
        return PolicyDocument(
            statements=(
                PolicyStatement(
                    sid="CloudFormationAssume",
                    actions=("sts:AssumeRole",),
                    principals={"Service": (CLOUDFORMATION_SERVICE,)},
                ),
            )
        )

    # ------------------------------------------------------------------
    # Capabilities and cross-account grants
    # ------------------------------------------------------------------

    def capability(self, account: AccountConfig) -> DeploymentCapability:
        """Bundle both roles for one account into a capability object."""
        arns.validate_region(account.region)
        action_role = RoleRef(
            purpose=RolePurpose.PIPELINE_ACTION,
            account_id=account.account_id,
            role_name=account.action_role_name,
            arn=self.action_role_arn(account),
            trust_policy=self.action_role_trust_policy(),
            permissions=self.pipeline_action_role_policy(account),
        )
        deployment_role = RoleRef(
            purpose=RolePurpose.DEPLOYMENT,
            account_id=account.account_id,
            role_name=account.deployment_role_name,
            arn=self.deployment_role_arn(account),
            trust_policy=self.deployment_role_trust_policy(),
            permissions=self.deployment_role_policy(account),
        )
        logger.debug(
            "Built capability for account %s: action=%s deployment=%s",
            account.account_id,
            action_role.arn,
            deployment_role.arn,
        )
        return DeploymentCapability(
            account_id=account.account_id,
            region=account.region,
            action_role=action_role,
            deployment_role=deployment_role,
        )

    def key_grants(self) -> list[KeyGrant]:
        """Decrypt on the pipeline key for the prod account and its action role.

        These grants are long-lived: nothing in the pipeline revokes them.
        """
        prod = self.config.prod
        return [
            KeyGrant(
                key_arn=self.key_arn,
                principal_arn=arns.account_root_arn(prod.account_id),
                actions=KEY_DECRYPT_ACTIONS,
            ),
            KeyGrant(
                key_arn=self.key_arn,
                principal_arn=self.action_role_arn(prod),
                actions=KEY_DECRYPT_ACTIONS,
            ),
        ]

    def bucket_grants(self) -> list[BucketGrant]:
        """Read and put on the artifact bucket for the prod account."""
        return [
            BucketGrant(
                bucket_arn=self.bucket_arn,
                principal_arn=arns.account_root_arn(self.config.prod.account_id),
                actions=BUCKET_READ_PUT_ACTIONS,
            )
        ]


def find_wildcard_grants(document: PolicyDocument) -> list[tuple[str, str, str]]:
    """Enumerate (sid, action, resource) triples that grant a destructive
    action on a wildcard resource.  An empty list means the document is clean.
    """
    findings: list[tuple[str, str, str]] = []
    for statement in document.statements:
        if statement.effect != "Allow":
            continue
        for action in statement.actions:
            verb = action.split(":", 1)[-1]
            if not _DESTRUCTIVE_ACTION_RE.match(verb):
                continue
            for resource in statement.resources or ("*",):
                if arns.is_wildcard_resource(resource):
                    findings.append((statement.sid, action, resource))
    return findings
