"""Shared resources in the dev account: repository, artifact key, artifact bucket.

This stack creates the key, so it is synthesized without a key id; the
key ARN it outputs is what the other two stacks are configured with.
"""

from __future__ import annotations

from aws_cdk import CfnOutput, RemovalPolicy, Stack
from aws_cdk import aws_codecommit as codecommit
from aws_cdk import aws_iam as iam
from aws_cdk import aws_kms as kms
from aws_cdk import aws_s3 as s3
from constructs import Construct

from crossdeploy.core import arns
from crossdeploy.core.trust_policy import BUCKET_READ_PUT_ACTIONS, KEY_DECRYPT_ACTIONS
from crossdeploy.models.config import PipelineConfig

ARTIFACT_KEY_ALIAS = "alias/artifact-key"


class DevAccountSetupStack(Stack):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: PipelineConfig,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        prod_root = arns.account_root_arn(config.prod.account_id)

        repo = codecommit.Repository(
            self,
            "CodeCommitRepo",
            repository_name=config.repository_name,
            description=f"Source for {config.pipeline_name}",
        )

        key = kms.Key(
            self,
            "ArtifactKey",
            alias=ARTIFACT_KEY_ALIAS,
            enable_key_rotation=True,
        )
        # The prod action role does not exist yet; it is granted in CodePipelineStack.
        key.grant(iam.AccountPrincipal(config.prod.account_id), *KEY_DECRYPT_ACTIONS)

        bucket = s3.Bucket(
            self,
            "ArtifactBucket",
            bucket_name=config.artifact_bucket_name,
            removal_policy=RemovalPolicy.DESTROY,
            encryption=s3.BucketEncryption.KMS,
            encryption_key=key,
            versioned=True,
        )
        bucket.add_to_resource_policy(
            iam.PolicyStatement(
                actions=list(BUCKET_READ_PUT_ACTIONS),
                resources=[bucket.bucket_arn, bucket.arn_for_objects("*")],
                principals=[iam.ArnPrincipal(prod_root)],
            )
        )

        CfnOutput(self, "CfnOutputCodePipelineKmsKeyArn", value=key.key_arn)
        CfnOutput(self, "CfnOutputRepositoryUrl", value=repo.repository_clone_url_http)
        CfnOutput(self, "CfnOutputArtifactBucket", value=bucket.bucket_name)
