#!/usr/bin/env python3
"""CDK entry point: ``cdk synth -a "python -m crossdeploy.infra.app"``.

Context keys (``cdk.json`` or ``-c key=value``):

    prodAccId, devAccId, devAccRegion, prodAccRegion, keyId,
    codePipelineArtifactBucketName, codeCommitRepoName,
    codePipelineCrossAccountRole, cloudformationCrossAccountRole
"""

from __future__ import annotations

import logging

import aws_cdk as cdk

from crossdeploy.infra.codepipeline_stack import CodePipelineStack
from crossdeploy.infra.cross_account_iam_stack import CrossAccountIamStack
from crossdeploy.infra.dev_account_setup_stack import DevAccountSetupStack
from crossdeploy.models.config import AccountConfig, PipelineConfig

logger = logging.getLogger(__name__)


def config_from_context(app: cdk.App) -> PipelineConfig:
    """Build the pipeline config from CDK context values."""
    ctx = app.node.try_get_context
    defaults = PipelineConfig()
    dev_region = ctx("devAccRegion") or "us-east-1"
    return PipelineConfig(
        repository_name=ctx("codeCommitRepoName") or "",
        artifact_bucket_name=ctx("codePipelineArtifactBucketName") or "",
        kms_key_id=ctx("keyId") or "",
        dev=defaults.dev.model_copy(
            update={"account_id": ctx("devAccId") or "", "region": dev_region}
        ),
        prod=AccountConfig(
            account_id=ctx("prodAccId") or "",
            region=ctx("prodAccRegion") or dev_region,
            action_role_name=ctx("codePipelineCrossAccountRole") or "",
            deployment_role_name=ctx("cloudformationCrossAccountRole") or "",
        ),
    )


def build_app(
    config: PipelineConfig | None = None, *, outdir: str | None = None
) -> cdk.App:
    """Create the app with its three stacks.  ``config`` overrides context.

    Without a key id only ``CodeCommitStack`` is added: it creates the key,
    and the other two stacks need its ARN.
    """
    app = cdk.App(outdir=outdir)
    config = config or config_from_context(app)

    dev_env = cdk.Environment(account=config.dev.account_id, region=config.dev.region)
    prod_env = cdk.Environment(account=config.prod.account_id, region=config.prod.region)

    DevAccountSetupStack(app, "CodeCommitStack", config=config, env=dev_env)
    if not config.kms_key_id:
        logger.warning(
            "No keyId in context; synthesizing CodeCommitStack only. Deploy it, "
            "then pass its CfnOutputCodePipelineKmsKeyArn key id with -c keyId=..."
        )
        return app
    CrossAccountIamStack(app, "CrossAccountIamStack", config=config, env=prod_env)
    CodePipelineStack(app, "CodePipelineStack", config=config, env=dev_env)
    return app


def main() -> None:
    build_app().synth()


if __name__ == "__main__":
    main()
