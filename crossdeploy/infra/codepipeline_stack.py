"""The release pipeline, rendered stage by stage from the assembled graph."""

from __future__ import annotations

import logging
import re

from aws_cdk import CfnCapabilities, CfnOutput, Stack
from aws_cdk import aws_codecommit as codecommit
from aws_cdk import aws_codepipeline as codepipeline
from aws_cdk import aws_codepipeline_actions as codepipeline_actions
from aws_cdk import aws_iam as iam
from aws_cdk import aws_kms as kms
from aws_cdk import aws_s3 as s3
from aws_cdk import aws_stepfunctions as sfn
from constructs import Construct

from crossdeploy.core.build_spec import BuildStageDefinition
from crossdeploy.core.stage_graph import StageGraphAssembler
from crossdeploy.infra.codebuild_construct import CodeBuildConstruct
from crossdeploy.infra.cross_account_iam_stack import PipelineRoles
from crossdeploy.models.config import PipelineConfig
from crossdeploy.models.stages import ActionDefinition, ActionKind, PipelineGraph

logger = logging.getLogger(__name__)

_CAPABILITIES = {
    "CAPABILITY_IAM": CfnCapabilities.ANONYMOUS_IAM,
    "CAPABILITY_NAMED_IAM": CfnCapabilities.NAMED_IAM,
}


def _construct_id(*parts: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "", "".join(p.title() for p in parts))


class CodePipelineStack(Stack):
    """Imports the dev account's shared resources and builds the pipeline on them.

    Parameters
    ----------
    config:
        Pipeline configuration; assembled and validated before any construct
        is created.
    """

    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        config: PipelineConfig,
        **kwargs,
    ) -> None:
        super().__init__(scope, construct_id, **kwargs)

        assembler = StageGraphAssembler(config)
        self.graph: PipelineGraph = assembler.assemble()
        trust = assembler.trust

        self.repository = codecommit.Repository.from_repository_name(
            self, "SourceRepository", config.repository_name
        )
        self.key = kms.Key.from_key_arn(self, "ArtifactBucketEncKey", self.graph.key_arn)
        prod_action_role = iam.Role.from_role_arn(
            self,
            "ProdPipelineActionRole",
            assembler.prod_capability.action_role.arn,
            mutable=False,
        )
        for grant in trust.key_grants():
            if grant.principal_arn == assembler.prod_capability.action_role.arn:
                self.key.grant(prod_action_role, *grant.actions)

        self.artifact_bucket = s3.Bucket.from_bucket_attributes(
            self,
            "ArtifactBucket",
            bucket_name=self.graph.artifact_bucket,
            encryption_key=self.key,
        )

        PipelineRoles(self, "DevPipelineRoles", builder=trust, account=config.dev)

        self.build_project = CodeBuildConstruct(
            self,
            "CdkSynthBuild",
            key=self.key,
            definition=BuildStageDefinition.from_config(config),
        ).build_project

        self._artifacts: dict[str, codepipeline.Artifact] = {}
        self.pipeline = codepipeline.Pipeline(
            self,
            "ReleasePipeline",
            pipeline_name=self.graph.pipeline_name,
            artifact_bucket=self.artifact_bucket,
        )
        for stage in sorted(self.graph.stages, key=lambda s: s.ordinal):
            self.pipeline.add_stage(
                stage_name=stage.name,
                actions=[self._render(stage.name, action) for action in stage.actions],
            )
        logger.info(
            "Rendered %s with %d stages", self.graph.pipeline_name, len(self.graph.stages)
        )

        CfnOutput(self, "CfnOutputRepositoryName", value=self.repository.repository_name)
        CfnOutput(
            self, "CfnOutputCodeCommitHttpUrl", value=self.repository.repository_clone_url_http
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _artifact(self, name: str) -> codepipeline.Artifact:
        if name not in self._artifacts:
            self._artifacts[name] = codepipeline.Artifact(name)
        return self._artifacts[name]

    def _imported_role(self, stage: str, action: str, label: str, arn: str) -> iam.IRole:
        return iam.Role.from_role_arn(
            self, _construct_id(stage, action, label), arn, mutable=False
        )

    def _render(self, stage: str, action: ActionDefinition) -> codepipeline.IAction:
        if action.kind == ActionKind.SOURCE:
            return codepipeline_actions.CodeCommitSourceAction(
                action_name=action.name,
                repository=self.repository,
                branch=action.branch,
                output=self._artifact(action.output_artifacts[0]),
                run_order=action.run_order,
            )

        if action.kind == ActionKind.BUILD:
            return codepipeline_actions.CodeBuildAction(
                action_name=action.name,
                project=self.build_project,
                input=self._artifact(action.input_artifacts[0]),
                outputs=[self._artifact(name) for name in action.output_artifacts],
                run_order=action.run_order,
            )

        if action.kind == ActionKind.DEPLOY:
            return codepipeline_actions.CloudFormationCreateUpdateStackAction(
                action_name=action.name,
                template_path=self._artifact(action.input_artifacts[0]).at_path(
                    action.template_file
                ),
                stack_name=action.stack_name,
                admin_permissions=False,
                deployment_role=self._imported_role(
                    stage, action.name, "DeploymentRole", action.deployment_role_arn
                ),
                role=self._imported_role(stage, action.name, "ActionRole", action.role_arn),
                variables_namespace=action.variables_namespace,
                cfn_capabilities=[_CAPABILITIES[c] for c in action.capabilities],
                region=action.region,
                run_order=action.run_order,
            )

        if action.kind == ActionKind.INVOKE:
            return codepipeline_actions.StepFunctionInvokeAction(
                action_name=action.name,
                state_machine=sfn.StateMachine.from_state_machine_arn(
                    self, _construct_id(stage, action.name, "StateMachine"),
                    action.state_machine_arn,
                ),
                state_machine_input=codepipeline_actions.StateMachineInput.literal(
                    dict(action.invoke_input)
                ),
                run_order=action.run_order,
            )

        return codepipeline_actions.ManualApprovalAction(
            action_name=action.name,
            additional_information=(
                f"Promote {self.graph.pipeline_name} to production "
                f"(expires after {action.approval_timeout_minutes} minutes)"
            ),
            run_order=action.run_order,
        )
