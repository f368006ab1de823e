"""The build project: synth the app, scan every template, package the templates."""

from __future__ import annotations

from aws_cdk import aws_codebuild as codebuild
from aws_cdk import aws_kms as kms
from constructs import Construct

from crossdeploy.core.build_spec import BuildStageDefinition


class CodeBuildConstruct(Construct):
    def __init__(
        self,
        scope: Construct,
        construct_id: str,
        *,
        key: kms.IKey,
        definition: BuildStageDefinition,
    ) -> None:
        super().__init__(scope, construct_id)

        self.build_project = codebuild.PipelineProject(
            self,
            "CdkBuild",
            build_spec=codebuild.BuildSpec.from_object(definition.to_buildspec()),
            environment=codebuild.BuildEnvironment(
                build_image=codebuild.LinuxBuildImage.AMAZON_LINUX_2_5,
            ),
            encryption_key=key,
        )
