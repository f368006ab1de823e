"""Pipeline configuration struct — every fixed name the assembler needs.

Names a single hand-written deployment would hard-code (role names, stack names,
template files, variable namespaces) live here as defaults on a frozen model
that is passed explicitly into the stage graph assembler.  Two pipelines with
different configs can be assembled side by side in the same process.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


def template_file(stack_id: str) -> str:
    """Return the synthesized template file name for a stack id.

    The build artifact carries templates named ``<StackName>.template.json``
    and every deploy action consumes them by that name.
    """
    return f"{stack_id}.template.json"


class AccountConfig(BaseModel):
    """One target account: where to deploy and which roles to assume there."""

    model_config = ConfigDict(frozen=True)

    account_id: str = ""
    region: str = ""
    action_role_name: str = ""
    deployment_role_name: str = ""


class PipelineConfig(BaseModel):
    """Explicit configuration for one cross-account release pipeline.

    The dev account hosts the pipeline, the repository, the key and the
    artifact bucket.  The prod account only hosts the two roles the pipeline
    assumes for the final deploy.
    """

    model_config = ConfigDict(frozen=True)

    pipeline_name: str = "KinesisApplicationPipeline"

    # Source
    repository_name: str = ""
    branch: str = "main"

    # Shared resources in the dev account
    artifact_bucket_name: str = ""
    kms_key_id: str = ""

    dev: AccountConfig = AccountConfig(
        action_role_name="CodePipelineRole-4PVV5QMKJ60HO",
        deployment_role_name="CodePipelineCfnDeployRole-0WYTZHE10BS13",
    )
    prod: AccountConfig = AccountConfig()

    # Artifacts
    source_output_name: str = "SourceOutput"
    build_output_name: str = "CdkBuildOutput"
    template_glob: str = "*Stack.template.json"

    # Application stack
    application_stack_id: str = "ApplicationStack"
    application_stack_name: str = "KinesisApplicationStack"
    application_namespace: str = "Deploy_Application_Ns"
    published_outputs: tuple[str, ...] = (
        "KinesisInputStreamName",
        "FirehoseOutputBucket",
    )

    # Integration test stack and its state machine
    integ_test_stack_id: str = "IntegTestSfnStack"
    integ_test_stack_name: str = "IntTestSfnStack"
    integ_test_namespace: str = "Deploy_Integration_Test_Sfn_Ns"
    state_machine_name: str = "DevSfnStackStateMachine"
    wait_seconds: str = "30"
    record_count: int = 1000

    # Manual gate (CodePipeline's own limit is seven days)
    approval_timeout_minutes: int = 7 * 24 * 60

    @property
    def application_template(self) -> str:
        return template_file(self.application_stack_id)

    @property
    def integ_test_template(self) -> str:
        return template_file(self.integ_test_stack_id)

    @property
    def managed_stack_names(self) -> tuple[str, str]:
        """The two stacks the pipeline action roles may describe/create/update."""
        return (self.application_stack_name, self.integ_test_stack_name)
