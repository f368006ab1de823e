"""Runtime settings — env-driven via pydantic-settings.

Reads from a ``.env`` file and ``CROSSDEPLOY_*`` environment variables and
turns them into the explicit ``PipelineConfig`` the assembler consumes.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from crossdeploy.models.config import AccountConfig, PipelineConfig


class Settings(BaseSettings):
    """Process settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export CROSSDEPLOY_DEV_ACCOUNT_ID=111111111111
        export CROSSDEPLOY_PROD_ACCOUNT_ID=222222222222
        export CROSSDEPLOY_KMS_KEY_ID=0f1e2d3c-aaaa-bbbb-cccc-000000000000

    Or via .env file::

        CROSSDEPLOY_REPOSITORY_NAME=kinesis-application
        CROSSDEPLOY_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CROSSDEPLOY_",
        env_file_encoding="utf-8",
    )

    # Logging
    log_level: str = "INFO"

    # Local artifact store
    artifact_store_path: Path = Path(".crossdeploy/artifacts")

    # Source
    pipeline_name: str = "KinesisApplicationPipeline"
    repository_name: str = "kinesis-application"
    branch: str = "main"

    # Shared resources in the dev account
    artifact_bucket_name: str = "crossdeploy-artifacts"
    kms_key_id: str = "00000000-0000-0000-0000-000000000000"

    # Accounts
    dev_account_id: str = "111111111111"
    dev_region: str = "us-east-1"
    dev_action_role_name: str = "CodePipelineRole-4PVV5QMKJ60HO"
    dev_deployment_role_name: str = "CodePipelineCfnDeployRole-0WYTZHE10BS13"
    prod_account_id: str = "222222222222"
    prod_region: str = "us-east-1"
    prod_action_role_name: str = "CodePipelineCrossAccountRole"
    prod_deployment_role_name: str = "CloudFormationDeploymentRole"

    # Execution
    approval_timeout_minutes: int = 7 * 24 * 60
    max_parallel_actions: int = 4

    def to_pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            pipeline_name=self.pipeline_name,
            repository_name=self.repository_name,
            branch=self.branch,
            artifact_bucket_name=self.artifact_bucket_name,
            kms_key_id=self.kms_key_id,
            dev=AccountConfig(
                account_id=self.dev_account_id,
                region=self.dev_region,
                action_role_name=self.dev_action_role_name,
                deployment_role_name=self.dev_deployment_role_name,
            ),
            prod=AccountConfig(
                account_id=self.prod_account_id,
                region=self.prod_region,
                action_role_name=self.prod_action_role_name,
                deployment_role_name=self.prod_deployment_role_name,
            ),
            approval_timeout_minutes=self.approval_timeout_minutes,
        )


def get_settings() -> Settings:
    """Load settings fresh from the environment."""
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Route log records through Rich at ``level``."""
    from rich.logging import RichHandler

    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
