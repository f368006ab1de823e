"""Shared test fixtures for crossdeploy."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from crossdeploy.core.artifact_store import VersionedArtifactStore
from crossdeploy.core.collaborators import Collaborators
from crossdeploy.core.orchestrator import PipelineOrchestrator
from crossdeploy.core.prerequisite_graph import PrerequisiteGraph
from crossdeploy.core.run_ledger import RunLedger
from crossdeploy.core.scripted import (
    RecordingNotifier,
    ScriptedBuild,
    ScriptedDeployer,
    ScriptedInvoker,
    ScriptedSource,
    default_outputs,
    default_templates,
)
from crossdeploy.core.stage_graph import assemble_pipeline
from crossdeploy.core.stage_machine import StageMachine
from crossdeploy.models.config import AccountConfig, PipelineConfig
from crossdeploy.models.stages import PipelineGraph

DEV_ACCOUNT = "111111111111"
PROD_ACCOUNT = "222222222222"
DEV_REGION = "us-east-1"
PROD_REGION = "us-west-2"
KEY_ID = "1234abcd-12ab-34cd-56ef-1234567890ab"


def make_config(**overrides: Any) -> PipelineConfig:
    """A complete, valid two-account pipeline config."""
    defaults: dict[str, Any] = {
        "repository_name": "kinesis-application",
        "branch": "main",
        "artifact_bucket_name": "kinesis-pipeline-artifacts",
        "kms_key_id": KEY_ID,
        "dev": AccountConfig(
            account_id=DEV_ACCOUNT,
            region=DEV_REGION,
            action_role_name="CodePipelineRole-4PVV5QMKJ60HO",
            deployment_role_name="CodePipelineCfnDeployRole-0WYTZHE10BS13",
        ),
        "prod": AccountConfig(
            account_id=PROD_ACCOUNT,
            region=PROD_REGION,
            action_role_name="CodePipelineCrossAccountRole",
            deployment_role_name="CloudFormationDeploymentRole",
        ),
    }
    defaults.update(overrides)
    return PipelineConfig(**defaults)


@pytest.fixture
def config() -> PipelineConfig:
    return make_config()


@pytest.fixture(name="make_config")
def make_config_fixture() -> Callable[..., PipelineConfig]:
    """Build a config with some fields overridden."""
    return make_config


@pytest.fixture
def pipeline_graph(config: PipelineConfig) -> PipelineGraph:
    """The assembled six-stage pipeline for the test config."""
    return assemble_pipeline(config)


@pytest.fixture
def ledger() -> RunLedger:
    return RunLedger()


@pytest.fixture
def prereq_graph(pipeline_graph: PipelineGraph) -> PrerequisiteGraph:
    return PrerequisiteGraph(pipeline_graph.stages)


@pytest.fixture
def stage_machine(ledger: RunLedger, prereq_graph: PrerequisiteGraph) -> StageMachine:
    return StageMachine(ledger, prereq_graph)


@pytest.fixture
def run_id() -> str:
    """Provide a deterministic test run ID."""
    return "xd-test-run-001"


@pytest.fixture
def artifact_store(tmp_path: Path, pipeline_graph: PipelineGraph) -> VersionedArtifactStore:
    """An artifact store bound to the pipeline's key."""
    return VersionedArtifactStore(
        tmp_path / "artifacts",
        bucket_name=pipeline_graph.artifact_bucket,
        key_arn=pipeline_graph.key_arn,
        pipeline_name=pipeline_graph.pipeline_name,
    )


# ---------------------------------------------------------------------------
# Scripted collaborators
# ---------------------------------------------------------------------------


class ScriptedWorld:
    """The collaborators of one test, kept accessible for assertions."""

    def __init__(self, config: PipelineConfig) -> None:
        self.source = ScriptedSource(head="a1b2c3d4")
        self.builder = ScriptedBuild(default_templates(config))
        self.deployer = ScriptedDeployer(default_outputs(config))
        self.invoker = ScriptedInvoker()
        self.notifier = RecordingNotifier()

    def collaborators(self) -> Collaborators:
        return Collaborators(
            source=self.source,
            builder=self.builder,
            deployer=self.deployer,
            invoker=self.invoker,
            notifier=self.notifier,
        )


@pytest.fixture
def world(config: PipelineConfig) -> ScriptedWorld:
    return ScriptedWorld(config)


@pytest.fixture
def make_orchestrator(
    pipeline_graph: PipelineGraph,
    artifact_store: VersionedArtifactStore,
    world: ScriptedWorld,
) -> Callable[..., PipelineOrchestrator]:
    """Factory fixture: an orchestrator over the scripted world.

    Tweak ``world`` before calling the factory to script failures.
    """

    def _factory(**kwargs: Any) -> PipelineOrchestrator:
        return PipelineOrchestrator(
            pipeline_graph, artifact_store, world.collaborators(), **kwargs
        )

    return _factory
