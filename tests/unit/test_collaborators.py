"""Tests for collaborator protocols and the scripted implementations."""

from __future__ import annotations

import pytest

from crossdeploy.core.build_spec import BuildStageDefinition
from crossdeploy.core.collaborators import Collaborators, SourceProvider, StackDeployer
from crossdeploy.core.scripted import (
    RecordingNotifier,
    ScriptedBuild,
    ScriptedDeployer,
    ScriptedInvoker,
    ScriptedSource,
    default_outputs,
    default_templates,
    scripted_collaborators,
)
from crossdeploy.models.outcomes import DeployRequest


def _request(stack: str = "KinesisApplicationStack", account: str = "111111111111") -> DeployRequest:
    return DeployRequest(
        stack_name=stack,
        template_file="ApplicationStack.template.json",
        template_body=b"{}",
        account_id=account,
        region="us-east-1",
    )


class TestCollaboratorsBundle:
    def test_scripted_objects_satisfy_protocols(self):
        assert isinstance(ScriptedSource(), SourceProvider)
        assert isinstance(ScriptedDeployer(), StackDeployer)

    def test_rejects_non_conforming_collaborator(self):
        with pytest.raises(TypeError, match="deployer must implement StackDeployer"):
            Collaborators(
                source=ScriptedSource(),
                builder=ScriptedBuild({}),
                deployer=object(),
                invoker=ScriptedInvoker(),
                notifier=RecordingNotifier(),
            )

    def test_scripted_collaborators_factory(self, config):
        collaborators = scripted_collaborators(config, fail_test=True)
        result = collaborators.invoker.start_execution("arn:aws:states:x:1:stateMachine:M", "{}")
        assert result.succeeded is False


class TestScriptedSource:
    def test_returns_requested_commit(self):
        source = ScriptedSource(head="head")
        revision = source.fetch("repo", "main", "abc")
        assert revision.commit_id == "abc"
        assert source.calls == [("repo", "main", "abc")]

    def test_defaults_to_head(self):
        assert ScriptedSource(head="head").fetch("repo", "main").commit_id == "head"

    def test_error(self):
        with pytest.raises(RuntimeError, match="gone"):
            ScriptedSource(error="gone").fetch("repo", "main")


class TestScriptedBuild:
    def test_produces_metadata_alongside_templates(self, config):
        build = ScriptedBuild(default_templates(config))
        report = build.run(BuildStageDefinition(), {})
        assert "manifest.json" in report.produced_files
        assert set(report.scan_results) == {
            "ApplicationStack.template.json",
            "IntegTestSfnStack.template.json",
        }
        assert all(report.scan_results.values())

    def test_failing_scan(self, config):
        build = ScriptedBuild(
            default_templates(config),
            failing_scans={"IntegTestSfnStack.template.json": ["F3: IAM policy wildcard"]},
        )
        report = build.run(BuildStageDefinition(), {})
        assert report.scan_results["IntegTestSfnStack.template.json"] is False
        assert report.scan_findings == {
            "IntegTestSfnStack.template.json": ["F3: IAM policy wildcard"]
        }


class TestScriptedDeployer:
    def test_returns_outputs(self, config):
        deployer = ScriptedDeployer(default_outputs(config))
        result = deployer.deploy(_request())
        assert result.succeeded
        assert set(result.outputs) == {"KinesisInputStreamName", "FirehoseOutputBucket"}
        assert result.stack_id.startswith(
            "arn:aws:cloudformation:us-east-1:111111111111:stack/KinesisApplicationStack/"
        )

    def test_account_scoped_failure(self):
        deployer = ScriptedDeployer(failures={"222222222222/KinesisApplicationStack": "denied"})
        assert deployer.deploy(_request()).succeeded
        result = deployer.deploy(_request(account="222222222222"))
        assert result.succeeded is False
        assert result.reason == "denied"
        assert deployer.deployed_to("222222222222") == ["KinesisApplicationStack"]


class TestScriptedInvoker:
    def test_execution_arn(self):
        result = ScriptedInvoker().start_execution(
            "arn:aws:states:us-east-1:111111111111:stateMachine:Sfn", "{}"
        )
        assert result.status == "SUCCEEDED"
        assert result.execution_arn.startswith(
            "arn:aws:states:us-east-1:111111111111:execution:Sfn:"
        )

    def test_failure_reason(self):
        result = ScriptedInvoker(succeed=False, reason="Timeout").start_execution("arn", "{}")
        assert result.status == "FAILED"
        assert result.reason == "Timeout"
