"""In-process collaborators with scripted behaviour.

Used by ``crossdeploy trigger`` to walk a pipeline locally and by the test
suite.  Every collaborator records the calls it receives.
"""

from __future__ import annotations

import json
import logging
import uuid

from crossdeploy.core.build_spec import BuildStageDefinition
from crossdeploy.core.collaborators import Collaborators
from crossdeploy.models.config import PipelineConfig
from crossdeploy.models.outcomes import (
    ApprovalRequest,
    BuildPhase,
    BuildReport,
    DeployRequest,
    DeployResult,
    InvokeResult,
    SourceRevision,
)

logger = logging.getLogger(__name__)


def _template(description: str) -> bytes:
    return json.dumps(
        {"Description": description, "Resources": {}}, sort_keys=True
    ).encode("utf-8")


class ScriptedSource:
    """Serves a fixed file tree for any commit.

    Parameters
    ----------
    files:
        The working tree to return.
    head:
        Commit id returned when the caller does not ask for one.
    error:
        When set, every fetch raises ``RuntimeError(error)``.
    """

    def __init__(
        self,
        files: dict[str, bytes] | None = None,
        *,
        head: str = "0000000000000000000000000000000000000000",
        error: str | None = None,
    ) -> None:
        self.files = files if files is not None else {
            "cdk.json": b'{"app": "npx ts-node bin/app.ts"}',
            "package.json": b'{"name": "kinesis-application"}',
        }
        self.head = head
        self.error = error
        self.calls: list[tuple[str, str, str | None]] = []

    def fetch(
        self, repository: str, branch: str, commit_id: str | None = None
    ) -> SourceRevision:
        self.calls.append((repository, branch, commit_id))
        if self.error:
            raise RuntimeError(self.error)
        return SourceRevision(commit_id=commit_id or self.head, files=dict(self.files))


class ScriptedBuild:
    """Pretends to install, synthesize and scan.

    Parameters
    ----------
    templates:
        Template files the synth step "produces".
    failing_scans:
        Template name -> scanner findings for templates that fail the scan.
    phase_exit_codes:
        Non-zero codes to report for individual phases.
    """

    def __init__(
        self,
        templates: dict[str, bytes],
        *,
        failing_scans: dict[str, list[str]] | None = None,
        phase_exit_codes: dict[BuildPhase, int] | None = None,
    ) -> None:
        self.templates = dict(templates)
        self.failing_scans = dict(failing_scans or {})
        self.phase_exit_codes = dict(phase_exit_codes or {})
        self.calls: list[dict[str, bytes]] = []

    def run(
        self, definition: BuildStageDefinition, source_files: dict[str, bytes]
    ) -> BuildReport:
        self.calls.append(dict(source_files))
        produced = dict(self.templates)
        # synth also leaves its cloud assembly metadata in the output dir
        produced["manifest.json"] = b"{}"
        produced["tree.json"] = b"{}"
        scanned = definition.select_templates(produced)
        return BuildReport(
            phase_exit_codes={phase: self.phase_exit_codes.get(phase, 0) for phase in BuildPhase},
            produced_files=produced,
            scan_results={name: name not in self.failing_scans for name in scanned},
            scan_findings={
                name: findings
                for name, findings in self.failing_scans.items()
                if name in scanned
            },
        )


class ScriptedDeployer:
    """Accepts every deploy unless told otherwise.

    Parameters
    ----------
    outputs:
        Stack name -> outputs returned on success.
    failures:
        ``"<stack>"`` or ``"<account>/<stack>"`` -> failure reason.
    """

    def __init__(
        self,
        outputs: dict[str, dict[str, str]] | None = None,
        *,
        failures: dict[str, str] | None = None,
    ) -> None:
        self.outputs = outputs or {}
        self.failures = failures or {}
        self.requests: list[DeployRequest] = []

    def deploy(self, request: DeployRequest) -> DeployResult:
        self.requests.append(request)
        for key in (f"{request.account_id}/{request.stack_name}", request.stack_name):
            if key in self.failures:
                return DeployResult(succeeded=False, reason=self.failures[key])
        stack_id = (
            f"arn:aws:cloudformation:{request.region}:{request.account_id}:"
            f"stack/{request.stack_name}/{uuid.uuid4()}"
        )
        return DeployResult(
            succeeded=True,
            stack_id=stack_id,
            outputs=dict(self.outputs.get(request.stack_name, {})),
        )

    def deployed_to(self, account_id: str) -> list[str]:
        """Stack names deployed into one account, in call order."""
        return [r.stack_name for r in self.requests if r.account_id == account_id]


class ScriptedInvoker:
    """Runs the integration test workflow and returns a fixed verdict."""

    def __init__(self, *, succeed: bool = True, reason: str = "States.TaskFailed") -> None:
        self.succeed = succeed
        self.reason = reason
        self.calls: list[tuple[str, str]] = []

    def start_execution(self, state_machine_arn: str, input_json: str) -> InvokeResult:
        self.calls.append((state_machine_arn, input_json))
        execution_arn = (
            state_machine_arn.replace(":stateMachine:", ":execution:")
            + f":{uuid.uuid4().hex[:12]}"
        )
        if self.succeed:
            return InvokeResult(succeeded=True, execution_arn=execution_arn, status="SUCCEEDED")
        return InvokeResult(
            succeeded=False,
            execution_arn=execution_arn,
            status="FAILED",
            reason=self.reason,
        )


class RecordingNotifier:
    """Keeps approval requests for the caller to decide."""

    def __init__(self) -> None:
        self.requests: list[ApprovalRequest] = []

    def request(self, approval: ApprovalRequest) -> None:
        logger.info(
            "Approval requested for run %s (%s/%s), expires %s",
            approval.run_id,
            approval.stage,
            approval.action,
            approval.expires_at.isoformat(),
        )
        self.requests.append(approval)


def default_templates(config: PipelineConfig) -> dict[str, bytes]:
    """The two templates a clean synth of the application produces."""
    return {
        config.application_template: _template(config.application_stack_name),
        config.integ_test_template: _template(config.integ_test_stack_name),
    }


def default_outputs(config: PipelineConfig) -> dict[str, dict[str, str]]:
    """Outputs of the application stack, one value per published output."""
    stack = config.application_stack_name
    return {stack: {key: f"{stack.lower()}-{key.lower()}" for key in config.published_outputs}}


def scripted_collaborators(
    config: PipelineConfig,
    *,
    fail_scan: bool = False,
    fail_test: bool = False,
) -> Collaborators:
    """A full set of scripted collaborators for one pipeline config.

    ``fail_scan`` makes the application template fail the security scan;
    ``fail_test`` makes the integration test workflow fail.
    """
    failing = (
        {config.application_template: ["W28: resource found with an explicit name"]}
        if fail_scan
        else {}
    )
    return Collaborators(
        source=ScriptedSource(),
        builder=ScriptedBuild(default_templates(config), failing_scans=failing),
        deployer=ScriptedDeployer(default_outputs(config)),
        invoker=ScriptedInvoker(succeed=not fail_test),
        notifier=RecordingNotifier(),
    )
