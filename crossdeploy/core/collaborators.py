"""External collaborators of the orchestrator.

The orchestrator never talks to a source host, build service, stack engine,
workflow engine or notification channel directly.  It calls these Protocols;
``crossdeploy.core.scripted`` provides in-process implementations and real
backends can be dropped in without touching the orchestrator.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from crossdeploy.core.build_spec import BuildStageDefinition
from crossdeploy.models.outcomes import (
    ApprovalRequest,
    BuildReport,
    DeployRequest,
    DeployResult,
    InvokeResult,
    SourceRevision,
)

# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class SourceProvider(Protocol):
    """Fetches a commit of the watched repository."""

    def fetch(
        self, repository: str, branch: str, commit_id: str | None = None
    ) -> SourceRevision:
        """Return the files at ``commit_id``, or at the branch head when None."""
        ...


@runtime_checkable
class BuildRunner(Protocol):
    """Runs the build phases over a source tree.

    Implementations report phase exit codes, the files left in the output
    directory and per-template scan results.  Deciding pass/fail is the
    orchestrator's job, via ``BuildStageDefinition.evaluate``.
    """

    def run(
        self, definition: BuildStageDefinition, source_files: dict[str, bytes]
    ) -> BuildReport:
        ...


@runtime_checkable
class StackDeployer(Protocol):
    """Creates or updates one stack in one account."""

    def deploy(self, request: DeployRequest) -> DeployResult:
        ...


@runtime_checkable
class StateMachineInvoker(Protocol):
    """Starts a workflow execution and waits for its terminal status."""

    def start_execution(self, state_machine_arn: str, input_json: str) -> InvokeResult:
        ...


@runtime_checkable
class ApprovalNotifier(Protocol):
    """Delivers a pending manual gate to whoever decides it."""

    def request(self, approval: ApprovalRequest) -> None:
        ...


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------


class Collaborators:
    """The five collaborators one orchestrator talks to.

    Parameters
    ----------
    source, builder, deployer, invoker, notifier:
        Objects satisfying the matching Protocol.

    Raises
    ------
    TypeError
        If any argument does not satisfy its Protocol.
    """

    def __init__(
        self,
        *,
        source: SourceProvider,
        builder: BuildRunner,
        deployer: StackDeployer,
        invoker: StateMachineInvoker,
        notifier: ApprovalNotifier,
    ) -> None:
        checks = (
            ("source", source, SourceProvider),
            ("builder", builder, BuildRunner),
            ("deployer", deployer, StackDeployer),
            ("invoker", invoker, StateMachineInvoker),
            ("notifier", notifier, ApprovalNotifier),
        )
        for label, obj, protocol in checks:
            if not isinstance(obj, protocol):
                raise TypeError(
                    f"{label} must implement {protocol.__name__}, "
                    f"got {type(obj).__name__}"
                )
        self.source = source
        self.builder = builder
        self.deployer = deployer
        self.invoker = invoker
        self.notifier = notifier
