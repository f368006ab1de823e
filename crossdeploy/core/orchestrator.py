"""Pipeline orchestrator — drives a run through the assembled stage graph.

The orchestrator wires the RunLedger, StageMachine, PrerequisiteGraph,
VersionedArtifactStore and the run's variable namespaces into one execution
engine.  Actual work is delegated to the collaborators; the orchestrator only
decides what runs next and records what happened.

Run-time failures never escape to the caller: they are logged, recorded in
the ledger and surfaced through ``report()``.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

from crossdeploy.core.artifact_store import VersionedArtifactStore
from crossdeploy.core.build_spec import BuildStageDefinition
from crossdeploy.core.collaborators import Collaborators
from crossdeploy.core.hasher import action_digest
from crossdeploy.core.prerequisite_graph import PrerequisiteGraph
from crossdeploy.core.run_ledger import RunLedger
from crossdeploy.core.stage_machine import StageMachine
from crossdeploy.core.variables import VariableNamespaces
from crossdeploy.models.artifacts import Artifact
from crossdeploy.models.ledger import LedgerEntry
from crossdeploy.models.outcomes import (
    ActionOutcome,
    ApprovalRequest,
    DeployRequest,
    FailureInfo,
    FailureKind,
    PushEvent,
    RunReport,
)
from crossdeploy.models.stages import (
    ActionDefinition,
    ActionKind,
    PipelineGraph,
    RunStatus,
    StageDefinition,
    StageState,
)

logger = logging.getLogger(__name__)

FAILURE_KINDS: dict[ActionKind, FailureKind] = {
    ActionKind.SOURCE: FailureKind.SOURCE,
    ActionKind.BUILD: FailureKind.BUILD_GATE,
    ActionKind.DEPLOY: FailureKind.DEPLOYMENT,
    ActionKind.INVOKE: FailureKind.TEST_GATE,
    ActionKind.APPROVAL: FailureKind.APPROVAL,
}

# Outcome of running (part of) a stage.
_SUCCEEDED = "succeeded"
_FAILED = "failed"
_WAITING = "waiting"


def _timeout_reason(request: ApprovalRequest) -> str:
    minutes = int((request.expires_at - request.requested_at).total_seconds() // 60)
    return f"approval timed out after {minutes} minutes"


class ApprovalNotPendingError(RuntimeError):
    """Raised when approving or rejecting a run that is not waiting on a gate."""


class UnknownRunError(KeyError):
    """Raised for a run id this orchestrator never started."""


class _Run:
    """Mutable per-run bookkeeping; only the orchestrator touches it."""

    def __init__(self, run_id: str, commit_id: str | None) -> None:
        self.run_id = run_id
        self.commit_id = commit_id or ""
        self.status = RunStatus.PENDING
        self.variables = VariableNamespaces()
        self.artifacts: dict[str, Artifact] = {}
        self.failure: FailureInfo | None = None
        self.pending_approval: ApprovalRequest | None = None


class PipelineOrchestrator:
    """Executes runs of one assembled pipeline.

    Parameters
    ----------
    graph:
        The validated stage graph from ``StageGraphAssembler``.
    store:
        Artifact store; must be bound to ``graph.key_arn``.
    collaborators:
        Source, build, deploy, invoke and approval backends.
    ledger:
        Run ledger to record into.  A fresh one is created if omitted.
    build_definition:
        How the build stage evaluates its report.
    max_parallel_actions:
        Upper bound on concurrently executing actions of one run-order group.
    clock:
        Returns the current UTC time; approval deadlines are measured against it.
    """

    def __init__(
        self,
        graph: PipelineGraph,
        store: VersionedArtifactStore,
        collaborators: Collaborators,
        *,
        ledger: RunLedger | None = None,
        build_definition: BuildStageDefinition | None = None,
        max_parallel_actions: int = 4,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        store.ensure_key(graph.key_arn)
        if max_parallel_actions < 1:
            raise ValueError("max_parallel_actions must be at least 1")

        self.graph = graph
        self.store = store
        self.collaborators = collaborators
        self.ledger = ledger or RunLedger()
        self.prerequisites = PrerequisiteGraph(graph.stages)
        self.stage_machine = StageMachine(self.ledger, self.prerequisites)
        self.build_definition = build_definition or BuildStageDefinition()
        self.max_parallel_actions = max_parallel_actions
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._runs: dict[str, _Run] = {}
        # Serializes public run mutations (start, approve, reject, expire).
        self._lock = threading.RLock()
        # Guards stage machine and run bookkeeping across worker threads.
        self._state_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def handle_push(self, event: PushEvent) -> RunReport | None:
        """Start a run for a push to the watched repository and branch.

        Pushes anywhere else are ignored and return None.
        """
        if event.repository != self.graph.repository or event.branch != self.graph.branch:
            logger.info(
                "Ignoring push to %s@%s (watching %s@%s)",
                event.repository,
                event.branch,
                self.graph.repository,
                self.graph.branch,
            )
            return None
        return self.start_run(event.commit_id)

    def start_run(self, commit_id: str | None = None) -> RunReport:
        """Create a run and execute it until it completes, stops or waits on approval."""
        ts = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
        run_id = f"xd-{ts}-{uuid.uuid4().hex[:6]}"

        with self._lock:
            run = _Run(run_id, commit_id)
            self._runs[run_id] = run
            self.stage_machine.initialize_run(run_id)
            run.status = RunStatus.RUNNING
            logger.info(
                "Started run %s of %s (commit %s)",
                run_id,
                self.graph.pipeline_name,
                commit_id or "HEAD",
            )
            self._advance(run)
        return self.report(run_id)

    # ------------------------------------------------------------------
    # Approval gate
    # ------------------------------------------------------------------

    def approve(self, run_id: str, approver: str = "", comment: str = "") -> RunReport:
        """Pass the pending approval gate and continue the run.

        An approval that arrives after the deadline stops the run instead.
        """
        with self._lock:
            run = self._get(run_id)
            request = self._pending(run)
            if self._expired(request):
                self._stop_at_gate(run, _timeout_reason(request))
                return self.report(run_id)
            stage = self.graph.stage(request.stage)
            action = stage.action(request.action)

            reason = f"approved by {approver or 'unknown'}"
            if comment:
                reason += f": {comment}"
            with self._state_lock:
                self.stage_machine.transition_action(
                    run_id, stage.name, action.name, StageState.SUCCEEDED, reason=reason
                )
                run.pending_approval = None
            logger.info("Run %s: %s/%s %s", run_id, stage.name, action.name, reason)

            result = self._run_stage(run, stage, resume_after=action.run_order)
            if result == _SUCCEEDED:
                self._advance(run)
        return self.report(run_id)

    def reject(self, run_id: str, approver: str = "", reason: str = "") -> RunReport:
        """Refuse the pending approval gate; the run stops."""
        with self._lock:
            run = self._get(run_id)
            request = self._pending(run)
            if self._expired(request):
                message = _timeout_reason(request)
            else:
                message = f"rejected by {approver or 'unknown'}"
                if reason:
                    message += f": {reason}"
            self._stop_at_gate(run, message)
        return self.report(run_id)

    def expire_approvals(self, now: datetime | None = None) -> list[str]:
        """Stop every run whose approval deadline has passed.  Returns their ids."""
        expired: list[str] = []
        with self._lock:
            for run in self._runs.values():
                request = run.pending_approval
                if request is None or not self._expired(request, now):
                    continue
                self._stop_at_gate(run, _timeout_reason(request))
                expired.append(run.run_id)
        return expired

    def _expired(self, request: ApprovalRequest, now: datetime | None = None) -> bool:
        return (now or self._clock()) >= request.expires_at

    def _pending(self, run: _Run) -> ApprovalRequest:
        if run.pending_approval is None:
            raise ApprovalNotPendingError(f"Run {run.run_id} is not waiting for approval")
        return run.pending_approval

    def _stop_at_gate(self, run: _Run, reason: str) -> None:
        request = self._pending(run)
        with self._state_lock:
            self.stage_machine.transition_action(
                run.run_id, request.stage, request.action, StageState.FAILED, reason=reason
            )
            run.pending_approval = None
        self._fail_stage(
            run,
            self.graph.stage(request.stage),
            FailureInfo(
                stage=request.stage,
                action=request.action,
                kind=FailureKind.APPROVAL,
                reason=reason,
            ),
        )

    # ------------------------------------------------------------------
    # Stage execution
    # ------------------------------------------------------------------

    def _advance(self, run: _Run) -> None:
        """Run pending stages in order until the run completes, stops or waits."""
        for stage_id in self.prerequisites.stage_ids:
            state = self.stage_machine.get_current_state(run.run_id, stage_id)
            if state == StageState.SUCCEEDED:
                continue
            if state != StageState.PENDING:
                return
            result = self._run_stage(run, self.graph.stage(stage_id))
            if result != _SUCCEEDED:
                return

        run.status = RunStatus.COMPLETED
        logger.info("Run %s completed", run.run_id)

    def _run_stage(
        self,
        run: _Run,
        stage: StageDefinition,
        *,
        resume_after: int | None = None,
    ) -> str:
        """Execute a stage's run-order groups, starting after ``resume_after``."""
        if resume_after is None:
            with self._state_lock:
                self.stage_machine.transition(run.run_id, stage.name, StageState.RUNNING)
            logger.info("Run %s: stage %s running", run.run_id, stage.name)

        for order, group in stage.run_order_groups():
            if resume_after is not None and order <= resume_after:
                continue

            workers = min(self.max_parallel_actions, len(group))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [
                    pool.submit(self._execute_action, run, stage, action)
                    for action in group
                ]
                outcomes = [f.result() for f in futures]

            for action, outcome in zip(group, outcomes):
                if outcome is not None and not outcome.succeeded:
                    self._fail_stage(
                        run,
                        stage,
                        FailureInfo(
                            stage=stage.name,
                            action=action.name,
                            kind=FAILURE_KINDS[action.kind],
                            reason=outcome.reason,
                        ),
                    )
                    return _FAILED

            if any(outcome is None for outcome in outcomes):
                return _WAITING

        with self._state_lock:
            self.stage_machine.transition(run.run_id, stage.name, StageState.SUCCEEDED)
        logger.info("Run %s: stage %s succeeded", run.run_id, stage.name)
        return _SUCCEEDED

    def _fail_stage(self, run: _Run, stage: StageDefinition, failure: FailureInfo) -> None:
        with self._state_lock:
            # An approval still open beside a failed sibling is withdrawn.
            if run.pending_approval is not None and run.pending_approval.stage == stage.name:
                self.stage_machine.transition_action(
                    run.run_id,
                    stage.name,
                    run.pending_approval.action,
                    StageState.FAILED,
                    reason="withdrawn: stage failed",
                )
                run.pending_approval = None
            self.stage_machine.transition(
                run.run_id, stage.name, StageState.FAILED, reason=failure.reason
            )
            run.failure = failure
            run.status = RunStatus.STOPPED
        logger.error(
            "Run %s stopped at %s/%s (%s): %s",
            run.run_id,
            failure.stage,
            failure.action,
            failure.kind.value,
            failure.reason,
        )

    # ------------------------------------------------------------------
    # Action execution (runs on worker threads)
    # ------------------------------------------------------------------

    def _execute_action(
        self, run: _Run, stage: StageDefinition, action: ActionDefinition
    ) -> ActionOutcome | None:
        """Run one action.  Returns None while an approval is pending."""
        with self._state_lock:
            inputs = {name: run.artifacts[name] for name in action.input_artifacts}
        input_hash = action_digest(
            stage.name,
            action.name,
            "inputs",
            {name: artifact.version_id for name, artifact in inputs.items()},
        )
        with self._state_lock:
            self.stage_machine.transition_action(
                run.run_id, stage.name, action.name, StageState.RUNNING, input_hash=input_hash
            )

        if action.kind == ActionKind.APPROVAL:
            return self._request_approval(run, stage, action)

        handlers = {
            ActionKind.SOURCE: self._run_source,
            ActionKind.BUILD: self._run_build,
            ActionKind.DEPLOY: self._run_deploy,
            ActionKind.INVOKE: self._run_invoke,
        }
        refs: list[str] = []
        try:
            outcome = handlers[action.kind](run, action, inputs)
            if outcome.succeeded:
                refs = self._record_results(run, stage, action, outcome)
        except Exception as exc:
            logger.exception("Run %s: %s/%s raised", run.run_id, stage.name, action.name)
            outcome = ActionOutcome.failure(f"{type(exc).__name__}: {exc}")

        output_hash = action_digest(
            stage.name,
            action.name,
            "outputs",
            {"succeeded": outcome.succeeded, "reason": outcome.reason, "outputs": outcome.outputs},
        )
        with self._state_lock:
            self.stage_machine.transition_action(
                run.run_id,
                stage.name,
                action.name,
                StageState.SUCCEEDED if outcome.succeeded else StageState.FAILED,
                reason=outcome.reason,
                input_hash=input_hash,
                output_hash=output_hash,
                artifact_references=refs,
            )
        return outcome

    def _record_results(
        self,
        run: _Run,
        stage: StageDefinition,
        action: ActionDefinition,
        outcome: ActionOutcome,
    ) -> list[str]:
        """Store output artifacts and publish variables of a successful action."""
        refs: list[str] = []
        for name in action.output_artifacts:
            artifact = self.store.put(
                name, outcome.files, producing_stage=stage.name, run_id=run.run_id
            )
            with self._state_lock:
                run.artifacts[name] = artifact
            refs.append(artifact.location)
        if action.variables_namespace:
            run.variables.publish(action.variables_namespace, outcome.outputs)
        return refs

    def _run_source(
        self, run: _Run, action: ActionDefinition, inputs: dict[str, Artifact]
    ) -> ActionOutcome:
        revision = self.collaborators.source.fetch(
            action.repository, action.branch, run.commit_id or None
        )
        run.commit_id = revision.commit_id
        return ActionOutcome(succeeded=True, files=revision.files)

    def _run_build(
        self, run: _Run, action: ActionDefinition, inputs: dict[str, Artifact]
    ) -> ActionOutcome:
        source_files: dict[str, bytes] = {}
        for artifact in inputs.values():
            source_files.update(self.store.read_files(artifact))
        report = self.collaborators.builder.run(self.build_definition, source_files)
        return self.build_definition.evaluate(report)

    def _run_deploy(
        self, run: _Run, action: ActionDefinition, inputs: dict[str, Artifact]
    ) -> ActionOutcome:
        artifact = next(
            (a for a in inputs.values() if action.template_file in a.files), None
        )
        if artifact is None:
            return ActionOutcome.failure(
                f"template {action.template_file} is not in "
                f"{', '.join(action.input_artifacts)}"
            )

        request = DeployRequest(
            stack_name=action.stack_name,
            template_file=action.template_file,
            template_body=self.store.get_file(artifact, action.template_file),
            account_id=action.account_id,
            region=action.region,
            role_arn=action.role_arn,
            deployment_role_arn=action.deployment_role_arn,
            capabilities=action.capabilities,
        )
        result = self.collaborators.deployer.deploy(request)
        if not result.succeeded:
            return ActionOutcome.failure(
                result.reason or f"deployment of {action.stack_name} failed",
                stack_id=result.stack_id,
            )

        missing = [key for key in action.published_outputs if key not in result.outputs]
        if missing:
            return ActionOutcome.failure(
                f"{action.stack_name} did not return outputs: {', '.join(missing)}",
                stack_id=result.stack_id,
            )
        logger.info(
            "Run %s: deployed %s to %s/%s",
            run.run_id,
            action.stack_name,
            action.account_id,
            action.region,
        )
        return ActionOutcome(
            succeeded=True,
            outputs=dict(result.outputs),
            details={"stack_id": result.stack_id},
        )

    def _run_invoke(
        self, run: _Run, action: ActionDefinition, inputs: dict[str, Artifact]
    ) -> ActionOutcome:
        payload = run.variables.resolve(action.invoke_input)
        result = self.collaborators.invoker.start_execution(
            action.state_machine_arn, json.dumps(payload, sort_keys=True)
        )
        if not result.succeeded:
            return ActionOutcome.failure(
                result.reason or f"execution ended {result.status or 'unsuccessfully'}",
                execution_arn=result.execution_arn,
                status=result.status,
            )
        return ActionOutcome(
            succeeded=True,
            details={"execution_arn": result.execution_arn, "status": result.status},
        )

    def _request_approval(
        self, run: _Run, stage: StageDefinition, action: ActionDefinition
    ) -> ActionOutcome | None:
        now = self._clock()
        request = ApprovalRequest(
            run_id=run.run_id,
            stage=stage.name,
            action=action.name,
            requested_at=now,
            expires_at=now + timedelta(minutes=action.approval_timeout_minutes),
        )
        try:
            self.collaborators.notifier.request(request)
        except Exception as exc:
            logger.exception("Run %s: approval notification failed", run.run_id)
            outcome = ActionOutcome.failure(f"approval request not delivered: {exc}")
            with self._state_lock:
                self.stage_machine.transition_action(
                    run.run_id,
                    stage.name,
                    action.name,
                    StageState.FAILED,
                    reason=outcome.reason,
                )
            return outcome

        with self._state_lock:
            run.pending_approval = request
        logger.info(
            "Run %s waiting for approval at %s/%s until %s",
            run.run_id,
            stage.name,
            action.name,
            request.expires_at.isoformat(),
        )
        return None

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def _get(self, run_id: str) -> _Run:
        try:
            return self._runs[run_id]
        except KeyError:
            raise UnknownRunError(run_id) from None

    @property
    def run_ids(self) -> list[str]:
        """Run ids in start order."""
        return list(self._runs)

    def report(self, run_id: str) -> RunReport:
        """Point-in-time report of a run."""
        run = self._get(run_id)
        with self._state_lock:
            stage_states = self.stage_machine.get_all_states(run_id)
            action_states = self.stage_machine.get_all_action_states(run_id)
            running = [
                sid for sid in self.prerequisites.stage_ids
                if stage_states.get(sid) == StageState.RUNNING
            ]
            return RunReport(
                run_id=run_id,
                status=run.status,
                commit_id=run.commit_id,
                current_stage=running[0] if running else (
                    run.failure.stage if run.failure else None
                ),
                stage_states=stage_states,
                action_states=action_states,
                failure=run.failure,
                pending_approval=run.pending_approval,
                artifacts={name: a.version_id for name, a in run.artifacts.items()},
                variables=run.variables.snapshot(),
            )

    def get_run_entries(self, run_id: str) -> list[LedgerEntry]:
        self._get(run_id)
        return self.ledger.get_run_entries(run_id)

    def verify_chain(self, run_id: str) -> bool:
        """Verify the hash chain of one run's ledger."""
        return self.ledger.verify_chain(run_id)
