"""Stage Graph Assembler — the fixed six-stage release pipeline.

::

    Source -> Build -> Deploy_to_Dev -> Integration_Test -> Manual_Approve -> Deploy_to_Prod

Promotion to production sits behind both an automated check (the
integration-test invoke) and a human checkpoint (manual approval).  The
assembler refuses to emit any graph in which a path into ``Deploy_to_Prod``
skips either one.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from crossdeploy.core import arns
from crossdeploy.core.config_guard import enforce_trust_boundary
from crossdeploy.core.prerequisite_graph import PrerequisiteGraph
from crossdeploy.core.trust_policy import TrustPolicyBuilder
from crossdeploy.models.config import PipelineConfig
from crossdeploy.models.iam import DeploymentCapability
from crossdeploy.models.stages import (
    ActionDefinition,
    ActionKind,
    PipelineGraph,
    StageDefinition,
)

logger = logging.getLogger(__name__)

SOURCE_STAGE = "Source"
BUILD_STAGE = "Build"
DEPLOY_DEV_STAGE = "Deploy_to_Dev"
INTEGRATION_TEST_STAGE = "Integration_Test"
MANUAL_APPROVE_STAGE = "Manual_Approve"
DEPLOY_PROD_STAGE = "Deploy_to_Prod"

STAGE_ORDER: tuple[str, ...] = (
    SOURCE_STAGE,
    BUILD_STAGE,
    DEPLOY_DEV_STAGE,
    INTEGRATION_TEST_STAGE,
    MANUAL_APPROVE_STAGE,
    DEPLOY_PROD_STAGE,
)

STACK_CAPABILITIES: tuple[str, ...] = ("CAPABILITY_IAM", "CAPABILITY_NAMED_IAM")

VARIABLE_REF_RE = re.compile(r"#\{([A-Za-z0-9_@\-]+)\.([A-Za-z0-9_@\-]+)\}")


class GraphValidationError(ValueError):
    """Raised when an assembled graph is internally inconsistent."""


class GateBypassError(GraphValidationError):
    """Raised when a path into production skips a required gate."""


def variable_ref(namespace: str, key: str) -> str:
    """Reference syntax for a published output: ``#{Namespace.Key}``."""
    return f"#{{{namespace}.{key}}}"


class StageGraphAssembler:
    """Wires a ``PipelineConfig`` into a validated ``PipelineGraph``.

    Assembly is a pure function of the config: the same config always gives
    an equal graph with an equal fingerprint.
    """

    def __init__(self, config: PipelineConfig) -> None:
        enforce_trust_boundary(config)
        self.config = config
        self.trust = TrustPolicyBuilder(config)
        self.dev_capability = self.trust.capability(config.dev)
        self.prod_capability = self.trust.capability(config.prod)

    def assemble(self) -> PipelineGraph:
        cfg = self.config
        stages = (
            self._source_stage(),
            self._build_stage(),
            self._deploy_dev_stage(),
            self._integration_test_stage(),
            self._manual_approve_stage(),
            self._deploy_prod_stage(),
        )
        graph = PipelineGraph(
            pipeline_name=cfg.pipeline_name,
            repository=cfg.repository_name,
            branch=cfg.branch,
            artifact_bucket=cfg.artifact_bucket_name,
            key_arn=self.trust.key_arn,
            stages=stages,
        )
        validate_graph(graph)
        logger.info(
            "Assembled pipeline %s (%d stages, fingerprint %s)",
            graph.pipeline_name,
            len(graph.stages),
            graph.fingerprint(),
        )
        return graph

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _stage(
        self,
        ordinal: int,
        actions: tuple[ActionDefinition, ...],
        *,
        is_gate: bool = False,
    ) -> StageDefinition:
        name = STAGE_ORDER[ordinal]
        prerequisites = (STAGE_ORDER[ordinal - 1],) if ordinal else ()
        return StageDefinition(
            name=name,
            ordinal=ordinal,
            actions=actions,
            prerequisites=prerequisites,
            is_gate=is_gate,
        )

    def _deploy_action(
        self,
        name: str,
        capability: DeploymentCapability,
        *,
        stack_name: str,
        template: str,
        run_order: int = 1,
        namespace: str | None = None,
        published_outputs: tuple[str, ...] = (),
    ) -> ActionDefinition:
        return ActionDefinition(
            name=name,
            kind=ActionKind.DEPLOY,
            run_order=run_order,
            input_artifacts=(self.config.build_output_name,),
            role_arn=capability.action_role.arn,
            deployment_role_arn=capability.deployment_role.arn,
            account_id=capability.account_id,
            region=capability.region,
            stack_name=stack_name,
            template_file=template,
            capabilities=STACK_CAPABILITIES,
            variables_namespace=namespace,
            published_outputs=published_outputs,
        )

    def _source_stage(self) -> StageDefinition:
        cfg = self.config
        return self._stage(
            0,
            (
                ActionDefinition(
                    name="CodeCommit_Source",
                    kind=ActionKind.SOURCE,
                    output_artifacts=(cfg.source_output_name,),
                    repository=cfg.repository_name,
                    branch=cfg.branch,
                    account_id=cfg.dev.account_id,
                    region=cfg.dev.region,
                ),
            ),
        )

    def _build_stage(self) -> StageDefinition:
        cfg = self.config
        return self._stage(
            1,
            (
                ActionDefinition(
                    name="CDK_Synth",
                    kind=ActionKind.BUILD,
                    input_artifacts=(cfg.source_output_name,),
                    output_artifacts=(cfg.build_output_name,),
                    account_id=cfg.dev.account_id,
                    region=cfg.dev.region,
                ),
            ),
            is_gate=True,
        )

    def _deploy_dev_stage(self) -> StageDefinition:
        cfg = self.config
        return self._stage(
            2,
            (
                self._deploy_action(
                    "Deploy_Application",
                    self.dev_capability,
                    stack_name=cfg.application_stack_name,
                    template=cfg.application_template,
                    namespace=cfg.application_namespace,
                    published_outputs=cfg.published_outputs,
                ),
            ),
        )

    def invoke_input(self) -> dict[str, Any]:
        """The test workflow input: published outputs by reference plus two literals."""
        cfg = self.config
        payload: dict[str, Any] = {
            key: variable_ref(cfg.application_namespace, key)
            for key in cfg.published_outputs
        }
        payload["waitSeconds"] = cfg.wait_seconds
        payload["record_count"] = cfg.record_count
        return payload

    def _integration_test_stage(self) -> StageDefinition:
        cfg = self.config
        return self._stage(
            3,
            (
                self._deploy_action(
                    "Deploy_Integration_Test_StateMachine",
                    self.dev_capability,
                    stack_name=cfg.integ_test_stack_name,
                    template=cfg.integ_test_template,
                    run_order=1,
                    namespace=cfg.integ_test_namespace,
                ),
                ActionDefinition(
                    name="Invoke_StateMachine",
                    kind=ActionKind.INVOKE,
                    run_order=2,
                    account_id=cfg.dev.account_id,
                    region=cfg.dev.region,
                    state_machine_arn=arns.state_machine_arn(
                        cfg.dev.region, cfg.dev.account_id, cfg.state_machine_name
                    ),
                    invoke_input=self.invoke_input(),
                ),
            ),
            is_gate=True,
        )

    def _manual_approve_stage(self) -> StageDefinition:
        return self._stage(
            4,
            (
                ActionDefinition(
                    name="Approve_Promotion",
                    kind=ActionKind.APPROVAL,
                    approval_timeout_minutes=self.config.approval_timeout_minutes,
                ),
            ),
            is_gate=True,
        )

    def _deploy_prod_stage(self) -> StageDefinition:
        cfg = self.config
        return self._stage(
            5,
            (
                self._deploy_action(
                    "Deploy_Application_Prod",
                    self.prod_capability,
                    stack_name=cfg.application_stack_name,
                    template=cfg.application_template,
                ),
            ),
        )


def assemble_pipeline(config: PipelineConfig) -> PipelineGraph:
    """Shorthand for ``StageGraphAssembler(config).assemble()``."""
    return StageGraphAssembler(config).assemble()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _iter_refs(value: Any):
    if isinstance(value, str):
        yield from VARIABLE_REF_RE.findall(value)
    elif isinstance(value, dict):
        for item in value.values():
            yield from _iter_refs(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from _iter_refs(item)


def validate_graph(graph: PipelineGraph) -> None:
    """Check artifact wiring, variable references and promotion gates.

    Raises
    ------
    GraphValidationError
        On duplicate names, dangling artifacts or unresolvable references.
    GateBypassError
        If production is reachable without both gates.
    """
    stage_names = [s.name for s in graph.stages]
    if len(set(stage_names)) != len(stage_names):
        raise GraphValidationError(f"Duplicate stage names in {stage_names}")

    ordered = sorted(graph.stages, key=lambda s: s.ordinal)
    produced: set[str] = set()
    published: dict[str, set[str]] = {}

    for stage in ordered:
        action_names = [a.name for a in stage.actions]
        if not action_names:
            raise GraphValidationError(f"Stage {stage.name} has no actions")
        if len(set(action_names)) != len(action_names):
            raise GraphValidationError(f"Duplicate action names in stage {stage.name}")

        for _, group in stage.run_order_groups():
            for action in group:
                for artifact in action.input_artifacts:
                    if artifact not in produced:
                        raise GraphValidationError(
                            f"{stage.name}/{action.name} consumes {artifact!r} "
                            f"before any earlier action produces it"
                        )
                for namespace, key in _iter_refs(action.invoke_input):
                    if key not in published.get(namespace, set()):
                        raise GraphValidationError(
                            f"{stage.name}/{action.name} references "
                            f"{variable_ref(namespace, key)} which no earlier "
                            f"action publishes"
                        )
            # Same-run-order actions run concurrently, so their outputs only
            # become visible to later groups.
            for action in group:
                produced.update(action.output_artifacts)
                if action.variables_namespace:
                    if action.variables_namespace in published:
                        raise GraphValidationError(
                            f"Namespace {action.variables_namespace!r} is published twice"
                        )
                    published[action.variables_namespace] = set(action.published_outputs)

    validate_promotion_gates(graph)


def validate_promotion_gates(graph: PipelineGraph) -> None:
    """Every path into Deploy_to_Prod must cross Integration_Test and Manual_Approve."""
    try:
        prod = graph.stage(DEPLOY_PROD_STAGE)
        test = graph.stage(INTEGRATION_TEST_STAGE)
        approve = graph.stage(MANUAL_APPROVE_STAGE)
    except KeyError as exc:
        raise GateBypassError(str(exc)) from exc

    if not any(a.kind == ActionKind.INVOKE for a in test.actions):
        raise GateBypassError(f"{test.name} has no invoke action to gate on")
    if not any(a.kind == ActionKind.APPROVAL for a in approve.actions):
        raise GateBypassError(f"{approve.name} has no approval action")

    dag = PrerequisiteGraph(graph.stages)
    for gate in (test, approve):
        if dag.reachable_without(prod.name, gate.name):
            raise GateBypassError(
                f"{prod.name} is reachable without passing {gate.name}"
            )
    if test.ordinal >= approve.ordinal or approve.ordinal >= prod.ordinal:
        raise GateBypassError(
            f"Gates must run in order {test.name} -> {approve.name} -> {prod.name}"
        )
