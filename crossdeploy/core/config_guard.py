"""Trust-boundary guard — configuration errors surface before any run exists.

The guard validates a ``PipelineConfig`` once, at assembly time, and fails
hard (raises ``TrustBoundaryError``) listing every violation at once.  A
pipeline must not be creatable with an ambiguous trust boundary.
"""

from __future__ import annotations

import logging

from crossdeploy.core import arns
from crossdeploy.models.config import AccountConfig, PipelineConfig
from crossdeploy.models.outcomes import FailureKind

logger = logging.getLogger(__name__)


class TrustBoundaryError(ValueError):
    """Raised when the configuration cannot produce an unambiguous trust boundary.

    ``violations`` holds one line per problem found.
    """

    kind = FailureKind.CONFIGURATION

    def __init__(self, message: str, violations: list[str] | None = None) -> None:
        super().__init__(message)
        self.violations = list(violations or ())


def _account_violations(label: str, account: AccountConfig) -> list[str]:
    violations: list[str] = []
    for check, value, field in (
        (arns.validate_account_id, account.account_id, "account_id"),
        (arns.validate_region, account.region, "region"),
    ):
        try:
            check(value)
        except arns.ArnConstructionError as exc:
            violations.append(f"{label}.{field}: {exc}")
    if not account.action_role_name:
        violations.append(f"{label}.action_role_name is required")
    if not account.deployment_role_name:
        violations.append(f"{label}.deployment_role_name is required")
    return violations


def enforce_trust_boundary(config: PipelineConfig) -> None:
    """Validate every identifier the trust policies and stage graph need.

    Raises
    ------
    TrustBoundaryError
        If any identifier is missing or malformed.
    """
    violations: list[str] = []

    violations.extend(_account_violations("dev", config.dev))
    violations.extend(_account_violations("prod", config.prod))

    for field in (
        "repository_name",
        "branch",
        "artifact_bucket_name",
        "kms_key_id",
        "application_stack_name",
        "integ_test_stack_name",
        "state_machine_name",
        "application_namespace",
        "integ_test_namespace",
    ):
        if not getattr(config, field):
            violations.append(f"{field} is required")

    if "*" in config.artifact_bucket_name or "*" in config.kms_key_id:
        violations.append("artifact bucket and key id must be concrete names")

    for label, account in (("dev", config.dev), ("prod", config.prod)):
        for field in ("action_role_name", "deployment_role_name"):
            role_name = getattr(account, field)
            for stack in (config.application_stack_name, config.integ_test_stack_name):
                if stack and role_name.startswith(f"{stack}-"):
                    violations.append(
                        f"{label}.{field} {role_name!r} falls under the IAM resources "
                        f"of stack {stack}"
                    )

    if not config.published_outputs:
        violations.append("published_outputs must name at least one stack output")

    if config.approval_timeout_minutes <= 0:
        violations.append("approval_timeout_minutes must be positive")

    if violations:
        msg = "Pipeline trust boundary is ambiguous.\n" + "\n".join(
            f"  - {v}" for v in violations
        )
        logger.error(msg)
        raise TrustBoundaryError(msg, violations)

    if config.dev.account_id == config.prod.account_id:
        logger.warning(
            "Dev and prod share account %s; promotion is not cross-account.",
            config.dev.account_id,
        )
