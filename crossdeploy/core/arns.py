"""ARN construction that refuses to guess.

Every builder validates its components and raises ``ArnConstructionError``
when an account id, region or resource name is missing or malformed.  A
trust boundary built from an ambiguous ARN would be silently wider than
intended, so assembly stops instead.
"""

from __future__ import annotations

import re

PARTITION = "aws"

_ACCOUNT_RE = re.compile(r"^\d{12}$")
_REGION_RE = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d+$")


class ArnConstructionError(ValueError):
    """Raised when an ARN cannot be built unambiguously."""


def _require_account(account_id: str) -> str:
    if not account_id:
        raise ArnConstructionError("Account id is required")
    if not _ACCOUNT_RE.match(account_id):
        raise ArnConstructionError(
            f"Account id must be 12 digits, got {account_id!r}"
        )
    return account_id


def _require_region(region: str) -> str:
    if not region:
        raise ArnConstructionError("Region is required")
    if not _REGION_RE.match(region):
        raise ArnConstructionError(f"Malformed region {region!r}")
    return region


def _require_name(kind: str, name: str) -> str:
    if not name or not name.strip():
        raise ArnConstructionError(f"{kind} name is required")
    if "*" in name:
        raise ArnConstructionError(f"{kind} name must not contain wildcards: {name!r}")
    return name


def validate_account_id(account_id: str) -> str:
    return _require_account(account_id)


def validate_region(region: str) -> str:
    return _require_region(region)


# ---------------------------------------------------------------------------
# Concrete resources
# ---------------------------------------------------------------------------


def account_root_arn(account_id: str) -> str:
    return f"arn:{PARTITION}:iam::{_require_account(account_id)}:root"


def role_arn(account_id: str, role_name: str) -> str:
    return (
        f"arn:{PARTITION}:iam::{_require_account(account_id)}:"
        f"role/{_require_name('Role', role_name)}"
    )


def kms_key_arn(region: str, account_id: str, key_id: str) -> str:
    return (
        f"arn:{PARTITION}:kms:{_require_region(region)}:{_require_account(account_id)}:"
        f"key/{_require_name('Key', key_id)}"
    )


def bucket_arn(bucket_name: str) -> str:
    return f"arn:{PARTITION}:s3:::{_require_name('Bucket', bucket_name)}"


def bucket_objects_arn(bucket_name: str) -> str:
    return f"{bucket_arn(bucket_name)}/*"


def stack_arn(region: str, account_id: str, stack_name: str) -> str:
    """All versions of a named stack (the trailing ``/*`` is the stack id)."""
    return (
        f"arn:{PARTITION}:cloudformation:{_require_region(region)}:"
        f"{_require_account(account_id)}:stack/{_require_name('Stack', stack_name)}/*"
    )


def state_machine_arn(region: str, account_id: str, name: str) -> str:
    return (
        f"arn:{PARTITION}:states:{_require_region(region)}:{_require_account(account_id)}:"
        f"stateMachine:{_require_name('State machine', name)}"
    )


# ---------------------------------------------------------------------------
# Type-scoped patterns: every resource of one type in one account/region.
# Used only for resources whose physical names CloudFormation generates.
# ---------------------------------------------------------------------------


def stack_roles_pattern(account_id: str, stack_name: str) -> str:
    """Roles CloudFormation names after a stack (``<Stack>-<logical>-<suffix>``)."""
    return (
        f"arn:{PARTITION}:iam::{_require_account(account_id)}:"
        f"role/{_require_name('Stack', stack_name)}-*"
    )


def stack_policies_pattern(account_id: str, stack_name: str) -> str:
    return (
        f"arn:{PARTITION}:iam::{_require_account(account_id)}:"
        f"policy/{_require_name('Stack', stack_name)}-*"
    )


def kinesis_streams_pattern(region: str, account_id: str) -> str:
    return (
        f"arn:{PARTITION}:kinesis:{_require_region(region)}:"
        f"{_require_account(account_id)}:stream/*"
    )


def firehose_streams_pattern(region: str, account_id: str) -> str:
    return (
        f"arn:{PARTITION}:firehose:{_require_region(region)}:"
        f"{_require_account(account_id)}:deliverystream/*"
    )


def lambda_functions_pattern(region: str, account_id: str) -> str:
    return (
        f"arn:{PARTITION}:lambda:{_require_region(region)}:"
        f"{_require_account(account_id)}:function:*"
    )


def log_groups_pattern(region: str, account_id: str) -> str:
    return (
        f"arn:{PARTITION}:logs:{_require_region(region)}:"
        f"{_require_account(account_id)}:log-group:*"
    )


def state_machines_pattern(region: str, account_id: str) -> str:
    return (
        f"arn:{PARTITION}:states:{_require_region(region)}:"
        f"{_require_account(account_id)}:stateMachine:*"
    )


def stack_buckets_pattern(stack_name: str) -> str:
    """Buckets CloudFormation names after a stack (``<stack-lower>-<logical>-<suffix>``)."""
    return f"arn:{PARTITION}:s3:::{_require_name('Stack', stack_name).lower()}-*"


# ---------------------------------------------------------------------------
# Inspection
# ---------------------------------------------------------------------------


def is_wildcard_resource(arn: str) -> bool:
    """True when a resource grants across accounts, regions or a whole service.

    ``*``, an ARN whose account or region field is ``*``, or an ARN whose
    resource part is nothing but ``*``.  Type-scoped patterns such as
    ``...:stream/*`` inside one concrete account are not wildcards.
    """
    if arn.strip() == "*":
        return True
    parts = arn.split(":", 5)
    if len(parts) < 6 or parts[0] != "arn":
        return True
    _, _, _service, region, account, resource = parts
    if region == "*" or account == "*":
        return True
    return resource.strip() in ("*", "")
