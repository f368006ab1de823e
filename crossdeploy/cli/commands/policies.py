"""``crossdeploy policies ACCOUNT`` — print the generated IAM documents.

For the chosen account (``dev`` or ``prod``) prints the trust and permission
documents of the pipeline action role and the deployment role.  ``prod``
also lists the cross-account key and bucket grants made in the dev account.
"""

from __future__ import annotations

import json
from enum import Enum

import typer
from rich.console import Console
from rich.syntax import Syntax

from crossdeploy.config import get_settings
from crossdeploy.core.arns import ArnConstructionError
from crossdeploy.core.config_guard import TrustBoundaryError, enforce_trust_boundary
from crossdeploy.core.trust_policy import TrustPolicyBuilder, find_wildcard_grants

console = Console()


class AccountChoice(str, Enum):
    dev = "dev"
    prod = "prod"


def _print_document(title: str, document: dict) -> None:
    console.print(f"[bold cyan]{title}[/bold cyan]")
    console.print(Syntax(json.dumps(document, indent=2), "json", word_wrap=True))


def policies_cmd(
    account: AccountChoice = typer.Argument(
        AccountChoice.prod,
        help="Which account's roles to print.",
    ),
) -> None:
    """Print the least-privilege documents for one account's roles."""
    config = get_settings().to_pipeline_config()
    try:
        enforce_trust_boundary(config)
        builder = TrustPolicyBuilder(config)
        target = config.dev if account == AccountChoice.dev else config.prod
        capability = builder.capability(target)
    except (TrustBoundaryError, ArnConstructionError) as exc:
        console.print(f"[bold red]Invalid configuration:[/bold red] {exc}")
        raise typer.Exit(code=1)

    findings = []
    for role in (capability.action_role, capability.deployment_role):
        _print_document(f"{role.role_name} trust policy", role.trust_policy.to_json())
        _print_document(f"{role.role_name} permissions", role.permissions.to_json())
        findings.extend(find_wildcard_grants(role.permissions))

    if account == AccountChoice.prod:
        console.print("[bold cyan]Grants in the dev account[/bold cyan]")
        for grant in builder.key_grants():
            console.print(f"  key    {grant.principal_arn}: {', '.join(grant.actions)}")
        for grant in builder.bucket_grants():
            console.print(f"  bucket {grant.principal_arn}: {', '.join(grant.actions)}")

    if findings:
        for sid, action, resource in findings:
            console.print(f"[bold red]Wildcard grant:[/bold red] {sid} {action} on {resource}")
        raise typer.Exit(code=1)
    console.print("[green]No destructive action is granted on a wildcard resource.[/green]")
