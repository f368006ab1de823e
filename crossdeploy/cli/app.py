"""Main Typer application — imports and registers all CLI commands.

Entry point: ``crossdeploy`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer

from crossdeploy.cli.commands.graph import graph_cmd
from crossdeploy.cli.commands.policies import policies_cmd
from crossdeploy.cli.commands.synth import synth_cmd
from crossdeploy.cli.commands.trigger import trigger_cmd

app = typer.Typer(
    name="crossdeploy",
    help="crossdeploy: cross-account CD pipeline with gated promotion to production.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="graph", help="Show the assembled stage/action graph.")(graph_cmd)
app.command(name="policies", help="Print the IAM documents for one account.")(policies_cmd)
app.command(name="trigger", help="Run the pipeline locally for a push.")(trigger_cmd)
app.command(name="synth", help="Synthesize the CDK app into a cloud assembly.")(synth_cmd)


def main() -> None:
    """CLI entry point."""
    from crossdeploy.config import configure_logging, get_settings

    configure_logging(get_settings().log_level)
    app()


if __name__ == "__main__":
    main()
