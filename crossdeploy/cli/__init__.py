"""crossdeploy CLI — Typer-based command-line interface.

Provides the ``crossdeploy`` command with subcommands for inspecting the
assembled graph, printing the generated IAM documents, walking a run locally
and synthesizing the CDK app.

All output uses Rich for formatted terminal display.
"""
