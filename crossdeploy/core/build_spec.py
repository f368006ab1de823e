"""Build Stage Definition — source artifact in, scanned templates out.

The build runs a fixed phase sequence::

    install -> build (compile + synth) -> post_build (security scan) -> package

The security scan covers every synthesized template; a single failing
template fails the whole build.  This is the only automated gate before any
cloud resource is touched.
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict

from crossdeploy.models.config import PipelineConfig
from crossdeploy.models.outcomes import ActionOutcome, BuildPhase, BuildReport

logger = logging.getLogger(__name__)

PHASE_ORDER: tuple[BuildPhase, ...] = (
    BuildPhase.INSTALL,
    BuildPhase.BUILD,
    BuildPhase.POST_BUILD,
)


class BuildStageDefinition(BaseModel):
    """How the build project turns a commit into deployable templates."""

    model_config = ConfigDict(frozen=True)

    runtime: dict[str, str] = {"nodejs": "18"}
    install_commands: tuple[str, ...] = (
        "npm install",
        "yum -y install gem",
        "gem install cfn-nag",
    )
    build_commands: tuple[str, ...] = (
        "npm run build",
        "npm run cdk synth -- -o dist",
    )
    scan_command: str = "cfn_nag_scan -i"
    output_dir: str = "dist"
    template_glob: str = "*Stack.template.json"

    @classmethod
    def from_config(cls, config: PipelineConfig) -> "BuildStageDefinition":
        return cls(template_glob=config.template_glob)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def scan_loop(self) -> str:
        """Shell loop that scans each template and exits 1 on the first failure."""
        return (
            f"for filename in {self.output_dir}/{self.template_glob}; do "
            f"({self.scan_command} $filename); [ $? -eq 0 ] || exit 1 ; done"
        )

    def to_buildspec(self) -> dict[str, Any]:
        """Render the CodeBuild buildspec (version 0.2)."""
        return {
            "version": "0.2",
            "phases": {
                BuildPhase.INSTALL.value: {
                    "runtime-versions": dict(self.runtime),
                    "commands": list(self.install_commands),
                },
                BuildPhase.BUILD.value: {
                    "commands": list(self.build_commands),
                },
                BuildPhase.POST_BUILD.value: {
                    "commands": [self.scan_loop()],
                },
            },
            "artifacts": {
                "base-directory": self.output_dir,
                "files": [self.template_glob],
            },
        }

    # ------------------------------------------------------------------
    # Gate evaluation
    # ------------------------------------------------------------------

    def select_templates(self, file_names: list[str] | set[str] | dict[str, Any]) -> list[str]:
        """File names matching the artifact manifest glob, sorted."""
        return sorted(
            name for name in file_names if fnmatch.fnmatchcase(name, self.template_glob)
        )

    def evaluate(self, report: BuildReport) -> ActionOutcome:
        """Turn a toolchain report into a pass/fail outcome.

        Fails on the first non-zero phase (in phase order), on any selected
        template whose scan failed or was never scanned, and when nothing
        matches the manifest.  On success the outcome's files are exactly the
        selected templates.
        """
        for phase in PHASE_ORDER:
            code = report.phase_exit_codes.get(phase, 0)
            if code != 0:
                reason = f"{phase.value} phase exited with {code}"
                logger.warning("Build failed: %s", reason)
                return ActionOutcome.failure(reason, phase=phase.value)

        templates = self.select_templates(report.produced_files)
        if not templates:
            reason = f"no templates matching {self.template_glob!r} were produced"
            logger.warning("Build failed: %s", reason)
            return ActionOutcome.failure(reason)

        failed: list[str] = []
        for name in templates:
            if report.scan_results.get(name) is not True:
                failed.append(name)
        if failed:
            findings = {
                name: report.scan_findings.get(name, ["not scanned"]) for name in failed
            }
            reason = "security scan failed for " + ", ".join(failed)
            logger.warning("Build failed: %s", reason)
            return ActionOutcome.failure(reason, findings=findings)

        logger.info("Build passed: %d template(s) scanned clean", len(templates))
        return ActionOutcome(
            succeeded=True,
            files={name: report.produced_files[name] for name in templates},
        )
