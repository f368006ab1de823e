"""crossdeploy: cross-account continuous delivery for a CDK application.

One commit, one ordered run:
  - Source -> Build (synth + security scan) -> Deploy_to_Dev
  - Integration_Test (deploy + invoke the test workflow) -> Manual_Approve
  - Deploy_to_Prod, through roles that trust only the pipeline account
  - Least-privilege trust policies with no wildcard resources for
    destructive or privilege-granting actions
  - Hash-chained run ledger with a Rich run monitor
"""

__version__ = "0.1.0"
__description__ = "Cross-account CD pipeline with gated promotion to production"

from crossdeploy.core.orchestrator import PipelineOrchestrator
from crossdeploy.core.stage_graph import StageGraphAssembler, assemble_pipeline
from crossdeploy.core.trust_policy import TrustPolicyBuilder
from crossdeploy.monitor.projection import MonitorProjection as RunMonitor

__all__ = [
    "PipelineOrchestrator",
    "StageGraphAssembler",
    "assemble_pipeline",
    "TrustPolicyBuilder",
    "RunMonitor",
    "__version__",
]
