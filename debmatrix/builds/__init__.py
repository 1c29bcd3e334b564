"""Package builds: fan-out, scheduling, packaging, quality checks and summaries."""

from debmatrix.builds.models import (
    ArchitectureJob,
    BuildContext,
    DistributionJob,
    DistributionTally,
)
from debmatrix.builds.policy import DistributionPolicy
from debmatrix.builds.quality import LintianChecker, QualityCheckError
from debmatrix.builds.runner import BuildExecutionError, DockerBackend
from debmatrix.builds.scheduler import ArchitectureScheduler
from debmatrix.builds.service import (
    PreconditionError,
    check_preconditions,
    discover_assets,
    run_build_matrix,
)
from debmatrix.builds.summary import BuildSummary, generate_build_summary, write_summary

__all__ = [
    "ArchitectureJob",
    "ArchitectureScheduler",
    "BuildContext",
    "BuildExecutionError",
    "BuildSummary",
    "DistributionJob",
    "DistributionPolicy",
    "DistributionTally",
    "DockerBackend",
    "LintianChecker",
    "PreconditionError",
    "QualityCheckError",
    "check_preconditions",
    "discover_assets",
    "generate_build_summary",
    "run_build_matrix",
    "write_summary",
]
