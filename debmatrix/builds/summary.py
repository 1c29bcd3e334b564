"""Build summary generation.

This module handles:
- Merging architecture and distribution outcomes into one summary
- Lintian totals across the checked packages
- Writing the summary as JSON (``build-summary.json`` by default)
"""

from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from debmatrix.builds.models import ArchitectureJob, DistributionJob
from debmatrix.project.request import BuildRequest
from debmatrix.telemetry.models import TelemetrySnapshot
from debmatrix.types import (
    ArchitectureState,
    DistributionState,
    FailureCategory,
    QualityReport,
)

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "build-summary.json"


def format_size_human(num_bytes: int) -> str:
    """Format a size as whole MB, or whole KB below one MB."""
    size_mb = num_bytes // (1024 * 1024)
    if size_mb > 0:
        return f"{size_mb} MB"
    return f"{num_bytes // 1024} KB"


class PackageEntry(BaseModel):
    """A published .deb."""

    name: str
    architecture: str
    distribution: str
    size: int
    sha256: str | None = None


class DistributionOutcome(BaseModel):
    distribution: str
    state: DistributionState
    full_version: str
    package: str | None = None
    duration_seconds: float | None = None
    quality: dict[str, object] | None = None
    log_path: str | None = None
    failure_stage: str | None = None
    failure_reason: str | None = None
    failure_category: FailureCategory | None = None
    skip_reason: str | None = None


class ArchitectureOutcome(BaseModel):
    architecture: str
    state: ArchitectureState
    asset: str | None = None
    checksum_verified: bool = False
    duration_seconds: float | None = None
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    distributions: list[DistributionOutcome] = Field(default_factory=list)
    failure_stage: str | None = None
    failure_reason: str | None = None
    failure_category: FailureCategory | None = None
    skip_reason: str | None = None


class FailureEntry(BaseModel):
    """One failed unit, for the failure table."""

    architecture: str
    distribution: str | None = None
    stage: str | None = None
    reason: str | None = None
    category: FailureCategory | None = None


class LintianSummary(BaseModel):
    enabled: bool = False
    checked: int = 0
    passed: int = 0
    failed: int = 0
    total_errors: int = 0
    total_warnings: int = 0
    total_info: int = 0
    total_pedantic: int = 0


class BuildSummary(BaseModel):
    """Outcome of one build matrix run."""

    package: str
    version: str
    build_version: str
    full_version: str
    github_repo: str
    architectures: list[str]
    distributions: list[str]
    total_packages: int = 0
    total_size_bytes: int = 0
    total_size_human: str = "0 KB"
    build_start: datetime | None = None
    build_end: datetime | None = None
    build_duration_seconds: float = 0.0
    parallel_builds: bool = True
    max_parallel: int = 1
    concurrency_source: str | None = None
    peak_running: int = 0
    architecture_states: dict[str, int] = Field(default_factory=dict)
    packages: list[PackageEntry] = Field(default_factory=list)
    outcomes: list[ArchitectureOutcome] = Field(default_factory=list)
    failures: list[FailureEntry] = Field(default_factory=list)
    lintian: LintianSummary = Field(default_factory=LintianSummary)
    telemetry: TelemetrySnapshot | None = None
    success: bool = False
    failure_category: FailureCategory | None = None


def summarize_lintian(
    reports: Sequence[QualityReport], enabled: bool
) -> LintianSummary:
    """Total lintian counts over the reports that actually ran."""
    checked = [r for r in reports if not r.skipped]
    return LintianSummary(
        enabled=enabled,
        checked=len(checked),
        passed=sum(1 for r in checked if r.passed),
        failed=sum(1 for r in checked if not r.passed),
        total_errors=sum(r.errors for r in checked),
        total_warnings=sum(r.warnings for r in checked),
        total_info=sum(r.info for r in checked),
        total_pedantic=sum(r.pedantic for r in checked),
    )


def _distribution_outcome(job: DistributionJob) -> DistributionOutcome:
    return DistributionOutcome(
        distribution=job.distribution,
        state=job.state,
        full_version=job.full_version,
        package=job.package_path.name if job.package_path else None,
        duration_seconds=job.duration_seconds,
        quality=job.quality.to_dict() if job.quality else None,
        log_path=str(job.log_path) if job.log_path else None,
        failure_stage=job.failure_stage,
        failure_reason=job.failure_reason,
        failure_category=job.failure_category,
        skip_reason=job.skip_reason,
    )


def _architecture_outcome(job: ArchitectureJob) -> ArchitectureOutcome:
    tally = job.tally
    return ArchitectureOutcome(
        architecture=job.architecture,
        state=job.state,
        asset=job.asset,
        checksum_verified=job.checksum_verified,
        duration_seconds=job.duration_seconds,
        succeeded=tally.succeeded,
        failed=tally.failed,
        skipped=tally.skipped,
        distributions=[_distribution_outcome(d) for d in job.distributions],
        failure_stage=job.failure_stage,
        failure_reason=job.failure_reason,
        failure_category=job.failure_category,
        skip_reason=job.skip_reason,
    )


def collect_failures(jobs: Sequence[ArchitectureJob]) -> list[FailureEntry]:
    """List failed units.

    A FAILED architecture whose distributions never ran is one entry;
    otherwise each failed distribution is its own entry.
    """
    failures: list[FailureEntry] = []
    for job in jobs:
        failed = [d for d in job.distributions if d.state == DistributionState.FAILED]
        if job.state == ArchitectureState.FAILED and not failed:
            failures.append(
                FailureEntry(
                    architecture=job.architecture,
                    stage=job.failure_stage,
                    reason=job.failure_reason,
                    category=job.failure_category,
                )
            )
        failures.extend(
            FailureEntry(
                architecture=d.architecture,
                distribution=d.distribution,
                stage=d.failure_stage,
                reason=d.failure_reason,
                category=d.failure_category,
            )
            for d in failed
        )
    return failures


def generate_build_summary(
    request: BuildRequest,
    jobs: Sequence[ArchitectureJob],
    telemetry: TelemetrySnapshot | None = None,
    concurrency: int = 1,
    concurrency_source: str | None = None,
    peak_running: int = 0,
    started_at: datetime | None = None,
    finished_at: datetime | None = None,
) -> BuildSummary:
    """Merge run outcomes into a BuildSummary.

    The run succeeds iff at least one package was built. The run failure
    category is only reported when it did not.

    Args:
        request: The build request.
        jobs: Terminal architecture jobs.
        telemetry: Telemetry snapshot, if recorded.
        concurrency: Architecture concurrency ceiling used.
        concurrency_source: Which layer chose the ceiling.
        peak_running: Highest number of concurrently running architectures.
        started_at: Run start.
        finished_at: Run end; defaults to now.

    Returns:
        BuildSummary.
    """
    finished_at = finished_at or datetime.now(timezone.utc)
    started_at = started_at or finished_at

    distributions = [d for job in jobs for d in job.distributions]
    built = [
        d
        for d in distributions
        if d.state == DistributionState.SUCCESS and d.package_path is not None
    ]
    packages = [
        PackageEntry(
            name=d.package_path.name,
            architecture=d.architecture,
            distribution=d.distribution,
            size=d.size_bytes,
            sha256=d.sha256,
        )
        for d in built
        if d.package_path is not None
    ]
    total_size = sum(p.size for p in packages)
    success = len(packages) > 0

    states = Counter(job.state.value for job in jobs)

    failure_category = None
    if not success:
        failure_category = telemetry.failure_category if telemetry else None
        if failure_category is None:
            failure_category = next(
                (f.category for f in collect_failures(jobs) if f.category), None
            )

    summary = BuildSummary(
        package=request.package_name,
        version=request.version,
        build_version=request.build_version,
        full_version=f"{request.version}-{request.build_version}",
        github_repo=request.github_repo,
        architectures=list(request.architectures),
        distributions=list(request.distributions),
        total_packages=len(packages),
        total_size_bytes=total_size,
        total_size_human=format_size_human(total_size),
        build_start=started_at,
        build_end=finished_at,
        build_duration_seconds=round((finished_at - started_at).total_seconds(), 3),
        parallel_builds=request.parallel_builds,
        max_parallel=concurrency,
        concurrency_source=concurrency_source,
        peak_running=peak_running,
        architecture_states=dict(states),
        packages=packages,
        outcomes=[_architecture_outcome(job) for job in jobs],
        failures=collect_failures(jobs),
        lintian=summarize_lintian(
            [d.quality for d in distributions if d.quality is not None],
            enabled=request.quality.enabled,
        ),
        telemetry=telemetry,
        success=success,
        failure_category=failure_category,
    )
    logger.info(
        "Built %d package(s), %s total", summary.total_packages, summary.total_size_human
    )
    return summary


def write_summary(summary: BuildSummary, output_path: Path | None = None) -> Path:
    """Write the summary as JSON.

    Args:
        summary: Build summary.
        output_path: Output file; defaults to build-summary.json in the cwd.

    Returns:
        Path to the written file.
    """
    output_path = output_path or Path(SUMMARY_FILENAME)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(summary.model_dump(mode="json"), f, indent=2)
    logger.info("Build summary saved to %s", output_path)
    return output_path


__all__ = [
    "SUMMARY_FILENAME",
    "ArchitectureOutcome",
    "BuildSummary",
    "DistributionOutcome",
    "FailureEntry",
    "LintianSummary",
    "PackageEntry",
    "collect_failures",
    "format_size_human",
    "generate_build_summary",
    "summarize_lintian",
    "write_summary",
]
