"""Build job records and the run context.

ArchitectureJob and DistributionJob are created when the scheduler and
the fan-out launch them; their state is terminal once their pipeline
reports. BuildContext carries the request, settings and collaborators
into every component.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from debmatrix.types import (
    ArchitectureState,
    Deadline,
    DistributionState,
    FailureCategory,
    QualityReport,
)

if TYPE_CHECKING:
    from debmatrix.builds.policy import DistributionPolicy
    from debmatrix.builds.runner import PackageBuildResult
    from debmatrix.config import Settings
    from debmatrix.project.request import BuildRequest
    from debmatrix.releases.fetch import FetchResult
    from debmatrix.telemetry.recorder import TelemetryRecorder


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AssetResolver(Protocol):
    def resolve(self, architecture: str) -> str | None: ...


class Fetcher(Protocol):
    def fetch(
        self,
        architecture: str,
        asset: str,
        work_dir: Path,
        deadline: Deadline | None = None,
    ) -> FetchResult: ...


class PackagingBackend(Protocol):
    def build(
        self,
        request: BuildRequest,
        architecture: str,
        distribution: str,
        binary_root: Path,
        job_dir: Path,
        timeout: float | None = None,
    ) -> PackageBuildResult: ...


class QualityChecker(Protocol):
    def check(self, package_path: Path, timeout: float | None = None) -> QualityReport: ...


@dataclass
class DistributionJob:
    """One (architecture, distribution) package build.

    Attributes:
        architecture: Architecture id.
        distribution: Distribution name.
        full_version: ``{version}-{build}+{dist}_{arch}``.
        state: Lifecycle state.
        package_path: Produced .deb in the output directory.
        size_bytes: Package size.
        sha256: Package checksum.
        quality: Lintian report.
        log_path: Kept build log.
        failure_stage: Stage that failed.
        failure_reason: Failure description.
        failure_category: Classified failure category.
        skip_reason: Why the pair was not built.
    """

    architecture: str
    distribution: str
    full_version: str
    state: DistributionState = DistributionState.PENDING
    started_at: datetime | None = None
    finished_at: datetime | None = None
    package_path: Path | None = None
    size_bytes: int = 0
    sha256: str | None = None
    quality: QualityReport | None = None
    log_path: Path | None = None
    failure_stage: str | None = None
    failure_reason: str | None = None
    failure_category: FailureCategory | None = None
    skip_reason: str | None = None

    def mark_running(self) -> None:
        self.state = DistributionState.RUNNING
        self.started_at = _now()

    def mark_succeeded(self) -> None:
        self.state = DistributionState.SUCCESS
        self.finished_at = _now()

    def mark_failed(
        self, stage: str, reason: str, category: FailureCategory | None = None
    ) -> None:
        self.state = DistributionState.FAILED
        self.finished_at = _now()
        self.failure_stage = stage
        self.failure_reason = reason
        self.failure_category = category

    def mark_skipped(self, reason: str) -> None:
        self.state = DistributionState.SKIPPED
        self.skip_reason = reason

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


@dataclass(frozen=True)
class DistributionTally:
    """Per-architecture counts reported by the fan-out."""

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    @classmethod
    def from_jobs(cls, jobs: list[DistributionJob]) -> DistributionTally:
        return cls(
            succeeded=sum(1 for j in jobs if j.state == DistributionState.SUCCESS),
            failed=sum(1 for j in jobs if j.state == DistributionState.FAILED),
            skipped=sum(1 for j in jobs if j.state == DistributionState.SKIPPED),
        )

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed

    def derive_state(self) -> ArchitectureState:
        """Map the tally to a terminal architecture state.

        Nothing attempted (every distribution skipped by policy) is SKIPPED.
        """
        if self.attempted == 0:
            return ArchitectureState.SKIPPED
        if self.failed == 0:
            return ArchitectureState.SUCCESS
        if self.succeeded == 0:
            return ArchitectureState.FAILED
        return ArchitectureState.PARTIAL_SUCCESS


@dataclass
class ArchitectureJob:
    """One architecture pipeline (resolve, fetch, fan-out)."""

    architecture: str
    state: ArchitectureState = ArchitectureState.PENDING
    asset: str | None = None
    binary_root: Path | None = None
    checksum_verified: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None
    distributions: list[DistributionJob] = field(default_factory=list)
    failure_stage: str | None = None
    failure_reason: str | None = None
    failure_category: FailureCategory | None = None
    skip_reason: str | None = None

    def mark_running(self) -> None:
        self.state = ArchitectureState.RUNNING
        self.started_at = _now()

    def mark_finished(self, state: ArchitectureState) -> None:
        self.state = state
        self.finished_at = _now()

    def mark_failed(
        self, stage: str, reason: str, category: FailureCategory | None = None
    ) -> None:
        self.mark_finished(ArchitectureState.FAILED)
        self.failure_stage = stage
        self.failure_reason = reason
        self.failure_category = category

    def mark_skipped(self, reason: str) -> None:
        self.mark_finished(ArchitectureState.SKIPPED)
        self.skip_reason = reason

    @property
    def tally(self) -> DistributionTally:
        return DistributionTally.from_jobs(self.distributions)

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


@dataclass(frozen=True)
class BuildContext:
    """Immutable run context passed to every component."""

    request: BuildRequest
    settings: Settings
    resolver: AssetResolver
    fetcher: Fetcher
    backend: PackagingBackend
    checker: QualityChecker
    policy: DistributionPolicy
    telemetry: TelemetryRecorder


__all__ = [
    "ArchitectureJob",
    "AssetResolver",
    "BuildContext",
    "DistributionJob",
    "DistributionTally",
    "Fetcher",
    "PackagingBackend",
    "QualityChecker",
]
