"""Host resource profiling and concurrency bounds.

This module handles:
- CI / interactive environment detection
- Host capacity detection (CPU, memory, free disk) via psutil
- The safe concurrency bound for architecture builds
- Graceful degradation under memory pressure
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import psutil

from debmatrix.config import Settings
from debmatrix.types import EnvironmentKind

logger = logging.getLogger(__name__)

# (environment variable, expected value or None for "non-empty", provider name)
CI_PROVIDERS: tuple[tuple[str, str | None, str], ...] = (
    ("GITHUB_ACTIONS", "true", "github-actions"),
    ("GITLAB_CI", "true", "gitlab-ci"),
    ("TF_BUILD", "true", "azure-devops"),
    ("JENKINS_URL", None, "jenkins"),
    ("CIRCLECI", "true", "circleci"),
    ("TRAVIS", "true", "travis-ci"),
    ("BITBUCKET_BUILD_NUMBER", None, "bitbucket-pipelines"),
    ("CI", "true", "generic"),
)

# Minimums below which the build environment is reported as undersized
MIN_MEMORY_MB = 2048
MIN_CPU_CORES = 1
MIN_DISK_GB = 5


@dataclass(frozen=True)
class ResourceProfile:
    """Host capacity and the concurrency it supports."""

    cpu_cores: int
    memory_mb: int
    disk_free_gb: int
    environment: EnvironmentKind
    ci_provider: str | None
    recommended_concurrency: int

    @property
    def shared(self) -> bool:
        """Whether capacity must be reserved for surrounding infrastructure."""
        return self.environment != EnvironmentKind.INTERACTIVE

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "cpu_cores": self.cpu_cores,
            "memory_mb": self.memory_mb,
            "disk_free_gb": self.disk_free_gb,
            "environment": self.environment.value,
            "ci_provider": self.ci_provider,
            "recommended_concurrency": self.recommended_concurrency,
        }


@dataclass(frozen=True)
class HostResources:
    """Raw detected host capacity."""

    cpu_cores: int
    memory_mb: int
    disk_free_gb: int


def detect_environment(
    environ: Mapping[str, str] | None = None,
    stdin_is_tty: bool | None = None,
) -> tuple[EnvironmentKind, str | None]:
    """Classify the host environment.

    Args:
        environ: Environment mapping; defaults to os.environ.
        stdin_is_tty: Override for TTY detection (tests).

    Returns:
        Tuple of (environment kind, CI provider name or None).
    """
    if environ is None:
        environ = os.environ

    for variable, expected, provider in CI_PROVIDERS:
        value = environ.get(variable, "")
        if expected is None:
            matched = bool(value)
        else:
            matched = value.lower() == expected
        if matched:
            return EnvironmentKind.CI, provider

    if stdin_is_tty is None:
        try:
            stdin_is_tty = sys.stdin is not None and sys.stdin.isatty()
        except ValueError:
            stdin_is_tty = False

    if stdin_is_tty:
        return EnvironmentKind.INTERACTIVE, None
    return EnvironmentKind.UNKNOWN, None


def detect_host_resources(path: Path | None = None) -> HostResources:
    """Detect CPU count, total memory and free disk space.

    Args:
        path: Filesystem location whose free space matters (work dir).

    Returns:
        HostResources with detected values.
    """
    disk_path = path if path is not None and path.exists() else Path.cwd()
    cpu_cores = psutil.cpu_count(logical=True) or 1
    memory_mb = psutil.virtual_memory().total // (1024 * 1024)
    disk_free_gb = psutil.disk_usage(str(disk_path)).free // (1024**3)
    return HostResources(
        cpu_cores=cpu_cores, memory_mb=int(memory_mb), disk_free_gb=int(disk_free_gb)
    )


def compute_recommended_concurrency(
    cpu_cores: int,
    memory_mb: int,
    disk_free_gb: int,
    shared: bool,
    memory_per_job_mb: int = 2048,
    cpu_per_job: int = 1,
    disk_per_job_gb: int = 5,
    hard_max: int = 8,
) -> int:
    """Compute the number of architecture builds the host can sustain.

    The bound is the smallest of the memory, CPU and disk limits, floored at
    one. Shared environments give one slot back to the infrastructure
    (still floored at one). The result never exceeds ``hard_max``.

    Args:
        cpu_cores: Logical CPU count.
        memory_mb: Total memory in MB.
        disk_free_gb: Free disk space in GB.
        shared: Whether the host is shared (CI or unknown).
        memory_per_job_mb: Memory floor per job.
        cpu_per_job: CPU floor per job.
        disk_per_job_gb: Disk floor per job.
        hard_max: Hard ceiling.

    Returns:
        Recommended concurrency, between 1 and hard_max.
    """
    by_memory = memory_mb // memory_per_job_mb
    by_cpu = cpu_cores // cpu_per_job
    by_disk = disk_free_gb // disk_per_job_gb

    recommended = max(1, min(by_memory, by_cpu, by_disk))
    if shared:
        recommended = max(1, recommended - 1)
    return min(recommended, hard_max)


def profile_resources(
    settings: Settings,
    environ: Mapping[str, str] | None = None,
    path: Path | None = None,
    stdin_is_tty: bool | None = None,
) -> ResourceProfile:
    """Build a ResourceProfile for this host.

    Explicit overrides in settings replace detected values.

    Args:
        settings: Application settings.
        environ: Environment mapping for CI detection.
        path: Filesystem location for the free disk check.
        stdin_is_tty: Override for TTY detection.

    Returns:
        ResourceProfile with the recommended concurrency.
    """
    environment, provider = detect_environment(environ, stdin_is_tty)
    if settings.environment is not None:
        environment = EnvironmentKind(settings.environment)
        if environment != EnvironmentKind.CI:
            provider = None

    cpu_cores = settings.cpu_cores
    memory_mb = settings.memory_mb
    disk_free_gb = settings.disk_free_gb
    if cpu_cores is None or memory_mb is None or disk_free_gb is None:
        detected = detect_host_resources(path or settings.work_dir)
        if cpu_cores is None:
            cpu_cores = detected.cpu_cores
        if memory_mb is None:
            memory_mb = detected.memory_mb
        if disk_free_gb is None:
            disk_free_gb = detected.disk_free_gb

    recommended = compute_recommended_concurrency(
        cpu_cores=cpu_cores,
        memory_mb=memory_mb,
        disk_free_gb=disk_free_gb,
        shared=environment != EnvironmentKind.INTERACTIVE,
        memory_per_job_mb=settings.memory_per_job_mb,
        cpu_per_job=settings.cpu_per_job,
        disk_per_job_gb=settings.disk_per_job_gb,
        hard_max=settings.hard_max_parallel,
    )

    profile = ResourceProfile(
        cpu_cores=cpu_cores,
        memory_mb=memory_mb,
        disk_free_gb=disk_free_gb,
        environment=environment,
        ci_provider=provider,
        recommended_concurrency=recommended,
    )
    logger.debug(
        "Resource profile: %d cores, %d MB, %d GB free, %s -> %d",
        cpu_cores,
        memory_mb,
        disk_free_gb,
        environment.value,
        recommended,
    )
    return profile


def resolve_concurrency(
    profile: ResourceProfile,
    cli_value: int | None = None,
    override_value: int | None = None,
    request_value: int | None = None,
    parallel_builds: bool = True,
) -> tuple[int, str]:
    """Resolve the concurrency ceiling for the architecture tier.

    Precedence: CLI value, then the override layer (environment), then the
    request default (configuration file), then the computed bound. The
    requested value is always clamped by the computed bound.

    Args:
        profile: Resource profile.
        cli_value: Value from the command line.
        override_value: Value from DEBMATRIX_MAX_PARALLEL.
        request_value: Value from the project configuration.
        parallel_builds: When False, builds run one at a time.

    Returns:
        Tuple of (ceiling, source name).
    """
    if not parallel_builds:
        return 1, "sequential"

    recommended = profile.recommended_concurrency
    for source, value in (
        ("cli", cli_value),
        ("override", override_value),
        ("config", request_value),
    ):
        if value is None:
            continue
        ceiling = max(1, min(value, recommended))
        if ceiling < value:
            logger.warning(
                "Requested %d parallel builds (%s) exceeds safe bound %d; using %d",
                value,
                source,
                recommended,
                ceiling,
            )
        return ceiling, source

    return recommended, "computed"


def apply_graceful_degradation(
    requested: int,
    available_memory_mb: int,
    available_cores: int,
    memory_per_job_mb: int = 1024,
    cores_per_job: int = 1,
) -> int:
    """Reduce a job count to what currently available resources sustain.

    Args:
        requested: Requested concurrent jobs.
        available_memory_mb: Currently available memory in MB.
        available_cores: Currently available CPU cores.
        memory_per_job_mb: Minimum memory per job.
        cores_per_job: Minimum cores per job.

    Returns:
        The requested count, or the sustainable count if lower.
    """
    sustainable = max(
        1,
        min(available_memory_mb // memory_per_job_mb, available_cores // cores_per_job),
    )
    if requested > sustainable:
        logger.warning(
            "Reducing parallel builds from %d to %d due to resource constraints "
            "(%d MB available, %d cores)",
            requested,
            sustainable,
            available_memory_mb,
            available_cores,
        )
        return sustainable
    return requested


def available_resources() -> tuple[int, int]:
    """Return currently available memory (MB) and CPU cores."""
    memory_mb = psutil.virtual_memory().available // (1024 * 1024)
    return int(memory_mb), psutil.cpu_count(logical=True) or 1


def validate_build_environment(profile: ResourceProfile) -> list[str]:
    """Return warnings for an undersized build environment."""
    warnings = []
    if profile.memory_mb < MIN_MEMORY_MB:
        warnings.append(
            f"Low memory: {profile.memory_mb} MB (recommended: {MIN_MEMORY_MB} MB)"
        )
    if profile.cpu_cores < MIN_CPU_CORES:
        warnings.append(f"Insufficient CPU cores: {profile.cpu_cores}")
    if profile.disk_free_gb < MIN_DISK_GB:
        warnings.append(
            f"Low disk space: {profile.disk_free_gb} GB (recommended: {MIN_DISK_GB} GB)"
        )
    for warning in warnings:
        logger.warning("%s", warning)
    return warnings


def format_environment_report(
    profile: ResourceProfile, ceiling: int | None = None, source: str | None = None
) -> str:
    """Render a human-readable environment report."""
    environment = profile.environment.value
    if profile.ci_provider:
        environment = f"{environment} ({profile.ci_provider})"

    lines = [
        "Build environment",
        f"  Environment:      {environment}",
        f"  CPU cores:        {profile.cpu_cores}",
        f"  Memory:           {profile.memory_mb} MB",
        f"  Free disk:        {profile.disk_free_gb} GB",
        f"  Recommended jobs: {profile.recommended_concurrency}",
    ]
    if ceiling is not None:
        lines.append(f"  Parallel jobs:    {ceiling} ({source or 'computed'})")
    return "\n".join(lines)


__all__ = [
    "CI_PROVIDERS",
    "HostResources",
    "ResourceProfile",
    "apply_graceful_degradation",
    "available_resources",
    "compute_recommended_concurrency",
    "detect_environment",
    "detect_host_resources",
    "format_environment_report",
    "profile_resources",
    "resolve_concurrency",
    "validate_build_environment",
]
