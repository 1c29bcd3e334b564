"""Build service module.

This module provides the high-level build API:
- check_preconditions(): global checks that abort before scheduling
- run_build_matrix(): main entry point, one run over the arch x dist matrix
- discover_assets(): resolve each architecture's asset without building
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Sequence
from datetime import datetime, timezone

import httpx

from debmatrix.builds.models import (
    AssetResolver,
    BuildContext,
    Fetcher,
    PackagingBackend,
    QualityChecker,
)
from debmatrix.builds.policy import DistributionPolicy
from debmatrix.builds.quality import LintianChecker
from debmatrix.builds.runner import DockerBackend
from debmatrix.builds.scheduler import ArchitectureScheduler
from debmatrix.builds.summary import BuildSummary, generate_build_summary
from debmatrix.config import Settings, get_settings
from debmatrix.project.request import BuildRequest
from debmatrix.releases.fetch import ArtifactFetcher
from debmatrix.releases.listing import ReleaseAssetLister, ReleaseListingError
from debmatrix.releases.resolver import ManualPatternError, ReleaseResolver
from debmatrix.resources.profiler import (
    ResourceProfile,
    apply_graceful_degradation,
    available_resources,
    profile_resources,
    resolve_concurrency,
    validate_build_environment,
)
from debmatrix.telemetry.baseline import BASELINE_FILENAME, save_baseline, write_metrics
from debmatrix.telemetry.recorder import TelemetryRecorder
from debmatrix.types import StageStatus

logger = logging.getLogger(__name__)

DOCKER_INFO_TIMEOUT = 30


class PreconditionError(Exception):
    """Raised when a global precondition fails before any build starts."""

    def __init__(self, message: str, code: str = "precondition_failed") -> None:
        super().__init__(message)
        self.code = code


def check_preconditions(settings: Settings | None = None) -> None:
    """Verify the docker CLI is installed and the daemon responds.

    Raises:
        PreconditionError: If docker is missing or not running.
    """
    settings = settings or get_settings()
    docker = shutil.which(settings.docker_bin)
    if docker is None:
        raise PreconditionError(
            f"Docker is not installed ({settings.docker_bin} not found on PATH)",
            code="docker_missing",
        )
    try:
        result = subprocess.run(
            [docker, "info"],
            capture_output=True,
            text=True,
            timeout=DOCKER_INFO_TIMEOUT,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        raise PreconditionError(
            "Docker daemon did not respond", code="docker_unavailable"
        ) from e
    except OSError as e:
        raise PreconditionError(
            f"Failed to run docker: {e}", code="docker_unavailable"
        ) from e
    if result.returncode != 0:
        raise PreconditionError(
            "Docker is not running. Please start Docker first.",
            code="docker_unavailable",
        )


def fetch_listing(
    request: BuildRequest,
    settings: Settings,
    client: httpx.Client,
) -> tuple[str, ...]:
    """Fetch the release listing once for the run.

    Raises:
        PreconditionError: If the listing cannot be fetched or is empty.
    """
    lister = ReleaseAssetLister(
        client,
        base_url=settings.github_api_base,
        timeout=settings.head_timeout,
        token=settings.github_token,
    )
    try:
        return lister.get(request.github_repo, request.version)
    except ReleaseListingError as e:
        raise PreconditionError(str(e), code=e.code) from e


def discover_assets(
    request: BuildRequest,
    listing: Sequence[str],
) -> dict[str, str | None]:
    """Resolve each requested architecture to its asset, or None."""
    resolver = ReleaseResolver(request, listing)
    resolved: dict[str, str | None] = {}
    for arch in request.architectures:
        try:
            resolved[arch] = resolver.resolve(arch)
        except ManualPatternError as e:
            logger.warning("%s: %s", arch, e)
            resolved[arch] = None
    return resolved


def run_build_matrix(
    request: BuildRequest,
    settings: Settings | None = None,
    *,
    client: httpx.Client | None = None,
    listing: Sequence[str] | None = None,
    resolver: AssetResolver | None = None,
    fetcher: Fetcher | None = None,
    backend: PackagingBackend | None = None,
    checker: QualityChecker | None = None,
    policy: DistributionPolicy | None = None,
    telemetry: TelemetryRecorder | None = None,
    profile: ResourceProfile | None = None,
    available: tuple[int, int] | None = None,
    cli_max_parallel: int | None = None,
    save_as_baseline: bool = False,
) -> tuple[BuildSummary, ResourceProfile]:
    """Build every (architecture, distribution) pair of a request.

    Collaborators default to the real implementations: the GitHub listing,
    the release resolver and fetcher, docker and lintian.

    Args:
        request: Build request.
        settings: Application settings (uses defaults if not provided).
        client: HTTPX client (creates one if not provided).
        listing: Release asset filenames; fetched if not provided.
        resolver: Asset resolver.
        fetcher: Artifact fetcher.
        backend: Packaging backend; docker preconditions run when omitted.
        checker: Quality checker.
        policy: Distribution-architecture policy.
        telemetry: Telemetry recorder.
        profile: Resource profile; detected if not provided.
        available: Currently available (memory MB, cores); sampled if
            not provided.
        cli_max_parallel: Concurrency from the command line.
        save_as_baseline: Save this run's telemetry as the new baseline.

    Returns:
        Tuple of (BuildSummary, ResourceProfile).

    Raises:
        PreconditionError: If docker or the release listing is unavailable.
    """
    settings = settings or get_settings()
    started_at = datetime.now(timezone.utc)

    if backend is None:
        check_preconditions(settings)
        backend = DockerBackend(docker_bin=settings.docker_bin)

    telemetry = telemetry or TelemetryRecorder(
        enabled=settings.telemetry_enabled,
        sample_interval=settings.sample_interval,
        disk_path=settings.work_dir,
        regression_threshold=settings.regression_threshold,
    )

    manage_client = client is None and (listing is None or fetcher is None)
    http_client = httpx.Client(follow_redirects=True) if manage_client else client

    telemetry.start()
    try:
        if listing is None:
            if http_client is None:
                raise ValueError("an HTTP client is required to fetch the listing")
            telemetry.record_stage_start("listing")
            try:
                listing = fetch_listing(request, settings, http_client)
            except PreconditionError as e:
                telemetry.record_stage_complete("listing", StageStatus.FAILURE, str(e))
                telemetry.finalize()
                raise
            telemetry.record_stage_complete("listing", StageStatus.SUCCESS)
        if fetcher is None:
            if http_client is None:
                raise ValueError("an HTTP client is required to fetch artifacts")
            fetcher = ArtifactFetcher(
                http_client,
                request.github_repo,
                request.version,
                listing,
                binary_path=request.binary_path,
                base_url=settings.github_download_base,
                head_timeout=settings.head_timeout,
                download_timeout=settings.download_timeout,
            )

        profile = profile or profile_resources(settings)
        validate_build_environment(profile)
        ceiling, source = resolve_concurrency(
            profile,
            cli_value=cli_max_parallel,
            override_value=settings.max_parallel,
            request_value=request.max_parallel,
            parallel_builds=request.parallel_builds,
        )
        memory_mb, cores = available if available is not None else available_resources()
        ceiling = apply_graceful_degradation(
            ceiling,
            memory_mb,
            cores,
            memory_per_job_mb=settings.degradation_memory_per_job_mb,
            cores_per_job=settings.degradation_cores_per_job,
        )
        logger.info("Architecture concurrency: %d (%s)", ceiling, source)

        ctx = BuildContext(
            request=request,
            settings=settings,
            resolver=resolver or ReleaseResolver(request, listing),
            fetcher=fetcher,
            backend=backend,
            checker=checker
            or LintianChecker(
                request.quality,
                settings.log_dir / "lintian",
                lintian_bin=settings.lintian_bin,
            ),
            policy=policy or DistributionPolicy(overrides=request.distribution_overrides),
            telemetry=telemetry,
        )
        scheduler = ArchitectureScheduler(ctx, ceiling)
        jobs = scheduler.run(request.architectures)
    finally:
        if manage_client and http_client is not None:
            http_client.close()

    snapshot = telemetry.finalize(settings.telemetry_dir / BASELINE_FILENAME)
    if snapshot.enabled:
        write_metrics(snapshot, settings.telemetry_dir)
        if save_as_baseline:
            save_baseline(snapshot, settings.telemetry_dir / BASELINE_FILENAME)

    summary = generate_build_summary(
        request,
        jobs,
        telemetry=snapshot,
        concurrency=ceiling,
        concurrency_source=source,
        peak_running=scheduler.peak_running,
        started_at=started_at,
    )
    return summary, profile


__all__ = [
    "PreconditionError",
    "check_preconditions",
    "discover_assets",
    "fetch_listing",
    "run_build_matrix",
]
