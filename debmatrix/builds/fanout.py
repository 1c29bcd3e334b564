"""Distribution fan-out.

For one architecture, builds every eligible distribution concurrently
against the already fetched binaries. The tier is unbounded: one worker
per eligible distribution. Failures are contained in their own job.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from concurrent.futures import ALL_COMPLETED, ThreadPoolExecutor, wait
from pathlib import Path

from debmatrix.builds.models import BuildContext, DistributionJob, DistributionTally
from debmatrix.builds.quality import QualityCheckError, describe_report
from debmatrix.builds.runner import BuildExecutionError
from debmatrix.releases.fetch import compute_file_sha256
from debmatrix.types import Deadline, DeadlineExceeded, DistributionState, StageStatus

logger = logging.getLogger(__name__)


def plan_distributions(ctx: BuildContext, architecture: str) -> list[DistributionJob]:
    """Create a job per requested distribution, skipping ineligible pairs."""
    jobs = []
    for distribution in ctx.request.distributions:
        job = DistributionJob(
            architecture=architecture,
            distribution=distribution,
            full_version=ctx.request.full_version(distribution, architecture),
        )
        if not ctx.policy.is_supported(architecture, distribution):
            reason = ctx.policy.reason(architecture, distribution)
            logger.info("Skipping %s/%s: %s", architecture, distribution, reason)
            job.mark_skipped(reason)
        jobs.append(job)
    return jobs


def _keep_log(ctx: BuildContext, job: DistributionJob, log_path: Path | None) -> Path | None:
    if log_path is None or not log_path.exists():
        return None
    dest = ctx.settings.log_dir / (
        f"{ctx.request.package_name}-{job.distribution}-{job.architecture}-{log_path.name}"
    )
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(log_path, dest)
    except OSError as e:
        logger.warning("Could not keep build log %s: %s", log_path, e)
        return None
    return dest


def _fail(
    ctx: BuildContext,
    job: DistributionJob,
    stage: str,
    reason: str,
    code: str | None = None,
) -> None:
    category = ctx.telemetry.record_failure(
        stage, reason, job.architecture, job.distribution, code
    )
    ctx.telemetry.add_failure_detail(
        f"{stage} failed for architecture: {job.architecture}, "
        f"distribution: {job.distribution}"
    )
    job.mark_failed(stage, reason, category)
    logger.error(
        "[%s/%s] %s failed (%s): %s",
        job.architecture,
        job.distribution,
        stage,
        category.value,
        reason,
    )


def _build_package(
    ctx: BuildContext,
    job: DistributionJob,
    binary_root: Path,
    job_dir: Path,
    deadline: Deadline,
) -> None:
    settings = ctx.settings
    request = ctx.request

    deadline.check(f"building {job.distribution}")
    result = ctx.backend.build(
        request,
        job.architecture,
        job.distribution,
        binary_root,
        job_dir,
        timeout=deadline.clamp(settings.build_timeout),
    )
    if not result.success or result.package_path is None:
        job.log_path = _keep_log(ctx, job, result.log_path)
        _fail(
            ctx,
            job,
            result.stage,
            result.error_message or f"Packaging failed with exit code {result.exit_code}",
        )
        return

    settings.output_dir.mkdir(parents=True, exist_ok=True)
    package_path = Path(
        shutil.move(str(result.package_path), settings.output_dir / result.package_path.name)
    )
    job.package_path = package_path
    job.size_bytes = package_path.stat().st_size
    job.sha256 = compute_file_sha256(package_path)

    deadline.check(f"checking {package_path.name}")
    report = ctx.checker.check(
        package_path, timeout=deadline.clamp(settings.quality_timeout)
    )
    job.quality = report
    if not report.passed:
        _fail(ctx, job, "lintian", f"Lintian validation failed: {describe_report(report)}")
        return

    job.mark_succeeded()
    logger.info(
        "[%s/%s] Built %s (%d bytes)",
        job.architecture,
        job.distribution,
        package_path.name,
        job.size_bytes,
    )


def run_distribution_job(
    ctx: BuildContext,
    job: DistributionJob,
    binary_root: Path,
    work_dir: Path,
    deadline: Deadline | None = None,
) -> DistributionJob:
    """Build, move and check one package. Never raises.

    Args:
        ctx: Run context.
        job: Pending distribution job; updated in place.
        binary_root: Directory holding the binaries to package.
        work_dir: Architecture working directory; a unique job directory
            is created beneath it and removed afterwards.
        deadline: Architecture pipeline deadline.

    Returns:
        The job in a terminal state.
    """
    deadline = deadline or Deadline(None)
    stage_name = f"distribution:{job.architecture}/{job.distribution}"
    ctx.telemetry.record_stage_start(stage_name)
    job.mark_running()
    job_dir: Path | None = None

    try:
        job_dir = Path(tempfile.mkdtemp(prefix=f"{job.distribution}-", dir=work_dir))
        _build_package(ctx, job, binary_root, job_dir, deadline)
    except BuildExecutionError as e:
        _fail(ctx, job, e.stage, str(e), e.code)
    except QualityCheckError as e:
        _fail(ctx, job, "lintian", str(e), e.code)
    except DeadlineExceeded as e:
        _fail(ctx, job, "distribution", str(e), e.code)
    except Exception as e:
        logger.exception("[%s/%s] Unexpected error", job.architecture, job.distribution)
        _fail(ctx, job, "distribution", f"{type(e).__name__}: {e}")
    finally:
        if job_dir is not None:
            shutil.rmtree(job_dir, ignore_errors=True)

    if job.state == DistributionState.SUCCESS:
        status = StageStatus.SUCCESS
    else:
        status = StageStatus.FAILURE
        # only successful jobs publish a package
        if job.package_path is not None:
            job.package_path.unlink(missing_ok=True)
            job.package_path = None
    ctx.telemetry.record_stage_complete(stage_name, status, job.failure_reason)
    return job


def fan_out(
    ctx: BuildContext,
    architecture: str,
    binary_root: Path,
    work_dir: Path,
    deadline: Deadline | None = None,
) -> list[DistributionJob]:
    """Build every eligible distribution of one architecture concurrently.

    Blocks until every launched job has terminated.

    Returns:
        Jobs in request order, all in a terminal state.
    """
    jobs = plan_distributions(ctx, architecture)
    eligible = [job for job in jobs if job.state == DistributionState.PENDING]
    if not eligible:
        logger.info("[%s] No eligible distributions", architecture)
        return jobs

    logger.info(
        "[%s] Building %d distribution(s) in parallel: %s",
        architecture,
        len(eligible),
        " ".join(job.distribution for job in eligible),
    )

    with ThreadPoolExecutor(
        max_workers=len(eligible), thread_name_prefix=f"dist-{architecture}"
    ) as pool:
        futures = {
            pool.submit(run_distribution_job, ctx, job, binary_root, work_dir, deadline): job
            for job in eligible
        }
        wait(futures, return_when=ALL_COMPLETED)

    for future, job in futures.items():
        error = future.exception()
        if error is not None:
            _fail(ctx, job, "distribution", f"{type(error).__name__}: {error}")

    tally = DistributionTally.from_jobs(jobs)
    logger.info(
        "[%s] Distributions: %d succeeded, %d failed, %d skipped",
        architecture,
        tally.succeeded,
        tally.failed,
        tally.skipped,
    )
    return jobs


__all__ = ["fan_out", "plan_distributions", "run_distribution_job"]
