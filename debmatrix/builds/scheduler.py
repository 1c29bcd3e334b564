"""Architecture scheduler.

Runs one pipeline per architecture (resolve, fetch, fan-out) in a bounded
pool that admits the next pending architecture as soon as a slot frees.
A pipeline's failure never affects the others.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
import threading
from collections.abc import Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path

from debmatrix.builds.fanout import fan_out
from debmatrix.builds.models import ArchitectureJob, BuildContext
from debmatrix.releases.fetch import FetchError
from debmatrix.releases.resolver import ManualPatternError
from debmatrix.types import (
    ArchitectureState,
    Deadline,
    DeadlineExceeded,
    DistributionState,
    StageStatus,
)

logger = logging.getLogger(__name__)


class ArchitectureScheduler:
    """Bounded, continuously replenished pool of architecture pipelines.

    Attributes:
        concurrency: Maximum pipelines running at once.
        peak_running: Highest number of pipelines observed running.
    """

    def __init__(
        self,
        ctx: BuildContext,
        concurrency: int,
        poll_interval: float | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.ctx = ctx
        self.concurrency = concurrency
        self.poll_interval = (
            poll_interval if poll_interval is not None else ctx.settings.poll_interval
        )
        self.peak_running = 0
        self._running = 0
        self._lock = threading.Lock()

    @property
    def running(self) -> int:
        with self._lock:
            return self._running

    def _enter(self) -> None:
        with self._lock:
            self._running += 1
            self.peak_running = max(self.peak_running, self._running)

    def _leave(self) -> None:
        with self._lock:
            self._running -= 1

    def _fail(
        self, job: ArchitectureJob, stage: str, reason: str, code: str | None = None
    ) -> None:
        category = self.ctx.telemetry.record_failure(
            stage, reason, job.architecture, None, code
        )
        job.mark_failed(stage, reason, category)
        logger.error(
            "[%s] %s failed (%s): %s", job.architecture, stage, category.value, reason
        )

    def _execute(self, job: ArchitectureJob, work_dir: Path, deadline: Deadline) -> None:
        ctx = self.ctx
        arch = job.architecture

        deadline.check(f"resolving {arch}")
        asset = ctx.resolver.resolve(arch)
        if asset is None:
            reason = f"no release assets available for {ctx.request.version}"
            logger.info("Architecture '%s' skipped: %s", arch, reason)
            job.mark_skipped(reason)
            return
        job.asset = asset
        logger.info("[%s] Release asset: %s", arch, asset)

        fetched = ctx.fetcher.fetch(arch, asset, work_dir, deadline)
        job.binary_root = fetched.binary_root
        job.checksum_verified = fetched.checksum_verified

        job.distributions = fan_out(ctx, arch, fetched.binary_root, work_dir, deadline)
        tally = job.tally
        state = tally.derive_state()
        if state == ArchitectureState.FAILED:
            first = next(
                d for d in job.distributions if d.state == DistributionState.FAILED
            )
            job.mark_finished(state)
            job.failure_stage = first.failure_stage
            job.failure_reason = f"All {tally.failed} distribution build(s) failed"
            job.failure_category = first.failure_category
        else:
            if state == ArchitectureState.SKIPPED:
                job.skip_reason = "no eligible distributions"
            job.mark_finished(state)

    def run_pipeline(self, job: ArchitectureJob) -> ArchitectureJob:
        """Run one architecture pipeline to a terminal state. Never raises."""
        self._enter()
        ctx = self.ctx
        stage_name = f"architecture:{job.architecture}"
        ctx.telemetry.record_stage_start(stage_name)
        job.mark_running()
        logger.info("Building architecture %s", job.architecture)
        deadline = Deadline(ctx.settings.architecture_timeout)
        work_dir: Path | None = None

        try:
            work_dir = Path(
                tempfile.mkdtemp(prefix=f"{job.architecture}-", dir=ctx.settings.work_dir)
            )
            self._execute(job, work_dir, deadline)
        except ManualPatternError as e:
            self._fail(job, "resolve", str(e), e.code)
        except FetchError as e:
            self._fail(job, e.stage, str(e), e.code)
        except DeadlineExceeded as e:
            self._fail(job, "architecture", str(e), e.code)
        except Exception as e:
            logger.exception("[%s] Unexpected error", job.architecture)
            self._fail(job, "architecture", f"{type(e).__name__}: {e}")
        finally:
            if work_dir is not None:
                shutil.rmtree(work_dir, ignore_errors=True)
            self._leave()

        if job.state == ArchitectureState.FAILED:
            status = StageStatus.FAILURE
        elif job.state == ArchitectureState.SKIPPED:
            status = StageStatus.SKIPPED
        elif job.state == ArchitectureState.PARTIAL_SUCCESS:
            status = StageStatus.WARNING
        else:
            status = StageStatus.SUCCESS
        ctx.telemetry.record_stage_complete(
            stage_name, status, job.failure_reason or job.skip_reason
        )
        return job

    def run(self, architectures: Sequence[str]) -> list[ArchitectureJob]:
        """Run every architecture and wait for all of them.

        Returns:
            Jobs in request order, all in a terminal state.
        """
        jobs = [ArchitectureJob(architecture=arch) for arch in dict.fromkeys(architectures)]
        if not jobs:
            return jobs

        self.ctx.settings.work_dir.mkdir(parents=True, exist_ok=True)
        logger.info(
            "Scheduling %d architecture(s) with up to %d in parallel",
            len(jobs),
            self.concurrency,
        )

        completed = 0
        with ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix="arch"
        ) as pool:
            pending: dict[Future[ArchitectureJob], ArchitectureJob] = {
                pool.submit(self.run_pipeline, job): job for job in jobs
            }
            while pending:
                done, _ = wait(
                    pending, timeout=self.poll_interval, return_when=FIRST_COMPLETED
                )
                for future in done:
                    job = pending.pop(future)
                    error = future.exception()
                    if error is not None:
                        self._fail(job, "architecture", f"{type(error).__name__}: {error}")
                    completed += 1
                    logger.info(
                        "[%d/%d] %s: %s",
                        completed,
                        len(jobs),
                        job.architecture,
                        job.state.value,
                    )

        return jobs


__all__ = ["ArchitectureScheduler"]
