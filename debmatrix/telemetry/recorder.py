"""Build telemetry recording.

This module handles:
- Stage start/end events for the run, architectures and distributions
- Periodic resource sampling while the run is active
- Network byte deltas from a before/after counter snapshot
- Classified failure records
"""

from __future__ import annotations

import logging
import platform
import socket
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

import psutil

from debmatrix.telemetry.baseline import (
    REGRESSION_THRESHOLD,
    detect_regressions,
    load_baseline,
)
from debmatrix.telemetry.classifier import classify_failure
from debmatrix.telemetry.models import (
    FailureRecord,
    HostInfo,
    ResourceSample,
    StageEvent,
    TelemetrySnapshot,
)
from debmatrix.types import FailureCategory, StageStatus

logger = logging.getLogger(__name__)

BYTE_UNITS = ("B", "KB", "MB", "GB", "TB")


def format_bytes(num_bytes: int) -> str:
    """Format a byte count with a binary unit (integer division)."""
    value = int(num_bytes)
    unit = 0
    while value > 1024 and unit < len(BYTE_UNITS) - 1:
        value //= 1024
        unit += 1
    return f"{value} {BYTE_UNITS[unit]}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _disk_free_gb(path: Path) -> float:
    target = path if path.exists() else Path.cwd()
    return round(psutil.disk_usage(str(target)).free / 1024**3, 2)


def process_tree_rss_mb(process: psutil.Process) -> float:
    """Return the resident memory of a process and its children, in MB."""
    total = 0
    try:
        total += process.memory_info().rss
        for child in process.children(recursive=True):
            try:
                total += child.memory_info().rss
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        pass
    return round(total / (1024 * 1024), 1)


class ResourceSampler(threading.Thread):
    """Daemon thread sampling memory and CPU at a fixed interval."""

    def __init__(self, interval: float = 5.0) -> None:
        super().__init__(name="debmatrix-sampler", daemon=True)
        self.interval = interval
        self.samples: list[ResourceSample] = []
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._process = psutil.Process()

    def sample(self) -> ResourceSample:
        """Take one sample and store it."""
        sample = ResourceSample(
            timestamp=_now(),
            memory_mb=process_tree_rss_mb(self._process),
            cpu_percent=psutil.cpu_percent(interval=None),
        )
        with self._lock:
            self.samples.append(sample)
        return sample

    def run(self) -> None:
        # cpu_percent(None) measures since the previous call; prime it
        psutil.cpu_percent(interval=None)
        while not self._stop_event.wait(self.interval):
            self.sample()

    def stop(self) -> list[ResourceSample]:
        """Stop sampling and return all samples."""
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout=self.interval + 1)
        with self._lock:
            return list(self.samples)


class TelemetryRecorder:
    """Thread-safe run telemetry.

    With ``enabled=False`` every method is a no-op and ``finalize`` returns
    an empty snapshot.
    """

    def __init__(
        self,
        enabled: bool = True,
        sample_interval: float = 5.0,
        disk_path: Path | None = None,
        regression_threshold: float = REGRESSION_THRESHOLD,
    ) -> None:
        self.enabled = enabled
        self.sample_interval = sample_interval
        self.disk_path = disk_path or Path.cwd()
        self.regression_threshold = regression_threshold
        self._lock = threading.Lock()
        self._stages: list[StageEvent] = []
        self._open: dict[str, StageEvent] = {}
        self._failures: list[FailureRecord] = []
        self._details: list[str] = []
        self._failure_category: FailureCategory | None = None
        self._sampler: ResourceSampler | None = None
        self._net_before: tuple[int, int] | None = None
        self._started_at: datetime | None = None
        self._started_mono: float | None = None
        self._host: HostInfo | None = None

    def start(self) -> None:
        """Snapshot network counters and host info, start sampling."""
        if not self.enabled:
            return
        self._started_at = _now()
        self._started_mono = time.monotonic()
        counters = psutil.net_io_counters()
        if counters is not None:
            self._net_before = (counters.bytes_recv, counters.bytes_sent)
        self._host = HostInfo(
            hostname=socket.gethostname(),
            platform=platform.platform(),
            cpu_cores=psutil.cpu_count(logical=True) or 1,
            memory_total_mb=psutil.virtual_memory().total // (1024 * 1024),
            disk_free_before_gb=_disk_free_gb(self.disk_path),
        )
        self._sampler = ResourceSampler(self.sample_interval)
        self._sampler.start()
        self.record_stage_start("initialization")

    def record_stage_start(self, name: str) -> None:
        if not self.enabled:
            return
        event = StageEvent(name=name, status=StageStatus.STARTED, started_at=_now())
        with self._lock:
            self._open[name] = event
            self._stages.append(event)
        logger.debug("Stage started: %s", name)

    def record_stage_complete(
        self, name: str, status: StageStatus, message: str | None = None
    ) -> None:
        """Close a stage; unknown stages are recorded with zero duration."""
        if not self.enabled:
            return
        finished = _now()
        with self._lock:
            event = self._open.pop(name, None)
            if event is None:
                event = StageEvent(name=name, status=status, started_at=finished)
                self._stages.append(event)
            event.status = status
            event.finished_at = finished
            event.duration_seconds = round(
                (finished - event.started_at).total_seconds(), 3
            )
            event.message = message
        logger.debug("Stage %s: %s", name, status.value)

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        """Record a stage around a block; exceptions mark it failed."""
        self.record_stage_start(name)
        try:
            yield
        except Exception as e:
            self.record_stage_complete(name, StageStatus.FAILURE, str(e))
            raise
        self.record_stage_complete(name, StageStatus.SUCCESS)

    def record_failure(
        self,
        stage: str,
        reason: str,
        architecture: str | None = None,
        distribution: str | None = None,
        code: str | None = None,
    ) -> FailureCategory:
        """Classify and store a failure.

        The first failure recorded becomes the run failure category.

        Returns:
            The failure category (computed even when disabled).
        """
        category = classify_failure(stage, reason, code)
        if not self.enabled:
            return category
        record = FailureRecord(
            stage=stage,
            reason=reason,
            category=category,
            architecture=architecture,
            distribution=distribution,
            code=code,
            timestamp=_now(),
        )
        with self._lock:
            self._failures.append(record)
            if self._failure_category is None:
                self._failure_category = category
        logger.debug("Failure recorded: %s (%s)", category.value, stage)
        return category

    def add_failure_detail(self, detail: str) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._details.append(detail)

    @property
    def failures(self) -> list[FailureRecord]:
        with self._lock:
            return list(self._failures)

    def finalize(self, baseline_path: Path | None = None) -> TelemetrySnapshot:
        """Stop sampling and build the run snapshot.

        Args:
            baseline_path: Baseline file compared for regressions, if any.

        Returns:
            TelemetrySnapshot.
        """
        if not self.enabled:
            return TelemetrySnapshot(enabled=False)

        if "initialization" in self._open:
            self.record_stage_complete("initialization", StageStatus.SUCCESS)

        samples = self._sampler.stop() if self._sampler is not None else []
        if self._sampler is not None and not samples:
            samples = [self._sampler.sample()]

        received = sent = 0
        counters = psutil.net_io_counters()
        if counters is not None and self._net_before is not None:
            received = max(0, counters.bytes_recv - self._net_before[0])
            sent = max(0, counters.bytes_sent - self._net_before[1])

        finished_at = _now()
        duration = 0.0
        if self._started_mono is not None:
            duration = round(time.monotonic() - self._started_mono, 3)

        host = self._host
        if host is not None:
            host = host.model_copy(
                update={"disk_free_after_gb": _disk_free_gb(self.disk_path)}
            )

        peak_memory = max((s.memory_mb for s in samples), default=0.0)
        peak_cpu = max((s.cpu_percent for s in samples), default=0.0)

        regressions: list[str] = []
        if baseline_path is not None:
            regressions = detect_regressions(
                duration,
                peak_memory,
                load_baseline(baseline_path),
                threshold=self.regression_threshold,
            )

        with self._lock:
            snapshot = TelemetrySnapshot(
                enabled=True,
                started_at=self._started_at,
                finished_at=finished_at,
                duration_seconds=duration,
                stages=list(self._stages),
                samples=samples,
                peak_memory_mb=peak_memory,
                peak_cpu_percent=peak_cpu,
                network_bytes_received=received,
                network_bytes_sent=sent,
                failures=list(self._failures),
                failure_details=list(self._details),
                failure_category=self._failure_category,
                regressions=regressions,
                host=host,
            )

        logger.info(
            "Telemetry: %.1fs, peak memory %.1f MB, downloaded %s, uploaded %s",
            duration,
            peak_memory,
            format_bytes(received),
            format_bytes(sent),
        )
        return snapshot


__all__ = [
    "ResourceSampler",
    "TelemetryRecorder",
    "format_bytes",
    "process_tree_rss_mb",
]
