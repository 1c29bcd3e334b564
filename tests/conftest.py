"""Shared fixtures: in-process fakes for the build collaborators."""

import threading
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

from debmatrix.builds.models import BuildContext
from debmatrix.builds.policy import DistributionPolicy
from debmatrix.builds.runner import PackageBuildResult
from debmatrix.config import Settings
from debmatrix.project.request import BuildRequest
from debmatrix.releases.fetch import FetchResult
from debmatrix.telemetry.recorder import TelemetryRecorder
from debmatrix.types import QualityReport


class FakeResolver:
    """Maps architectures to assets; exceptions in the mapping are raised."""

    def __init__(self, assets=None):
        self.assets = assets if assets is not None else {}
        self.default = "tool_linux_{arch}.tar.gz"

    def resolve(self, architecture):
        if architecture in self.assets:
            value = self.assets[architecture]
            if isinstance(value, Exception):
                raise value
            return value
        return self.default.format(arch=architecture)


class FakeFetcher:
    """Writes a binary into the work directory instead of downloading."""

    def __init__(self, delay=0.0):
        self.delay = delay
        self.errors = {}
        self.calls = []
        self.peak = 0
        self._active = 0
        self._lock = threading.Lock()

    def fetch(self, architecture, asset, work_dir, deadline=None):
        with self._lock:
            self.calls.append(architecture)
            self._active += 1
            self.peak = max(self.peak, self._active)
        try:
            if self.delay:
                time.sleep(self.delay)
            if architecture in self.errors:
                raise self.errors[architecture]
            binary_root = Path(work_dir) / "binaries"
            binary_root.mkdir(parents=True, exist_ok=True)
            (binary_root / "tool").write_bytes(b"\x7fELF")
            return FetchResult(
                binary_root=binary_root,
                asset=asset,
                sha256="0" * 64,
                size_bytes=4,
                checksum_verified=True,
            )
        finally:
            with self._lock:
                self._active -= 1

    def count(self, architecture):
        return self.calls.count(architecture)


class FakeBackend:
    """Produces a small .deb per call; listed pairs fail or raise."""

    def __init__(self):
        self.failures = {}
        self.errors = {}
        self.barrier = None
        self.calls = []
        self._lock = threading.Lock()

    def build(self, request, architecture, distribution, binary_root, job_dir, timeout=None):
        with self._lock:
            self.calls.append((architecture, distribution))
        if self.barrier is not None:
            self.barrier.wait()
        key = (architecture, distribution)
        if key in self.errors:
            raise self.errors[key]

        started_at = datetime.now(timezone.utc)
        log_path = Path(job_dir) / "docker-build.log"
        if key in self.failures:
            log_path.write_text(self.failures[key] + "\n")
            return PackageBuildResult(
                success=False,
                exit_code=1,
                package_path=None,
                log_path=log_path,
                image_tag="fake",
                started_at=started_at,
                finished_at=datetime.now(timezone.utc),
                command="docker build .",
                error_message=self.failures[key],
            )

        log_path.write_text("built\n")
        package_path = Path(job_dir) / request.package_filename(distribution, architecture)
        package_path.write_bytes(f"deb:{architecture}:{distribution}".encode())
        return PackageBuildResult(
            success=True,
            exit_code=0,
            package_path=package_path,
            log_path=log_path,
            image_tag="fake",
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            command="docker build .",
        )

    def count(self, architecture):
        return sum(1 for arch, _ in self.calls if arch == architecture)


class FakeChecker:
    """Returns configured reports per distribution; skipped otherwise."""

    def __init__(self):
        self.reports = {}

    def check(self, package_path, timeout=None):
        for distribution, report in self.reports.items():
            if f"+{distribution}_" in package_path.name:
                return report
        return QualityReport(skipped=True)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        work_dir=tmp_path / "work",
        output_dir=tmp_path / "out",
        log_dir=tmp_path / "logs",
        telemetry_dir=tmp_path / "telemetry",
        poll_interval=0.01,
        telemetry_enabled=False,
    )


@pytest.fixture
def build_request() -> BuildRequest:
    return BuildRequest(
        package_name="lazygit",
        github_repo="jesseduffield/lazygit",
        version="0.44.1",
        build_version="1",
        architectures=("amd64", "arm64", "armel"),
        distributions=("bookworm", "trixie", "forky"),
    )


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def checker() -> FakeChecker:
    return FakeChecker()


@pytest.fixture
def make_context(settings, build_request, resolver, fetcher, backend, checker):
    """Factory for a BuildContext wired to the fakes."""

    def _make(request=None, policy=None, telemetry=None):
        request = request or build_request
        return BuildContext(
            request=request,
            settings=settings,
            resolver=resolver,
            fetcher=fetcher,
            backend=backend,
            checker=checker,
            policy=policy
            or DistributionPolicy(overrides=request.distribution_overrides),
            telemetry=telemetry or TelemetryRecorder(enabled=False),
        )

    return _make


@pytest.fixture
def binary_root(tmp_path) -> Path:
    root = tmp_path / "binaries"
    root.mkdir()
    (root / "tool").write_bytes(b"\x7fELF")
    return root
