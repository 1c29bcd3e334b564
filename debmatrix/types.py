"""Shared type definitions for debmatrix.

This module contains enums, dataclasses, and small helpers shared across
subpackages to avoid circular imports.
"""

import time
from dataclasses import dataclass
from enum import Enum


class ArchitectureState(str, Enum):
    """Lifecycle state of an architecture pipeline."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether this state is terminal."""
        return self not in (ArchitectureState.PENDING, ArchitectureState.RUNNING)


class DistributionState(str, Enum):
    """Lifecycle state of a single (architecture, distribution) build."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class EnvironmentKind(str, Enum):
    """Classification of the host environment."""

    INTERACTIVE = "interactive"
    CI = "ci"
    UNKNOWN = "unknown"


class DiscoveryMode(str, Enum):
    """How release assets are mapped to architectures."""

    MANUAL = "manual"
    AUTO = "auto"


class ArchiveFormat(str, Enum):
    """Supported upstream archive formats."""

    TAR_GZ = "tar.gz"
    TGZ = "tgz"
    TAR_XZ = "tar.xz"
    TAR_BZ2 = "tar.bz2"
    ZIP = "zip"

    @property
    def suffix(self) -> str:
        """Filename suffix including the leading dot."""
        return f".{self.value}"


class StageStatus(str, Enum):
    """Status of a telemetry stage event."""

    STARTED = "started"
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"
    WARNING = "warning"


class FailureCategory(str, Enum):
    """Closed set of failure categories produced by the classifier."""

    DOCKER_MISSING_FILES = "docker_missing_files"
    DOCKER_PERMISSION = "docker_permission"
    DOCKER_RESOURCE = "docker_resource"
    DOCKER_NETWORK = "docker_network"
    DOCKERFILE_SYNTAX = "dockerfile_syntax"
    DOCKER_GENERAL = "docker_general"
    NETWORK = "network"
    DEPENDENCY = "dependency"
    ARCHITECTURE = "architecture"
    COMPILATION = "compilation"
    PACKAGING = "packaging"
    CONFIGURATION = "configuration"
    PERMISSION = "permission"
    RESOURCE = "resource"
    SECURITY = "security"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ReleaseAsset:
    """A single upstream release asset with inferred tags."""

    filename: str
    architecture: str | None = None
    variant: str | None = None


@dataclass(frozen=True)
class QualityPolicy:
    """Lintian policy applied to every produced package."""

    enabled: bool = False
    fail_on_errors: bool = True
    fail_on_warnings: bool = False
    pedantic: bool = False
    suppress_tags: tuple[str, ...] = ()


@dataclass
class QualityReport:
    """Severity counts from a quality check run."""

    errors: int = 0
    warnings: int = 0
    info: int = 0
    pedantic: int = 0
    passed: bool = True
    skipped: bool = False
    log_path: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "errors": self.errors,
            "warnings": self.warnings,
            "info": self.info,
            "pedantic": self.pedantic,
            "passed": self.passed,
            "skipped": self.skipped,
        }


class DeadlineExceeded(Exception):
    """Raised when a pipeline exceeds its deadline."""

    def __init__(self, message: str, code: str = "timeout") -> None:
        super().__init__(message)
        self.code = code


class Deadline:
    """Monotonic deadline used to bound a pipeline and clamp step timeouts."""

    def __init__(self, seconds: float | None) -> None:
        self.seconds = seconds
        self._expires_at = None if seconds is None else time.monotonic() + seconds

    def remaining(self) -> float | None:
        """Seconds left, or None when unbounded."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def clamp(self, timeout: float | None) -> float | None:
        """Return the smaller of ``timeout`` and the remaining time."""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        if timeout is None:
            return remaining
        return min(timeout, remaining)

    def check(self, what: str) -> None:
        """Raise DeadlineExceeded if the deadline has passed.

        Args:
            what: Description of the step about to start.

        Raises:
            DeadlineExceeded: If no time remains.
        """
        if self.expired:
            raise DeadlineExceeded(
                f"Deadline of {self.seconds}s exceeded before {what}"
            )


__all__ = [
    "ArchiveFormat",
    "ArchitectureState",
    "Deadline",
    "DeadlineExceeded",
    "DiscoveryMode",
    "DistributionState",
    "EnvironmentKind",
    "FailureCategory",
    "QualityPolicy",
    "QualityReport",
    "ReleaseAsset",
    "StageStatus",
]
