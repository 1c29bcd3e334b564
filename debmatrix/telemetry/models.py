"""Telemetry records.

Pydantic models so the snapshot serializes into the build summary and
the baseline file unchanged.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from debmatrix.types import FailureCategory, StageStatus


class StageEvent(BaseModel):
    """Start/end of a named stage."""

    name: str
    status: StageStatus
    started_at: datetime
    finished_at: datetime | None = None
    duration_seconds: float | None = None
    message: str | None = None


class ResourceSample(BaseModel):
    """A periodic resource sample."""

    timestamp: datetime
    memory_mb: float
    cpu_percent: float


class FailureRecord(BaseModel):
    """A classified failure."""

    stage: str
    reason: str
    category: FailureCategory
    architecture: str | None = None
    distribution: str | None = None
    code: str | None = None
    timestamp: datetime


class HostInfo(BaseModel):
    """Host the run executed on."""

    hostname: str
    platform: str
    cpu_cores: int
    memory_total_mb: int
    disk_free_before_gb: float
    disk_free_after_gb: float | None = None


class TelemetrySnapshot(BaseModel):
    """Everything telemetry recorded for one run."""

    enabled: bool = True
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_seconds: float = 0.0
    stages: list[StageEvent] = Field(default_factory=list)
    samples: list[ResourceSample] = Field(default_factory=list)
    peak_memory_mb: float = 0.0
    peak_cpu_percent: float = 0.0
    network_bytes_received: int = 0
    network_bytes_sent: int = 0
    failures: list[FailureRecord] = Field(default_factory=list)
    failure_details: list[str] = Field(default_factory=list)
    failure_category: FailureCategory | None = None
    regressions: list[str] = Field(default_factory=list)
    host: HostInfo | None = None


__all__ = [
    "FailureRecord",
    "HostInfo",
    "ResourceSample",
    "StageEvent",
    "TelemetrySnapshot",
]
