"""Performance baseline persistence and regression detection."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from debmatrix.telemetry.models import TelemetrySnapshot

logger = logging.getLogger(__name__)

REGRESSION_THRESHOLD = 0.20

BASELINE_FILENAME = "baseline.json"
METRICS_FILENAME = "metrics.json"


def load_baseline(path: Path) -> dict[str, Any] | None:
    """Load a saved baseline snapshot.

    Returns:
        The baseline as a dict, or None if absent or unreadable.
    """
    if not path.exists():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable baseline %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.warning("Ignoring malformed baseline %s", path)
        return None
    return data


def _increase(current: float, baseline: float) -> int:
    return int((current - baseline) * 100 // baseline)


def detect_regressions(
    duration_seconds: float,
    peak_memory_mb: float,
    baseline: dict[str, Any] | None,
    threshold: float = REGRESSION_THRESHOLD,
) -> list[str]:
    """Compare a run against a baseline.

    A metric regresses when it exceeds its baseline value by more than
    ``threshold`` (relative). Baseline values of zero are ignored.

    Returns:
        One message per regressed metric.
    """
    if not baseline:
        return []

    regressions = []
    baseline_duration = float(baseline.get("duration_seconds") or 0)
    baseline_memory = float(baseline.get("peak_memory_mb") or 0)

    if baseline_duration > 0 and duration_seconds > baseline_duration * (1 + threshold):
        regressions.append(
            f"Build duration increased by {_increase(duration_seconds, baseline_duration)}%"
        )
    if baseline_memory > 0 and peak_memory_mb > baseline_memory * (1 + threshold):
        regressions.append(
            f"Memory usage increased by {_increase(peak_memory_mb, baseline_memory)}%"
        )

    for regression in regressions:
        logger.warning("Performance regression detected: %s", regression)
    return regressions


def save_baseline(snapshot: TelemetrySnapshot, path: Path) -> Path:
    """Persist a snapshot as the new baseline."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
    logger.info("Current build saved as performance baseline: %s", path)
    return path


def write_metrics(snapshot: TelemetrySnapshot, telemetry_dir: Path) -> Path:
    """Write the run snapshot to the telemetry directory."""
    path = telemetry_dir / METRICS_FILENAME
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(snapshot.model_dump_json(indent=2), encoding="utf-8")
    logger.debug("Telemetry written to %s", path)
    return path


__all__ = [
    "BASELINE_FILENAME",
    "METRICS_FILENAME",
    "REGRESSION_THRESHOLD",
    "detect_regressions",
    "load_baseline",
    "save_baseline",
    "write_metrics",
]
