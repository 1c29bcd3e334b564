"""Run telemetry, failure classification and regression detection."""

from debmatrix.telemetry.baseline import (
    detect_regressions,
    load_baseline,
    save_baseline,
    write_metrics,
)
from debmatrix.telemetry.classifier import classify_failure
from debmatrix.telemetry.models import TelemetrySnapshot
from debmatrix.telemetry.recorder import TelemetryRecorder, format_bytes

__all__ = [
    "TelemetryRecorder",
    "TelemetrySnapshot",
    "classify_failure",
    "detect_regressions",
    "format_bytes",
    "load_baseline",
    "save_baseline",
    "write_metrics",
]
