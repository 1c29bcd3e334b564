"""Tests for baseline persistence and regression detection."""

import json

from debmatrix.telemetry.baseline import (
    detect_regressions,
    load_baseline,
    save_baseline,
    write_metrics,
)
from debmatrix.telemetry.models import TelemetrySnapshot


class TestDetectRegressions:
    """Tests for detect_regressions function."""

    def test_no_baseline(self):
        """Without a baseline nothing regresses."""
        assert detect_regressions(100.0, 500.0, None) == []

    def test_within_threshold(self):
        """Increases up to the threshold should not be reported."""
        baseline = {"duration_seconds": 100.0, "peak_memory_mb": 500.0}
        assert detect_regressions(110.0, 550.0, baseline) == []

    def test_duration_and_memory_regress(self):
        """Increases beyond the threshold should be reported with percentages."""
        baseline = {"duration_seconds": 100.0, "peak_memory_mb": 500.0}

        regressions = detect_regressions(150.0, 750.0, baseline)

        assert regressions == [
            "Build duration increased by 50%",
            "Memory usage increased by 50%",
        ]

    def test_zero_baseline_ignored(self):
        """Zero baseline values should never produce a regression."""
        baseline = {"duration_seconds": 0, "peak_memory_mb": 0}
        assert detect_regressions(1000.0, 1000.0, baseline) == []

    def test_custom_threshold(self):
        """A lower threshold should flag smaller increases."""
        baseline = {"duration_seconds": 100.0}
        assert detect_regressions(115.0, 0.0, baseline, threshold=0.10) == [
            "Build duration increased by 15%"
        ]


class TestBaselineFiles:
    """Tests for baseline and metrics files."""

    def test_save_and_load(self, tmp_path):
        """A saved baseline should load back as a dict."""
        snapshot = TelemetrySnapshot(duration_seconds=42.5, peak_memory_mb=300.0)
        path = save_baseline(snapshot, tmp_path / "telemetry" / "baseline.json")

        baseline = load_baseline(path)

        assert baseline["duration_seconds"] == 42.5
        assert baseline["peak_memory_mb"] == 300.0

    def test_missing_baseline(self, tmp_path):
        assert load_baseline(tmp_path / "absent.json") is None

    def test_unreadable_baseline(self, tmp_path, caplog):
        """Corrupt or non-object baselines should be ignored with a warning."""
        corrupt = tmp_path / "corrupt.json"
        corrupt.write_text("{not json")
        listed = tmp_path / "list.json"
        listed.write_text("[1, 2]")

        assert load_baseline(corrupt) is None
        assert load_baseline(listed) is None
        assert "Ignoring" in caplog.text

    def test_write_metrics(self, tmp_path):
        """Metrics should be written as metrics.json in the telemetry directory."""
        path = write_metrics(TelemetrySnapshot(duration_seconds=1.0), tmp_path / "t")

        assert path == tmp_path / "t" / "metrics.json"
        assert json.loads(path.read_text())["duration_seconds"] == 1.0
