"""Tests for shared types module."""

import time

import pytest

from debmatrix.types import (
    ArchitectureState,
    ArchiveFormat,
    Deadline,
    DeadlineExceeded,
    DistributionState,
    FailureCategory,
    QualityReport,
)


class TestEnums:
    """Test enum definitions."""

    def test_architecture_state_values(self) -> None:
        """ArchitectureState should have expected values."""
        assert ArchitectureState.SUCCESS.value == "success"
        assert ArchitectureState.PARTIAL_SUCCESS.value == "partial_success"
        assert ArchitectureState.SKIPPED.value == "skipped"
        assert ArchitectureState.FAILED.value == "failed"

    def test_terminal_architecture_states(self) -> None:
        """Only finished states should be terminal."""
        assert not ArchitectureState.PENDING.is_terminal
        assert not ArchitectureState.RUNNING.is_terminal
        assert ArchitectureState.PARTIAL_SUCCESS.is_terminal
        assert ArchitectureState.SKIPPED.is_terminal

    def test_distribution_state_is_str(self) -> None:
        """States should compare equal to their string values."""
        assert DistributionState.SUCCESS == "success"

    def test_archive_format_suffix(self) -> None:
        """ArchiveFormat.suffix should include the leading dot."""
        assert ArchiveFormat.TAR_GZ.suffix == ".tar.gz"
        assert ArchiveFormat.ZIP.suffix == ".zip"

    def test_failure_category_includes_timeout(self) -> None:
        """The closed category set should include timeout and unknown."""
        assert FailureCategory("timeout") is FailureCategory.TIMEOUT
        assert FailureCategory("unknown") is FailureCategory.UNKNOWN


class TestQualityReport:
    """Test QualityReport dataclass."""

    def test_defaults_pass(self) -> None:
        """An empty report should pass."""
        report = QualityReport()
        assert report.passed is True
        assert report.skipped is False

    def test_to_dict(self) -> None:
        """to_dict should carry every count."""
        report = QualityReport(errors=1, warnings=2, info=3, pedantic=4, passed=False)
        assert report.to_dict() == {
            "errors": 1,
            "warnings": 2,
            "info": 3,
            "pedantic": 4,
            "passed": False,
            "skipped": False,
        }


class TestDeadline:
    """Test Deadline helper."""

    def test_unbounded_deadline(self) -> None:
        """A deadline without seconds never expires."""
        deadline = Deadline(None)
        assert deadline.remaining() is None
        assert deadline.expired is False
        assert deadline.clamp(30) == 30
        deadline.check("anything")

    def test_clamp_uses_remaining_time(self) -> None:
        """clamp should never exceed the remaining time."""
        deadline = Deadline(5)
        clamped = deadline.clamp(3600)
        assert clamped is not None
        assert clamped <= 5

    def test_clamp_none_timeout(self) -> None:
        """clamp(None) should return the remaining time."""
        deadline = Deadline(10)
        remaining = deadline.clamp(None)
        assert remaining is not None
        assert 0 < remaining <= 10

    def test_expired_deadline_raises(self) -> None:
        """check should raise DeadlineExceeded with code timeout."""
        deadline = Deadline(0.01)
        time.sleep(0.02)

        with pytest.raises(DeadlineExceeded) as exc_info:
            deadline.check("downloading")
        assert exc_info.value.code == "timeout"
        assert "downloading" in str(exc_info.value)
