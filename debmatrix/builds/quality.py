"""Lintian quality checks for produced packages."""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

from debmatrix.types import QualityPolicy, QualityReport

logger = logging.getLogger(__name__)

SEVERITY_PREFIXES = {
    "E: ": "errors",
    "W: ": "warnings",
    "I: ": "info",
    "P: ": "pedantic",
}


class QualityCheckError(Exception):
    """Raised when lintian cannot be run to completion."""

    def __init__(self, message: str, code: str = "quality_check_error") -> None:
        super().__init__(message)
        self.code = code


def compose_lintian_command(
    lintian_bin: str, policy: QualityPolicy, package_path: Path
) -> list[str]:
    """Compose the lintian command line."""
    cmd = [lintian_bin]
    if policy.pedantic:
        cmd.append("--pedantic")
    cmd.append("--info")
    if policy.suppress_tags:
        cmd.extend(["--suppress-tags", ",".join(policy.suppress_tags)])
    cmd.append(str(package_path))
    return cmd


def parse_lintian_output(output: str) -> QualityReport:
    """Count lintian tags by severity."""
    report = QualityReport()
    for line in output.splitlines():
        for prefix, attr in SEVERITY_PREFIXES.items():
            if line.startswith(prefix):
                setattr(report, attr, getattr(report, attr) + 1)
                break
    return report


def evaluate_policy(report: QualityReport, policy: QualityPolicy) -> QualityReport:
    """Mark a report failed when policy thresholds are exceeded."""
    report.passed = not (
        (policy.fail_on_errors and report.errors > 0)
        or (policy.fail_on_warnings and report.warnings > 0)
    )
    return report


def describe_report(report: QualityReport) -> str:
    """One-line description of a report."""
    if report.skipped:
        return "lintian skipped"
    return (
        f"lintian: {report.errors} error(s), {report.warnings} warning(s), "
        f"{report.info} info, {report.pedantic} pedantic"
    )


class LintianChecker:
    """Runs lintian on produced packages according to a policy.

    Results are written to ``results_dir`` as ``{package}.txt``.
    """

    def __init__(
        self,
        policy: QualityPolicy,
        results_dir: Path,
        lintian_bin: str = "lintian",
    ) -> None:
        self.policy = policy
        self.results_dir = results_dir
        self.lintian_bin = lintian_bin

    def available(self) -> bool:
        return shutil.which(self.lintian_bin) is not None

    def check(self, package_path: Path, timeout: float | None = None) -> QualityReport:
        """Check a package.

        Returns:
            QualityReport; skipped and passing when lintian is disabled or
            not installed.

        Raises:
            QualityCheckError: If lintian times out or cannot start.
        """
        if not self.policy.enabled:
            return QualityReport(skipped=True)
        if not self.available():
            logger.warning(
                "Lintian is not installed. Skipping package validation. "
                "Install with: sudo apt-get install -y lintian"
            )
            return QualityReport(skipped=True)

        cmd = compose_lintian_command(self.lintian_bin, self.policy, package_path)
        logger.info("Running lintian on %s", package_path.name)

        # lintian exits nonzero whenever it reports tags
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise QualityCheckError(
                f"lintian timed out after {timeout} seconds on {package_path.name}",
                code="timeout",
            ) from e
        except OSError as e:
            raise QualityCheckError(
                f"Failed to run lintian: {e}", code="execution_error"
            ) from e

        output = result.stdout + result.stderr
        self.results_dir.mkdir(parents=True, exist_ok=True)
        log_path = self.results_dir / f"{package_path.stem}.txt"
        log_path.write_text(output, encoding="utf-8")

        report = evaluate_policy(parse_lintian_output(output), self.policy)
        report.log_path = str(log_path)

        if report.errors:
            logger.warning("%s: %s", package_path.name, describe_report(report))
        else:
            logger.info("%s: %s", package_path.name, describe_report(report))
        return report


__all__ = [
    "LintianChecker",
    "QualityCheckError",
    "compose_lintian_command",
    "describe_report",
    "evaluate_policy",
    "parse_lintian_output",
]
