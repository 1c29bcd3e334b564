"""Smoke tests for the CLI.

These tests verify CLI behavior without requiring network access,
docker or lintian; the build service is patched out.
"""

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from debmatrix import __version__
from debmatrix.builds.models import ArchitectureJob, DistributionJob
from debmatrix.builds.service import PreconditionError
from debmatrix.builds.summary import generate_build_summary
from debmatrix.cli import app
from debmatrix.project.request import BuildRequest
from debmatrix.resources.profiler import ResourceProfile
from debmatrix.types import ArchitectureState, DistributionState, EnvironmentKind, FailureCategory

runner = CliRunner()

ENV = {"DEBMATRIX_LOG_LEVEL": "WARNING", "DEBMATRIX_TELEMETRY_ENABLED": "false"}

CONFIG_YAML = """\
package_name: lazygit
github_repo: jesseduffield/lazygit
debian_distributions: [bookworm, trixie]
architectures: [amd64, arm64]
"""

PROFILE = ResourceProfile(
    cpu_cores=8,
    memory_mb=16384,
    disk_free_gb=200,
    environment=EnvironmentKind.INTERACTIVE,
    ci_provider=None,
    recommended_concurrency=4,
)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "lazygit.yaml"
    path.write_text(CONFIG_YAML)
    return path


def make_summary(tmp_path, request: BuildRequest, succeed: bool = True):
    jobs = []
    for arch in request.architectures:
        dist = DistributionJob(
            architecture=arch,
            distribution="bookworm",
            full_version=request.full_version("bookworm", arch),
        )
        arch_job = ArchitectureJob(architecture=arch, distributions=[dist])
        if succeed:
            package = tmp_path / request.package_filename("bookworm", arch)
            package.write_bytes(b"deb")
            dist.package_path = package
            dist.size_bytes = 3
            dist.state = DistributionState.SUCCESS
            arch_job.mark_finished(ArchitectureState.SUCCESS)
        else:
            dist.mark_failed("docker_build", "no space left", FailureCategory.DOCKER_RESOURCE)
            arch_job.mark_finished(ArchitectureState.FAILED)
        jobs.append(arch_job)
    return generate_build_summary(request, jobs, concurrency=2, concurrency_source="computed")


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "Debian packages" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_short_version_flag(self) -> None:
        """CLI -V should print version and exit 0."""
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command_shows_all_sections(self) -> None:
        """CLI config should show every settings section."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Paths:" in result.stdout
        assert "Operational:" in result.stdout
        assert "Concurrency:" in result.stdout
        assert "Timeouts (seconds):" in result.stdout
        assert "Work directory" in result.stdout

    def test_config_json(self) -> None:
        """CLI config --json should output JSON."""
        result = runner.invoke(app, ["config", "--json"], env={"DEBMATRIX_MAX_PARALLEL": "3"})
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["max_parallel"] == 3
        assert "github_token" not in data


class TestCLIValidate:
    """Test CLI validate command."""

    def test_valid_config(self, config_file) -> None:
        """A valid configuration should be summarized."""
        result = runner.invoke(app, ["validate", str(config_file)])
        assert result.exit_code == 0
        assert "Valid configuration: lazygit" in result.stdout
        assert "amd64, arm64" in result.stdout
        assert "auto" in result.stdout

    def test_invalid_config(self, tmp_path) -> None:
        """An invalid configuration should fail with exit code 1."""
        path = tmp_path / "bad.yaml"
        path.write_text("package_name: lazygit\n")
        result = runner.invoke(app, ["validate", str(path)])
        assert result.exit_code == 1
        assert "Validation failed" in result.stdout

    def test_missing_config(self, tmp_path) -> None:
        """A missing file should fail with exit code 1."""
        result = runner.invoke(app, ["validate", str(tmp_path / "absent.yaml")])
        assert result.exit_code == 1


class TestCLIBuild:
    """Test CLI build command."""

    def test_build_success(self, config_file, tmp_path) -> None:
        """A successful build should write the summary and exit 0."""
        summary_path = tmp_path / "summary.json"

        def fake_run(request, settings, **kwargs):
            return make_summary(tmp_path, request), PROFILE

        with patch("debmatrix.cli.run_build_matrix", side_effect=fake_run) as mock_run:
            result = runner.invoke(
                app,
                ["build", str(config_file), "0.44.1", "1", "--summary", str(summary_path)],
                env=ENV,
            )

        assert result.exit_code == 0, result.output
        data = json.loads(summary_path.read_text())
        assert data["total_packages"] == 2
        assert data["success"] is True
        request = mock_run.call_args.args[0]
        assert request.architectures == ("amd64", "arm64")
        assert mock_run.call_args.kwargs["cli_max_parallel"] is None

    def test_build_single_architecture(self, config_file, tmp_path) -> None:
        """A single architecture argument should narrow the request."""

        def fake_run(request, settings, **kwargs):
            return make_summary(tmp_path, request), PROFILE

        with patch("debmatrix.cli.run_build_matrix", side_effect=fake_run) as mock_run:
            result = runner.invoke(
                app,
                [
                    "build",
                    str(config_file),
                    "0.44.1",
                    "2",
                    "arm64",
                    "--max-parallel",
                    "3",
                    "--summary",
                    str(tmp_path / "s.json"),
                ],
                env=ENV,
            )

        assert result.exit_code == 0, result.output
        request = mock_run.call_args.args[0]
        assert request.architectures == ("arm64",)
        assert request.build_version == "2"
        assert mock_run.call_args.kwargs["cli_max_parallel"] == 3

    def test_build_json_output(self, config_file, tmp_path) -> None:
        """--json should print the summary as JSON."""

        def fake_run(request, settings, **kwargs):
            return make_summary(tmp_path, request), PROFILE

        with patch("debmatrix.cli.run_build_matrix", side_effect=fake_run):
            result = runner.invoke(
                app,
                [
                    "build",
                    str(config_file),
                    "0.44.1",
                    "1",
                    "--json",
                    "--summary",
                    str(tmp_path / "s.json"),
                ],
                env=ENV,
            )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["package"] == "lazygit"
        assert data["max_parallel"] == 2

    def test_build_nothing_built(self, config_file, tmp_path) -> None:
        """A run without packages should exit 1 with the failure category."""

        def fake_run(request, settings, **kwargs):
            return make_summary(tmp_path, request, succeed=False), PROFILE

        with patch("debmatrix.cli.run_build_matrix", side_effect=fake_run):
            result = runner.invoke(
                app,
                ["build", str(config_file), "0.44.1", "1", "--summary", str(tmp_path / "s.json")],
                env=ENV,
            )

        assert result.exit_code == 1
        assert "docker_resource" in result.output
        assert json.loads((tmp_path / "s.json").read_text())["success"] is False

    def test_build_precondition_failure(self, config_file, tmp_path) -> None:
        """A failed precondition should exit 1 without a summary."""
        with patch(
            "debmatrix.cli.run_build_matrix",
            side_effect=PreconditionError("Docker is not running", code="docker_unavailable"),
        ):
            result = runner.invoke(
                app,
                ["build", str(config_file), "0.44.1", "1", "--summary", str(tmp_path / "s.json")],
                env=ENV,
            )

        assert result.exit_code == 1
        assert "Docker is not running" in result.output
        assert not (tmp_path / "s.json").exists()

    def test_build_unknown_architecture(self, config_file) -> None:
        """An architecture not in the configuration should exit 1."""
        with patch("debmatrix.cli.run_build_matrix") as mock_run:
            result = runner.invoke(
                app, ["build", str(config_file), "0.44.1", "1", "riscv64"], env=ENV
            )

        assert result.exit_code == 1
        mock_run.assert_not_called()

    def test_build_flags_forwarded(self, config_file, tmp_path) -> None:
        """--no-telemetry, --no-lintian and --save-baseline should be applied."""

        def fake_run(request, settings, **kwargs):
            return make_summary(tmp_path, request), PROFILE

        with patch("debmatrix.cli.run_build_matrix", side_effect=fake_run) as mock_run:
            result = runner.invoke(
                app,
                [
                    "build",
                    str(config_file),
                    "0.44.1",
                    "1",
                    "--no-telemetry",
                    "--lintian",
                    "--save-baseline",
                    "--summary",
                    str(tmp_path / "s.json"),
                ],
                env={"DEBMATRIX_LOG_LEVEL": "WARNING"},
            )

        assert result.exit_code == 0, result.output
        request, settings = mock_run.call_args.args
        assert settings.telemetry_enabled is False
        assert request.quality.enabled is True
        assert mock_run.call_args.kwargs["save_as_baseline"] is True


class TestCLIResources:
    """Test CLI resources command."""

    def test_resources_json(self) -> None:
        """resources --json should report the profile and resolved concurrency."""
        with patch("debmatrix.cli.profile_resources", return_value=PROFILE):
            result = runner.invoke(app, ["resources", "--json", "--max-parallel", "3"], env=ENV)

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["cpu_cores"] == 8
        assert data["recommended_concurrency"] == 4
        assert data["concurrency"] == 3
        assert data["concurrency_source"] == "cli"
        assert data["warnings"] == []

    def test_resources_text(self) -> None:
        """resources should print the environment report."""
        with patch("debmatrix.cli.profile_resources", return_value=PROFILE):
            result = runner.invoke(app, ["resources"], env=ENV)

        assert result.exit_code == 0
        assert "interactive" in result.stdout


class TestCLIDiscover:
    """Test CLI discover command."""

    LISTING = (
        "lazygit_0.44.1_Linux_x86_64.tar.gz",
        "lazygit_0.44.1_Linux_arm64.tar.gz",
        "checksums.txt",
    )

    def test_discover_json(self, config_file) -> None:
        """discover --json should map architectures to assets."""
        with patch("debmatrix.cli.fetch_listing", return_value=self.LISTING):
            result = runner.invoke(
                app, ["discover", str(config_file), "0.44.1", "--json"], env=ENV
            )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["resolved"] == {
            "amd64": "lazygit_0.44.1_Linux_x86_64.tar.gz",
            "arm64": "lazygit_0.44.1_Linux_arm64.tar.gz",
        }
        tagged = {a["filename"]: a["architecture"] for a in data["assets"]}
        assert tagged["checksums.txt"] is None
        assert tagged["lazygit_0.44.1_Linux_arm64.tar.gz"] == "arm64"

    def test_discover_listing_failure(self, config_file) -> None:
        """An unavailable listing should exit 1."""
        with patch(
            "debmatrix.cli.fetch_listing",
            side_effect=PreconditionError("HTTP error 404", code="http_error"),
        ):
            result = runner.invoke(app, ["discover", str(config_file), "9.9.9"], env=ENV)

        assert result.exit_code == 1
        assert "HTTP error 404" in result.output
