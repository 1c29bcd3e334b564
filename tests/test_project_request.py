"""Tests for BuildRequest construction."""

from dataclasses import FrozenInstanceError

import pytest

from debmatrix.project.defaults import default_architecture_patterns, default_preferences
from debmatrix.project.request import BuildRequest, build_request_from_config
from debmatrix.project.schema import BuildConfigSchema
from debmatrix.types import DiscoveryMode, QualityPolicy


def _schema(**overrides) -> BuildConfigSchema:
    data = {
        "package_name": "lazygit",
        "github_repo": "jesseduffield/lazygit",
        "debian_distributions": ["bookworm", "trixie"],
        "architectures": ["amd64", "arm64", "armhf"],
    }
    data.update(overrides)
    return BuildConfigSchema.model_validate(data)


class TestBuildRequest:
    """Tests for BuildRequest helpers."""

    def test_full_version(self):
        """full_version should combine version, build, dist and arch."""
        request = BuildRequest(
            package_name="lazygit",
            github_repo="jesseduffield/lazygit",
            version="0.44.1",
            build_version="1",
            architectures=("amd64",),
            distributions=("bookworm",),
        )

        assert request.full_version("bookworm", "amd64") == "0.44.1-1+bookworm_amd64"
        assert (
            request.package_filename("bookworm", "amd64")
            == "lazygit_0.44.1-1+bookworm_amd64.deb"
        )

    def test_request_is_frozen(self):
        """BuildRequest should be immutable."""
        request = BuildRequest(
            package_name="lazygit",
            github_repo="jesseduffield/lazygit",
            version="0.44.1",
            build_version="1",
            architectures=("amd64",),
            distributions=("bookworm",),
        )

        with pytest.raises(FrozenInstanceError):
            request.version = "0.45.0"  # type: ignore[misc]

    def test_repeated_axes_collapsed(self):
        """Repeated architectures and distributions should appear once, in order."""
        request = BuildRequest(
            package_name="lazygit",
            github_repo="jesseduffield/lazygit",
            version="0.44.1",
            build_version="1",
            architectures=("amd64", "arm64", "amd64"),
            distributions=("bookworm", "bookworm", "trixie"),
        )

        assert request.architectures == ("amd64", "arm64")
        assert request.distributions == ("bookworm", "trixie")

    def test_mappings_are_read_only(self):
        """Mapping fields should be read-only copies of their inputs."""
        patterns = {"amd64": "x86_64"}
        request = BuildRequest(
            package_name="lazygit",
            github_repo="jesseduffield/lazygit",
            version="0.44.1",
            build_version="1",
            architectures=("amd64",),
            distributions=("bookworm",),
            architecture_patterns=patterns,
            distribution_overrides={"amd64": ["bookworm"]},
        )
        patterns["amd64"] = "changed"

        assert request.architecture_patterns["amd64"] == "x86_64"
        assert request.distribution_overrides["amd64"] == ("bookworm",)
        with pytest.raises(TypeError):
            request.architecture_patterns["arm64"] = "aarch64"  # type: ignore[index]
        with pytest.raises(TypeError):
            request.release_patterns["amd64"] = "tool.tar.gz"  # type: ignore[index]

    def test_with_quality_returns_copy(self):
        """with_quality should not modify the original request."""
        request = build_request_from_config(_schema(), "0.44.1", "1")
        enabled = request.with_quality(QualityPolicy(enabled=True))

        assert enabled.quality.enabled is True
        assert request.quality.enabled is False


class TestBuildRequestFromConfig:
    """Tests for build_request_from_config function."""

    def test_all_architectures(self):
        """'all' should keep every configured architecture in order."""
        request = build_request_from_config(_schema(), "0.44.1", "1")

        assert request.architectures == ("amd64", "arm64", "armhf")
        assert request.distributions == ("bookworm", "trixie")
        assert request.discovery_mode == DiscoveryMode.AUTO

    def test_single_architecture(self):
        """A single architecture should narrow the request."""
        request = build_request_from_config(_schema(), "0.44.1", "1", "arm64")

        assert request.architectures == ("arm64",)

    def test_unknown_architecture(self):
        """An architecture missing from the configuration is an error."""
        with pytest.raises(ValueError, match="not configured"):
            build_request_from_config(_schema(), "0.44.1", "1", "s390x")

    def test_builtin_patterns_and_preferences(self):
        """Builtin patterns and preferences should be used by default."""
        request = build_request_from_config(_schema(), "0.44.1", "1")

        assert request.architecture_patterns == default_architecture_patterns()
        assert request.preferences == tuple(default_preferences())

    def test_pattern_overrides_layered(self):
        """Configured patterns should override only their architecture."""
        request = build_request_from_config(
            _schema(
                architecture_patterns={"amd64": "linux-64bit"},
                auto_discovery_preferences=["musl"],
            ),
            "0.44.1",
            "1",
        )

        assert request.architecture_patterns["amd64"] == "linux-64bit"
        assert request.architecture_patterns["arm64"] == (
            default_architecture_patterns()["arm64"]
        )
        assert request.preferences == ("musl",)

    def test_manual_mode_templates(self):
        """Manual mode should carry the release templates."""
        request = build_request_from_config(
            _schema(
                architectures={
                    "amd64": {"release_pattern": "lazygit_{version}_Linux_x86_64.tar.gz"}
                }
            ),
            "0.44.1",
            "2",
        )

        assert request.discovery_mode == DiscoveryMode.MANUAL
        assert request.release_patterns == {
            "amd64": "lazygit_{version}_Linux_x86_64.tar.gz"
        }

    def test_quality_and_overrides(self):
        """Lintian settings and distribution overrides should be converted."""
        request = build_request_from_config(
            _schema(
                lintian={"enabled": True, "suppress_tags": ["no-manual-page"]},
                distribution_arch_overrides={"armhf": {"distributions": ["bookworm"]}},
                max_parallel=2,
                binary_path="",
            ),
            "0.44.1",
            "1",
        )

        assert request.quality == QualityPolicy(
            enabled=True, suppress_tags=("no-manual-page",)
        )
        assert request.distribution_overrides == {"armhf": ("bookworm",)}
        assert request.max_parallel == 2
        assert request.binary_path is None
