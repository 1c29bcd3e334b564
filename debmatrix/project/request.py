"""Immutable build request.

A BuildRequest is constructed once from the validated project
configuration and the command-line arguments, and is passed unchanged to
every component of the run.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

from debmatrix.project.defaults import (
    default_architecture_patterns,
    default_preferences,
)
from debmatrix.project.schema import BuildConfigSchema
from debmatrix.types import ArchiveFormat, DiscoveryMode, QualityPolicy

logger = logging.getLogger(__name__)

ALL_ARCHITECTURES = "all"


@dataclass(frozen=True)
class BuildRequest:
    """Everything a run needs to know about what to build."""

    package_name: str
    github_repo: str
    version: str
    build_version: str
    architectures: tuple[str, ...]
    distributions: tuple[str, ...]
    discovery_mode: DiscoveryMode = DiscoveryMode.AUTO
    artifact_format: ArchiveFormat = ArchiveFormat.TAR_GZ
    binary_path: str | None = None
    release_patterns: Mapping[str, str] = field(default_factory=dict)
    architecture_patterns: Mapping[str, str] = field(default_factory=dict)
    preferences: tuple[str, ...] = ()
    distribution_overrides: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    quality: QualityPolicy = field(default_factory=QualityPolicy)
    maintainer: str = "debmatrix <debmatrix@localhost>"
    description: str | None = None
    homepage: str | None = None
    max_parallel: int | None = None
    parallel_builds: bool = True

    def __post_init__(self) -> None:
        # Matrix axes are ordered sets; mappings are read-only views of copies
        object.__setattr__(self, "architectures", tuple(dict.fromkeys(self.architectures)))
        object.__setattr__(self, "distributions", tuple(dict.fromkeys(self.distributions)))
        object.__setattr__(
            self, "release_patterns", MappingProxyType(dict(self.release_patterns))
        )
        object.__setattr__(
            self, "architecture_patterns", MappingProxyType(dict(self.architecture_patterns))
        )
        object.__setattr__(
            self,
            "distribution_overrides",
            MappingProxyType(
                {arch: tuple(dists) for arch, dists in self.distribution_overrides.items()}
            ),
        )

    def full_version(self, distribution: str, architecture: str) -> str:
        """Return ``{version}-{build}+{dist}_{arch}``."""
        return f"{self.version}-{self.build_version}+{distribution}_{architecture}"

    def package_filename(self, distribution: str, architecture: str) -> str:
        """Return the .deb filename for one (distribution, architecture) pair."""
        return f"{self.package_name}_{self.full_version(distribution, architecture)}.deb"

    def with_quality(self, quality: QualityPolicy) -> "BuildRequest":
        """Return a copy with a different quality policy."""
        return replace(self, quality=quality)


def build_request_from_config(
    config: BuildConfigSchema,
    version: str,
    build_version: str,
    architecture: str = ALL_ARCHITECTURES,
) -> BuildRequest:
    """Construct a BuildRequest from a validated configuration.

    Pattern overrides and preferences from the configuration are layered
    over the builtin defaults.

    Args:
        config: Validated project configuration.
        version: Upstream release version (tag).
        build_version: Debian build revision.
        architecture: A single architecture id, or ``all``.

    Returns:
        Frozen BuildRequest.

    Raises:
        ValueError: If a single architecture is requested that the
            configuration does not define.
    """
    names = config.architecture_names()
    if architecture != ALL_ARCHITECTURES:
        if architecture not in names:
            raise ValueError(
                f"Architecture '{architecture}' is not configured "
                f"(configured: {', '.join(names)})"
            )
        names = [architecture]

    patterns = default_architecture_patterns()
    patterns.update(config.architecture_patterns)

    preferences = config.auto_discovery_preferences
    if preferences is None:
        preferences = default_preferences()

    lintian = config.lintian
    quality = QualityPolicy(
        enabled=lintian.enabled,
        fail_on_errors=lintian.fail_on_errors,
        fail_on_warnings=lintian.fail_on_warnings,
        pedantic=lintian.pedantic,
        suppress_tags=tuple(lintian.suppress_tags),
    )

    request = BuildRequest(
        package_name=config.package_name,
        github_repo=config.github_repo,
        version=version,
        build_version=build_version,
        architectures=tuple(names),
        distributions=tuple(config.debian_distributions),
        discovery_mode=config.discovery_mode,
        artifact_format=config.artifact_format,
        binary_path=config.binary_path or None,
        release_patterns=config.release_patterns(),
        architecture_patterns=patterns,
        preferences=tuple(preferences),
        distribution_overrides={
            arch: tuple(entry.distributions)
            for arch, entry in config.distribution_arch_overrides.items()
        },
        quality=quality,
        maintainer=config.maintainer,
        description=config.description,
        homepage=config.homepage,
        max_parallel=config.max_parallel,
        parallel_builds=config.parallel_builds,
    )
    logger.debug(
        "Build request: %s %s-%s, %d architecture(s), %d distribution(s), %s mode",
        request.package_name,
        request.version,
        request.build_version,
        len(request.architectures),
        len(request.distributions),
        request.discovery_mode.value,
    )
    return request


__all__ = ["ALL_ARCHITECTURES", "BuildRequest", "build_request_from_config"]
