"""Pydantic models for project configuration validation.

This module defines the Pydantic models for validating the multi-arch
build configuration loaded from YAML/JSON files.
"""

import logging
import re
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from debmatrix.project.defaults import valid_distributions
from debmatrix.types import ArchiveFormat, DiscoveryMode

logger = logging.getLogger(__name__)

GITHUB_REPO_PATTERN = re.compile(r"^[a-zA-Z0-9_.\-]+/[a-zA-Z0-9_.\-]+$")
PACKAGE_NAME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9+.\-]+$")
ARCHITECTURE_PATTERN = re.compile(r"^[a-z0-9]+$")

KNOWN_DISTRIBUTIONS = tuple(valid_distributions())


class ArchitectureEntrySchema(BaseModel):
    """Manual-mode architecture entry.

    Attributes:
        release_pattern: Asset filename template with a {version} placeholder.
    """

    model_config = ConfigDict(extra="forbid")

    release_pattern: str | None = Field(
        default=None, description="Asset filename template"
    )


class DistributionOverrideSchema(BaseModel):
    """Per-architecture distribution allow-list."""

    model_config = ConfigDict(extra="forbid")

    distributions: list[str] = Field(description="Distributions allowed")


class LintianSchema(BaseModel):
    """Quality-check policy.

    Attributes:
        enabled: Run lintian on every produced package.
        fail_on_errors: Fail the distribution job when lintian reports errors.
        fail_on_warnings: Fail the distribution job when lintian reports warnings.
        pedantic: Pass --pedantic to lintian.
        suppress_tags: Lintian tags to suppress.
    """

    model_config = ConfigDict(extra="forbid")

    enabled: bool = False
    fail_on_errors: bool = True
    fail_on_warnings: bool = False
    pedantic: bool = False
    suppress_tags: list[str] = Field(default_factory=list)


class BuildConfigSchema(BaseModel):
    """Complete project configuration.

    The shape of ``architectures`` selects the discovery mode: a list of
    architecture ids enables auto-discovery, a mapping of architecture id to
    ``{release_pattern: ...}`` selects manual mode.
    """

    model_config = ConfigDict(extra="forbid")

    package_name: Annotated[
        str, Field(description="Debian package name", min_length=2, max_length=255)
    ]
    github_repo: Annotated[
        str, Field(description="Upstream repository (owner/repo)", min_length=3)
    ]
    artifact_format: ArchiveFormat = Field(
        default=ArchiveFormat.TAR_GZ, description="Upstream archive format"
    )
    binary_path: str | None = Field(
        default=None, description="Subpath of the binaries inside the archive"
    )
    parallel_builds: bool = Field(
        default=True, description="Build architectures in parallel"
    )
    max_parallel: int | None = Field(
        default=None, ge=1, description="Requested concurrent architecture builds"
    )
    debian_distributions: list[str] = Field(
        min_length=1, description="Target Debian distributions"
    )
    architectures: list[str] | dict[str, ArchitectureEntrySchema] = Field(
        description="Architectures (list for auto-discovery, mapping for manual)"
    )
    architecture_patterns: dict[str, str] = Field(
        default_factory=dict, description="Auto-discovery pattern overrides"
    )
    auto_discovery_preferences: list[str] | None = Field(
        default=None, description="Preferred build variants, in order"
    )
    distribution_arch_overrides: dict[str, DistributionOverrideSchema] = Field(
        default_factory=dict, description="Per-architecture distribution allow-lists"
    )
    maintainer: str = Field(
        default="debmatrix <debmatrix@localhost>", description="Package maintainer"
    )
    description: str | None = Field(default=None, description="Package description")
    homepage: str | None = Field(default=None, description="Upstream homepage")
    lintian: LintianSchema = Field(default_factory=LintianSchema)

    @field_validator("package_name")
    @classmethod
    def validate_package_name(cls, v: str) -> str:
        """Validate package_name is a valid Debian package name."""
        if not PACKAGE_NAME_PATTERN.match(v):
            raise ValueError(
                f"package_name must match {PACKAGE_NAME_PATTERN.pattern}, got '{v}'"
            )
        return v

    @field_validator("github_repo")
    @classmethod
    def validate_github_repo(cls, v: str) -> str:
        """Validate github_repo is owner/repo."""
        if not GITHUB_REPO_PATTERN.match(v):
            raise ValueError(f"Invalid github_repo format: {v} (expected: owner/repo)")
        return v

    @field_validator("debian_distributions")
    @classmethod
    def validate_distributions(cls, v: list[str]) -> list[str]:
        """Reject duplicates and warn about unknown distribution names."""
        duplicates = sorted({dist for dist in v if v.count(dist) > 1})
        if duplicates:
            raise ValueError(f"Duplicate distribution(s): {', '.join(duplicates)}")
        for dist in v:
            if dist not in KNOWN_DISTRIBUTIONS:
                logger.warning(
                    "Unknown distribution: %s (valid: %s)",
                    dist,
                    " ".join(KNOWN_DISTRIBUTIONS),
                )
        return v

    @field_validator("architecture_patterns")
    @classmethod
    def validate_patterns(cls, v: dict[str, str]) -> dict[str, str]:
        """Validate pattern overrides compile as regular expressions."""
        for arch, pattern in v.items():
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"Invalid pattern for {arch}: {e}") from e
        return v

    @model_validator(mode="after")
    def validate_architectures(self) -> "BuildConfigSchema":
        """Validate at least one architecture is defined with a sane id."""
        names = list(self.architectures)
        if not names:
            raise ValueError("No architectures defined")
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate architecture(s): {', '.join(duplicates)}")
        for name in names:
            if not ARCHITECTURE_PATTERN.match(name):
                raise ValueError(f"Invalid architecture id: '{name}'")
        return self

    @property
    def discovery_mode(self) -> DiscoveryMode:
        """Discovery mode selected by the shape of ``architectures``."""
        if isinstance(self.architectures, dict):
            return DiscoveryMode.MANUAL
        return DiscoveryMode.AUTO

    def architecture_names(self) -> list[str]:
        """Return architecture ids in configuration order."""
        return list(self.architectures)

    def release_patterns(self) -> dict[str, str]:
        """Return manual-mode templates for architectures that define one."""
        if not isinstance(self.architectures, dict):
            return {}
        return {
            arch: entry.release_pattern
            for arch, entry in self.architectures.items()
            if entry.release_pattern
        }


__all__ = [
    "KNOWN_DISTRIBUTIONS",
    "ArchitectureEntrySchema",
    "BuildConfigSchema",
    "DistributionOverrideSchema",
    "LintianSchema",
]
