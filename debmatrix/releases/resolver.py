"""Release asset resolution.

Maps an architecture to the single upstream release asset used to build
it, either from an explicit filename template (manual mode) or by
pattern-matching the release asset listing (auto-discovery).
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence

from debmatrix.project.request import BuildRequest
from debmatrix.types import ArchiveFormat, DiscoveryMode, ReleaseAsset

logger = logging.getLogger(__name__)

# Archive suffixes accepted in addition to the configured format
FALLBACK_SUFFIXES = (".tar.gz", ".tgz", ".zip")

# Filenames containing any of these tokens are never build candidates
EXCLUDED_TOKENS = ("sha256", "checksum", "source")

REQUIRED_TOKEN = "linux"

VERSION_PLACEHOLDER = "{version}"

# Known build variants, inferred from asset filenames
KNOWN_VARIANTS = ("musl", "gnu", "static")


class ManualPatternError(Exception):
    """Raised when manual mode has no template for a requested architecture."""

    def __init__(self, message: str, code: str = "missing_release_pattern") -> None:
        """Initialize ManualPatternError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


def compile_patterns(patterns: Mapping[str, str]) -> dict[str, re.Pattern[str]]:
    """Compile an architecture pattern table (case-insensitive)."""
    return {arch: re.compile(pattern, re.IGNORECASE) for arch, pattern in patterns.items()}


def infer_architecture(
    filename: str, compiled: dict[str, re.Pattern[str]]
) -> str | None:
    """Return the first architecture whose pattern matches a filename."""
    for arch, pattern in compiled.items():
        if pattern.search(filename):
            return arch
    return None


def infer_variant(filename: str) -> str | None:
    """Return the build variant token found in a filename, if any."""
    lowered = filename.lower()
    for variant in KNOWN_VARIANTS:
        if variant in lowered:
            return variant
    return None


def parse_release_assets(
    filenames: Iterable[str], patterns: Mapping[str, str]
) -> list[ReleaseAsset]:
    """Tag each listing entry with its inferred architecture and variant."""
    compiled = compile_patterns(patterns)
    return [
        ReleaseAsset(
            filename=name,
            architecture=infer_architecture(name, compiled),
            variant=infer_variant(name),
        )
        for name in filenames
    ]


def is_archive_candidate(filename: str, artifact_format: ArchiveFormat) -> bool:
    """Whether a filename is a non-checksum, non-source Linux archive."""
    lowered = filename.lower()
    suffixes = (artifact_format.suffix, *FALLBACK_SUFFIXES)
    if not lowered.endswith(suffixes):
        return False
    if any(token in lowered for token in EXCLUDED_TOKENS):
        return False
    return REQUIRED_TOKEN in lowered


def filter_candidates(
    filenames: Iterable[str],
    pattern: str,
    artifact_format: ArchiveFormat = ArchiveFormat.TAR_GZ,
) -> list[str]:
    """Return listing entries that may be the archive for one architecture.

    Args:
        filenames: Release asset filenames, in listing order.
        pattern: Architecture regular expression.
        artifact_format: Configured archive format.

    Returns:
        Matching filenames in listing order.
    """
    regex = re.compile(pattern, re.IGNORECASE)
    return [
        name
        for name in filenames
        if is_archive_candidate(name, artifact_format) and regex.search(name)
    ]


def select_preferred(candidates: Sequence[str], preferences: Sequence[str]) -> str | None:
    """Apply the variant preference order, falling back to the first candidate."""
    for preference in preferences:
        token = preference.lower()
        for name in candidates:
            if token in name.lower():
                return name
    return candidates[0] if candidates else None


def resolve_manual(architecture: str, templates: Mapping[str, str], version: str) -> str:
    """Substitute the version into an architecture's filename template.

    Raises:
        ManualPatternError: If no template exists for the architecture.
    """
    template = templates.get(architecture)
    if not template:
        raise ManualPatternError(
            f"No release_pattern configured for architecture {architecture}"
        )
    if VERSION_PLACEHOLDER not in template:
        logger.warning(
            "Release pattern for %s doesn't contain %s placeholder: %s",
            architecture,
            VERSION_PLACEHOLDER,
            template,
        )
    return template.replace(VERSION_PLACEHOLDER, version)


def auto_discover(
    architecture: str,
    filenames: Sequence[str],
    patterns: Mapping[str, str],
    preferences: Sequence[str],
    artifact_format: ArchiveFormat = ArchiveFormat.TAR_GZ,
) -> str | None:
    """Discover the asset for an architecture from the release listing.

    Returns:
        The selected filename, or None when nothing matches.
    """
    pattern = patterns.get(architecture)
    if not pattern:
        logger.info("No discovery pattern known for architecture %s", architecture)
        return None

    candidates = filter_candidates(filenames, pattern, artifact_format)
    selected = select_preferred(candidates, preferences)
    if selected is None:
        logger.info(
            "No release asset matches %s (pattern: %s)", architecture, pattern
        )
    else:
        logger.debug(
            "Discovered %s for %s among %d candidate(s)",
            selected,
            architecture,
            len(candidates),
        )
    return selected


class ReleaseResolver:
    """Resolves architectures to release asset filenames for one request."""

    def __init__(self, request: BuildRequest, listing: Sequence[str]) -> None:
        self.request = request
        self.listing = tuple(listing)

    @property
    def mode(self) -> DiscoveryMode:
        return self.request.discovery_mode

    def resolve(self, architecture: str) -> str | None:
        """Return the asset filename for an architecture.

        Returns:
            Filename, or None when auto-discovery finds no asset.

        Raises:
            ManualPatternError: In manual mode, when no template exists.
        """
        if self.mode == DiscoveryMode.MANUAL:
            return resolve_manual(
                architecture, self.request.release_patterns, self.request.version
            )
        return auto_discover(
            architecture,
            self.listing,
            self.request.architecture_patterns,
            self.request.preferences,
            self.request.artifact_format,
        )

    def assets(self) -> list[ReleaseAsset]:
        """Return the tagged release listing."""
        return parse_release_assets(self.listing, self.request.architecture_patterns)


__all__ = [
    "ManualPatternError",
    "ReleaseResolver",
    "auto_discover",
    "filter_candidates",
    "infer_architecture",
    "infer_variant",
    "parse_release_assets",
    "resolve_manual",
    "select_preferred",
]
