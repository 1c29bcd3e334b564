"""Distribution / architecture support policy.

Some Debian architectures are only released for certain distribution
generations. The builtin lifecycle table ships in defaults.yaml; a project
can override it per architecture, and its override always wins.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from debmatrix.project.defaults import builtin_architecture_support


class DistributionPolicy:
    """Decides which (architecture, distribution) pairs are built."""

    def __init__(
        self,
        builtin: Mapping[str, Iterable[str]] | None = None,
        overrides: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        if builtin is None:
            builtin = builtin_architecture_support()
        self.builtin = {arch: frozenset(dists) for arch, dists in builtin.items()}
        self.overrides = {
            arch: frozenset(dists) for arch, dists in (overrides or {}).items()
        }

    def is_supported(self, architecture: str, distribution: str) -> bool:
        """Whether a distribution is built for an architecture."""
        if architecture in self.overrides:
            return distribution in self.overrides[architecture]
        if architecture in self.builtin:
            return distribution in self.builtin[architecture]
        return True

    def supported_distributions(
        self, architecture: str, distributions: Iterable[str]
    ) -> list[str]:
        """Filter distributions down to those built for an architecture."""
        return [d for d in distributions if self.is_supported(architecture, d)]

    def reason(self, architecture: str, distribution: str) -> str:
        """Explain why a pair is skipped."""
        source = "project override" if architecture in self.overrides else "Debian support table"
        return f"{architecture} is not built for {distribution} ({source})"


__all__ = ["DistributionPolicy"]
