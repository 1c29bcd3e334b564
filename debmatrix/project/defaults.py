"""Builtin data shipped with debmatrix.

The architecture pattern table, variant preferences and the Debian
architecture lifecycle table live in ``debmatrix/data/defaults.yaml``.
"""

from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

DATA_DIR = Path(__file__).resolve().parent.parent / "data"
DEFAULTS_FILE = DATA_DIR / "defaults.yaml"
DOCKERFILE = DATA_DIR / "Dockerfile"


@lru_cache(maxsize=1)
def load_defaults() -> dict[str, Any]:
    """Load the builtin defaults table (cached)."""
    with DEFAULTS_FILE.open(encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def default_architecture_patterns() -> dict[str, str]:
    """Return the builtin architecture id to regex table."""
    return dict(load_defaults().get("architecture_patterns", {}))


def default_preferences() -> list[str]:
    """Return the builtin variant preference order."""
    return list(load_defaults().get("auto_discovery_preferences", []))


def valid_distributions() -> list[str]:
    """Return the distributions debmatrix knows about."""
    return list(load_defaults().get("distributions", {}).get("valid", []))


def builtin_architecture_support() -> dict[str, tuple[str, ...]]:
    """Return the builtin architecture to supported distributions table."""
    table = load_defaults().get("debian_architecture_support", {}) or {}
    return {
        arch: tuple(entry.get("supported_distributions", []))
        for arch, entry in table.items()
    }


__all__ = [
    "DOCKERFILE",
    "builtin_architecture_support",
    "default_architecture_patterns",
    "default_preferences",
    "load_defaults",
    "valid_distributions",
]
