"""Host resource profiling and concurrency bounds."""

from debmatrix.resources.profiler import (
    ResourceProfile,
    apply_graceful_degradation,
    compute_recommended_concurrency,
    detect_environment,
    profile_resources,
    resolve_concurrency,
)

__all__ = [
    "ResourceProfile",
    "apply_graceful_degradation",
    "compute_recommended_concurrency",
    "detect_environment",
    "profile_resources",
    "resolve_concurrency",
]
