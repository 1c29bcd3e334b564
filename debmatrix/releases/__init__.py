"""Upstream release listing, asset resolution and artifact fetching."""

from debmatrix.releases.fetch import ArtifactFetcher, FetchError, FetchResult
from debmatrix.releases.listing import ReleaseAssetLister, ReleaseListingError
from debmatrix.releases.resolver import ManualPatternError, ReleaseResolver

__all__ = [
    "ArtifactFetcher",
    "FetchError",
    "FetchResult",
    "ManualPatternError",
    "ReleaseAssetLister",
    "ReleaseListingError",
    "ReleaseResolver",
]
