"""GitHub release asset listing.

The asset listing of a (repository, version) release is fetched once per
run and shared by every architecture pipeline.
"""

from __future__ import annotations

import logging
import threading

import httpx

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"

# Timeout for API requests (seconds)
API_TIMEOUT = 30


class ReleaseListingError(Exception):
    """Raised when a release asset listing cannot be obtained."""

    def __init__(self, message: str, code: str = "release_listing_error") -> None:
        """Initialize ReleaseListingError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


def build_release_api_url(
    repo: str, version: str, base_url: str = GITHUB_API_BASE
) -> str:
    """Build the GitHub API URL of a release by tag."""
    return f"{base_url.rstrip('/')}/repos/{repo}/releases/tags/{version}"


def fetch_release_assets(
    client: httpx.Client,
    repo: str,
    version: str,
    base_url: str = GITHUB_API_BASE,
    timeout: float = API_TIMEOUT,
    token: str | None = None,
) -> list[str]:
    """Fetch the asset filenames of a release.

    Args:
        client: HTTPX client instance.
        repo: Repository in owner/repo form.
        version: Release tag.
        base_url: GitHub API base URL.
        timeout: Request timeout in seconds.
        token: Optional API token.

    Returns:
        Asset filenames in listing order.

    Raises:
        ReleaseListingError: If the request fails or the release has no assets.
    """
    url = build_release_api_url(repo, version, base_url)
    headers = {"Accept": "application/vnd.github+json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"

    logger.info("Fetching release assets from %s", url)
    hint = (
        f"Possible reasons: version '{version}' does not exist for {repo}, "
        "API rate limit exceeded, or network connectivity issues"
    )

    try:
        response = client.get(url, headers=headers, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPStatusError as e:
        raise ReleaseListingError(
            f"HTTP error fetching release assets from {url}: "
            f"{e.response.status_code}. {hint}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise ReleaseListingError(
            f"Timeout fetching release assets from {url}", code="timeout"
        ) from e
    except httpx.RequestError as e:
        raise ReleaseListingError(
            f"Network error fetching release assets: {e}", code="network_error"
        ) from e
    except ValueError as e:
        raise ReleaseListingError(
            f"Invalid JSON from {url}: {e}", code="invalid_response"
        ) from e

    assets = data.get("assets") if isinstance(data, dict) else None
    names = [
        asset["name"]
        for asset in assets or []
        if isinstance(asset, dict) and asset.get("name")
    ]
    if not names:
        raise ReleaseListingError(
            f"No release assets found at {url}. {hint}", code="empty_release"
        )

    logger.info("Release %s of %s has %d asset(s)", version, repo, len(names))
    return names


class ReleaseAssetLister:
    """Memoizing, thread-safe release asset lister.

    Each (repository, version) listing is fetched at most once.
    """

    def __init__(
        self,
        client: httpx.Client,
        base_url: str = GITHUB_API_BASE,
        timeout: float = API_TIMEOUT,
        token: str | None = None,
    ) -> None:
        self.client = client
        self.base_url = base_url
        self.timeout = timeout
        self.token = token
        self.fetch_count = 0
        self._cache: dict[tuple[str, str], tuple[str, ...]] = {}
        self._lock = threading.Lock()

    def get(self, repo: str, version: str) -> tuple[str, ...]:
        """Return the asset filenames of a release.

        Raises:
            ReleaseListingError: If the listing cannot be fetched or is empty.
        """
        key = (repo, version)
        with self._lock:
            if key not in self._cache:
                self.fetch_count += 1
                names = fetch_release_assets(
                    self.client,
                    repo,
                    version,
                    base_url=self.base_url,
                    timeout=self.timeout,
                    token=self.token,
                )
                self._cache[key] = tuple(names)
            return self._cache[key]


__all__ = [
    "GITHUB_API_BASE",
    "ReleaseAssetLister",
    "ReleaseListingError",
    "build_release_api_url",
    "fetch_release_assets",
]
