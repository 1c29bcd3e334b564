"""Tests for the GitHub release asset listing.

These tests use respx to mock the GitHub API.
"""

import httpx
import pytest
import respx

from debmatrix.releases.listing import (
    ReleaseAssetLister,
    ReleaseListingError,
    build_release_api_url,
    fetch_release_assets,
)

RELEASE_URL = "https://api.github.com/repos/jesseduffield/lazygit/releases/tags/v0.44.1"
RELEASE_JSON = {
    "tag_name": "v0.44.1",
    "assets": [
        {"name": "lazygit_0.44.1_Linux_x86_64.tar.gz"},
        {"name": "lazygit_0.44.1_Linux_arm64.tar.gz"},
        {"name": "checksums.txt"},
    ],
}


class TestBuildReleaseApiUrl:
    """Tests for build_release_api_url function."""

    def test_default_base(self):
        """Should build the releases/tags URL."""
        assert build_release_api_url("jesseduffield/lazygit", "v0.44.1") == RELEASE_URL

    def test_custom_base_trailing_slash(self):
        """Should tolerate a trailing slash on the base URL."""
        url = build_release_api_url("o/r", "1.0", base_url="https://ghe.local/api/v3/")
        assert url == "https://ghe.local/api/v3/repos/o/r/releases/tags/1.0"


class TestFetchReleaseAssets:
    """Tests for fetch_release_assets function."""

    @respx.mock
    def test_returns_asset_names(self):
        """Should return asset filenames in listing order."""
        respx.get(RELEASE_URL).mock(return_value=httpx.Response(200, json=RELEASE_JSON))

        with httpx.Client() as client:
            names = fetch_release_assets(client, "jesseduffield/lazygit", "v0.44.1")

        assert names == [
            "lazygit_0.44.1_Linux_x86_64.tar.gz",
            "lazygit_0.44.1_Linux_arm64.tar.gz",
            "checksums.txt",
        ]

    @respx.mock
    def test_sends_token(self):
        """Should send the token as a bearer authorization header."""
        route = respx.get(RELEASE_URL).mock(
            return_value=httpx.Response(200, json=RELEASE_JSON)
        )

        with httpx.Client() as client:
            fetch_release_assets(client, "jesseduffield/lazygit", "v0.44.1", token="abc")

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer abc"
        assert request.headers["Accept"] == "application/vnd.github+json"

    @respx.mock
    def test_not_found(self):
        """A 404 should raise http_error."""
        respx.get(RELEASE_URL).mock(return_value=httpx.Response(404))

        with httpx.Client() as client, pytest.raises(ReleaseListingError) as exc_info:
            fetch_release_assets(client, "jesseduffield/lazygit", "v0.44.1")
        assert exc_info.value.code == "http_error"
        assert "404" in str(exc_info.value)

    @respx.mock
    def test_empty_release(self):
        """A release without assets should raise empty_release."""
        respx.get(RELEASE_URL).mock(
            return_value=httpx.Response(200, json={"tag_name": "v0.44.1", "assets": []})
        )

        with httpx.Client() as client, pytest.raises(ReleaseListingError) as exc_info:
            fetch_release_assets(client, "jesseduffield/lazygit", "v0.44.1")
        assert exc_info.value.code == "empty_release"

    @respx.mock
    def test_invalid_json(self):
        """A non-JSON body should raise invalid_response."""
        respx.get(RELEASE_URL).mock(return_value=httpx.Response(200, text="<html>"))

        with httpx.Client() as client, pytest.raises(ReleaseListingError) as exc_info:
            fetch_release_assets(client, "jesseduffield/lazygit", "v0.44.1")
        assert exc_info.value.code == "invalid_response"

    @respx.mock
    def test_timeout(self):
        """A timeout should raise with code timeout."""
        respx.get(RELEASE_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        with httpx.Client() as client, pytest.raises(ReleaseListingError) as exc_info:
            fetch_release_assets(client, "jesseduffield/lazygit", "v0.44.1")
        assert exc_info.value.code == "timeout"

    @respx.mock
    def test_network_error(self):
        """A connection failure should raise network_error."""
        respx.get(RELEASE_URL).mock(side_effect=httpx.ConnectError("refused"))

        with httpx.Client() as client, pytest.raises(ReleaseListingError) as exc_info:
            fetch_release_assets(client, "jesseduffield/lazygit", "v0.44.1")
        assert exc_info.value.code == "network_error"


class TestReleaseAssetLister:
    """Tests for ReleaseAssetLister memoization."""

    @respx.mock
    def test_fetches_once_per_release(self):
        """Repeated lookups of one release should hit the API once."""
        route = respx.get(RELEASE_URL).mock(
            return_value=httpx.Response(200, json=RELEASE_JSON)
        )

        with httpx.Client() as client:
            lister = ReleaseAssetLister(client)
            first = lister.get("jesseduffield/lazygit", "v0.44.1")
            second = lister.get("jesseduffield/lazygit", "v0.44.1")

        assert first == second
        assert isinstance(first, tuple)
        assert route.call_count == 1
        assert lister.fetch_count == 1

    @respx.mock
    def test_errors_are_not_cached(self):
        """A failed lookup should be retried on the next call."""
        route = respx.get(RELEASE_URL).mock(
            side_effect=[httpx.Response(502), httpx.Response(200, json=RELEASE_JSON)]
        )

        with httpx.Client() as client:
            lister = ReleaseAssetLister(client)
            with pytest.raises(ReleaseListingError):
                lister.get("jesseduffield/lazygit", "v0.44.1")
            names = lister.get("jesseduffield/lazygit", "v0.44.1")

        assert len(names) == 3
        assert route.call_count == 2
