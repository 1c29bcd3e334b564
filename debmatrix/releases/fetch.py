"""Release artifact fetch module.

This module handles:
- Existence probe of a release asset URL
- Streaming download with SHA256 computation
- Best-effort checksum verification against published checksum assets
- Extraction of tarball and zip archives
- Resolution of the directory holding the binaries
"""

from __future__ import annotations

import hashlib
import logging
import tarfile
import zipfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

import httpx

from debmatrix.types import Deadline

logger = logging.getLogger(__name__)

GITHUB_DOWNLOAD_BASE = "https://github.com"

# Timeout for HEAD requests and small fetches (seconds)
HEAD_TIMEOUT = 30

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 3600

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB

# Generic checksum asset tokens, tried after the exact names
CHECKSUM_TOKENS = ("sha256", "checksums", "sums")

SIGNATURE_SUFFIXES = (".sig", ".asc")

# Per-file checksum sidecars cover only the file named by their stem
SIDECAR_SUFFIXES = (".sha256", ".sha256sum")

TAR_MODES = {
    ".tar.gz": "r:gz",
    ".tgz": "r:gz",
    ".tar.xz": "r:xz",
    ".tar.bz2": "r:bz2",
}


class FetchError(Exception):
    """Base class for fatal per-architecture fetch failures."""

    stage = "fetch"

    def __init__(self, message: str, code: str = "fetch_error") -> None:
        """Initialize FetchError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class DownloadError(FetchError):
    """Raised when a release asset cannot be downloaded."""

    stage = "download"

    def __init__(self, message: str, code: str = "download_error") -> None:
        super().__init__(message, code)


class VerificationError(FetchError):
    """Raised when checksum verification fails."""

    stage = "verify"

    def __init__(self, message: str, code: str = "checksum_mismatch") -> None:
        super().__init__(message, code)


class ExtractionError(FetchError):
    """Raised when archive extraction fails."""

    stage = "extract"

    def __init__(self, message: str, code: str = "extraction_error") -> None:
        super().__init__(message, code)


class BinaryRootError(FetchError):
    """Raised when no binaries are found in the extracted archive."""

    stage = "binary_root"

    def __init__(self, message: str, code: str = "binary_root_not_found") -> None:
        super().__init__(message, code)


@dataclass
class DownloadResult:
    """Result of a file download."""

    path: Path
    checksum: str
    size_bytes: int


@dataclass
class FetchResult:
    """Outcome of fetching one architecture's artifact."""

    binary_root: Path
    asset: str
    sha256: str
    size_bytes: int
    checksum_verified: bool = False


def build_asset_url(
    repo: str, version: str, asset: str, base_url: str = GITHUB_DOWNLOAD_BASE
) -> str:
    """Build the download URL of a release asset."""
    return f"{base_url.rstrip('/')}/{repo}/releases/download/{version}/{asset}"


def probe_url(client: httpx.Client, url: str, timeout: float = HEAD_TIMEOUT) -> None:
    """Check that a release asset exists before downloading it.

    Raises:
        DownloadError: If the asset is missing or unreachable.
    """
    logger.debug("Probing %s", url)
    try:
        response = client.head(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        raise DownloadError(
            f"Release asset not found at {url} ({e.response.status_code}). "
            "Check that the version exists and the release pattern is correct",
            code="release_not_found",
        ) from e
    except httpx.TimeoutException as e:
        raise DownloadError(f"Timeout probing {url}", code="timeout") from e
    except httpx.RequestError as e:
        raise DownloadError(
            f"Network error probing {url}: {e}", code="network_error"
        ) from e


def compute_file_sha256(file_path: Path, chunk_size: int = DOWNLOAD_CHUNK_SIZE) -> str:
    """Compute SHA256 checksum of a file."""
    sha256 = hashlib.sha256()
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            sha256.update(chunk)
    return sha256.hexdigest()


def download_file(
    client: httpx.Client,
    url: str,
    dest_path: Path,
    timeout: float = DOWNLOAD_TIMEOUT,
    chunk_size: int = DOWNLOAD_CHUNK_SIZE,
) -> DownloadResult:
    """Stream a file to disk while computing its SHA256.

    Args:
        client: HTTPX client instance.
        url: URL to download from.
        dest_path: Destination path for the downloaded file.
        timeout: Download timeout in seconds.
        chunk_size: Size of chunks to download.

    Returns:
        DownloadResult with path, checksum, and size.

    Raises:
        DownloadError: If download fails.
    """
    logger.info("Downloading %s", url)

    try:
        with client.stream(
            "GET", url, timeout=timeout, follow_redirects=True
        ) as response:
            response.raise_for_status()

            total_bytes = 0
            sha256 = hashlib.sha256()
            dest_path.parent.mkdir(parents=True, exist_ok=True)

            with dest_path.open("wb") as f:
                for chunk in response.iter_bytes(chunk_size):
                    f.write(chunk)
                    sha256.update(chunk)
                    total_bytes += len(chunk)

    except httpx.HTTPStatusError as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(
            f"HTTP error downloading {url}: {e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(f"Timeout downloading {url}", code="timeout") from e
    except httpx.RequestError as e:
        dest_path.unlink(missing_ok=True)
        raise DownloadError(
            f"Network error downloading {url}: {e}", code="network_error"
        ) from e

    computed = sha256.hexdigest()
    logger.info(
        "Downloaded %s (%d bytes, checksum: %s)",
        dest_path.name,
        total_bytes,
        computed[:16] + "...",
    )
    return DownloadResult(path=dest_path, checksum=computed, size_bytes=total_bytes)


def find_checksum_asset(asset: str, listing: Sequence[str]) -> str | None:
    """Find the published checksum file covering an asset.

    Exact names are tried first: ``{asset}.sha256``, ``{asset}.sha256sum``,
    ``SHA256SUMS`` and ``checksums.txt``. Then any listing entry containing a
    generic checksum token, excluding signatures.

    Returns:
        The checksum asset filename, or None.
    """
    by_lower = {name.lower(): name for name in listing}
    for candidate in (
        f"{asset}.sha256",
        f"{asset}.sha256sum",
        "SHA256SUMS",
        "checksums.txt",
    ):
        found = by_lower.get(candidate.lower())
        if found:
            return found

    for token in CHECKSUM_TOKENS:
        for name in listing:
            lowered = name.lower()
            if name == asset or lowered.endswith(SIGNATURE_SUFFIXES):
                continue
            if token in lowered and not _belongs_to_other_asset(name, asset, listing):
                return name
    return None


def _archive_stem(name: str) -> str:
    lowered = name.lower()
    suffix = archive_suffix(Path(lowered))
    return lowered[: -len(suffix)] if suffix else lowered


def _belongs_to_other_asset(name: str, asset: str, listing: Sequence[str]) -> bool:
    lowered = name.lower()
    own = {asset.lower(), _archive_stem(asset)}

    for suffix in SIDECAR_SUFFIXES:
        if lowered.endswith(suffix):
            return lowered[: -len(suffix)] not in own

    for other in listing:
        if other == asset or other == name or archive_suffix(Path(other)) is None:
            continue
        stem = _archive_stem(other)
        if lowered.startswith(stem) and not asset.lower().startswith(stem):
            return True
    return False


def parse_checksum_file(content: str, archive_filename: str) -> str | None:
    """Find the expected checksum of a file in checksum file content.

    Lines are ``<hash>  <filename>`` (a leading ``*`` marks binary mode).
    A file holding a single bare hash applies to the archive it accompanies.

    Returns:
        Lower-case SHA256 hex digest, or None if no entry matches.
    """
    lines = [
        line.strip()
        for line in content.splitlines()
        if line.strip() and not line.strip().startswith("#")
    ]

    for line in lines:
        parts = line.split(maxsplit=1)
        if len(parts) != 2:
            continue
        checksum, filename = parts
        filename = filename.strip().lstrip("*").strip()
        if filename == archive_filename or filename.endswith(f"/{archive_filename}"):
            return checksum.lower()

    if len(lines) == 1 and len(lines[0].split()) == 1:
        return lines[0].lower()
    return None


def fetch_checksum_content(
    client: httpx.Client, url: str, timeout: float = HEAD_TIMEOUT
) -> str:
    """Fetch a checksum file.

    Raises:
        DownloadError: If fetch fails.
    """
    logger.debug("Fetching checksums from %s", url)
    try:
        response = client.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
        return response.text
    except httpx.HTTPStatusError as e:
        raise DownloadError(
            f"HTTP error fetching checksums: {e.response.status_code}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise DownloadError(
            f"Timeout fetching checksums from {url}", code="timeout"
        ) from e
    except httpx.RequestError as e:
        raise DownloadError(
            f"Network error fetching checksums: {e}", code="network_error"
        ) from e


def verify_download(archive_path: Path, computed: str, expected: str) -> None:
    """Compare a computed digest with the published one.

    The archive is deleted on mismatch so it can never be extracted.

    Raises:
        VerificationError: On mismatch.
    """
    if computed.lower() == expected.lower():
        logger.info("Checksum verified for %s", archive_path.name)
        return
    archive_path.unlink(missing_ok=True)
    raise VerificationError(
        f"Checksum verification failed for {archive_path.name}\n"
        f"Expected: {expected}\n"
        f"Actual:   {computed}"
    )


def _check_member_name(name: str) -> None:
    member_path = Path(name)
    if member_path.is_absolute() or ".." in member_path.parts:
        raise ExtractionError(
            f"Refusing to extract {name}: path traversal detected",
            code="path_traversal",
        )


def archive_suffix(archive_path: Path) -> str | None:
    """Return the supported archive suffix of a path, if any."""
    name = archive_path.name.lower()
    for suffix in (*TAR_MODES, ".zip"):
        if name.endswith(suffix):
            return suffix
    return None


def extract_archive(archive_path: Path, dest_dir: Path) -> Path:
    """Extract an archive and return the extracted root.

    The root is the single top-level directory when the archive holds
    exactly one, otherwise the destination directory itself.

    Raises:
        ExtractionError: If the format is unsupported or extraction fails.
    """
    logger.info("Extracting %s", archive_path.name)
    dest_dir.mkdir(parents=True, exist_ok=True)

    suffix = archive_suffix(archive_path)
    if suffix is None:
        raise ExtractionError(
            f"Unsupported archive format: {archive_path.name}",
            code="unsupported_format",
        )

    try:
        if suffix == ".zip":
            with zipfile.ZipFile(archive_path) as archive:
                names = archive.namelist()
                if not names:
                    raise ExtractionError(
                        f"Archive {archive_path.name} is empty", code="empty_archive"
                    )
                for name in names:
                    _check_member_name(name)
                archive.extractall(dest_dir)
        else:
            with tarfile.open(archive_path, TAR_MODES[suffix]) as tar:
                members = tar.getmembers()
                if not members:
                    raise ExtractionError(
                        f"Archive {archive_path.name} is empty", code="empty_archive"
                    )
                for member in members:
                    _check_member_name(member.name)
                tar.extractall(dest_dir, filter="data")
    except (tarfile.TarError, zipfile.BadZipFile, EOFError) as e:
        raise ExtractionError(
            f"Failed to extract {archive_path.name} (corrupted archive?): {e}",
            code="corrupt_archive",
        ) from e
    except OSError as e:
        raise ExtractionError(
            f"OS error extracting {archive_path.name}: {e}", code="os_error"
        ) from e

    entries = list(dest_dir.iterdir())
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return dest_dir


def _listing(directory: Path) -> str:
    if not directory.exists():
        return "  (directory not found)"
    lines = []
    for entry in sorted(directory.iterdir()):
        kind = "d" if entry.is_dir() else "-"
        lines.append(f"  {kind} {entry.name}")
    return "\n".join(lines) or "  (empty)"


def resolve_binary_root(extracted_root: Path, binary_path: str | None) -> Path:
    """Find the directory holding the binaries to package.

    Raises:
        BinaryRootError: With a listing of the extracted tree when neither
            the configured subpath nor a non-empty extracted root exists.
    """
    if binary_path:
        candidate = extracted_root / binary_path
        if candidate.is_dir():
            return candidate
        logger.warning(
            "binary_path %s not found in %s", binary_path, extracted_root.name
        )
    if extracted_root.is_dir() and any(extracted_root.iterdir()):
        return extracted_root

    raise BinaryRootError(
        f"Binary directory not found: {extracted_root / (binary_path or '')}\n"
        "The extracted archive structure may be different than expected.\n"
        f"Contents of extracted directory:\n{_listing(extracted_root)}\n"
        "If binaries are in a subdirectory, add 'binary_path' to your config:\n"
        '  binary_path: "subdirectory/name"'
    )


class ArtifactFetcher:
    """Downloads, verifies and extracts one architecture's release asset."""

    def __init__(
        self,
        client: httpx.Client,
        repo: str,
        version: str,
        listing: Sequence[str],
        binary_path: str | None = None,
        base_url: str = GITHUB_DOWNLOAD_BASE,
        head_timeout: float = HEAD_TIMEOUT,
        download_timeout: float = DOWNLOAD_TIMEOUT,
    ) -> None:
        self.client = client
        self.repo = repo
        self.version = version
        self.listing = tuple(listing)
        self.binary_path = binary_path
        self.base_url = base_url
        self.head_timeout = head_timeout
        self.download_timeout = download_timeout

    def expected_checksum(self, asset: str, deadline: Deadline) -> str | None:
        """Look up the published checksum of an asset, if any."""
        checksum_asset = find_checksum_asset(asset, self.listing)
        if checksum_asset is None:
            logger.info("No checksum file found for %s (optional)", asset)
            return None

        logger.info("Found checksum file: %s", checksum_asset)
        url = build_asset_url(self.repo, self.version, checksum_asset, self.base_url)
        try:
            content = fetch_checksum_content(
                self.client, url, timeout=deadline.clamp(self.head_timeout)
            )
        except DownloadError as e:
            logger.warning("Failed to download checksum file, skipping verification: %s", e)
            return None

        expected = parse_checksum_file(content, asset)
        if expected is None:
            logger.warning("Could not find checksum for %s in %s", asset, checksum_asset)
        return expected

    def fetch(
        self,
        architecture: str,
        asset: str,
        work_dir: Path,
        deadline: Deadline | None = None,
    ) -> FetchResult:
        """Fetch, verify and extract an asset into ``work_dir``.

        Raises:
            FetchError: Any fatal per-architecture failure.
            DeadlineExceeded: If the pipeline deadline passes.
        """
        deadline = deadline or Deadline(None)
        url = build_asset_url(self.repo, self.version, asset, self.base_url)

        deadline.check(f"probing {asset}")
        probe_url(self.client, url, timeout=deadline.clamp(self.head_timeout))

        deadline.check(f"downloading {asset}")
        archive_path = work_dir / asset
        result = download_file(
            self.client,
            url,
            archive_path,
            timeout=deadline.clamp(self.download_timeout),
        )

        deadline.check(f"verifying {asset}")
        expected = self.expected_checksum(asset, deadline)
        if expected is not None:
            verify_download(archive_path, result.checksum, expected)

        deadline.check(f"extracting {asset}")
        extracted_root = extract_archive(archive_path, work_dir / "extract")
        archive_path.unlink(missing_ok=True)

        binary_root = resolve_binary_root(extracted_root, self.binary_path)
        logger.info("[%s] Binaries ready in %s", architecture, binary_root)
        return FetchResult(
            binary_root=binary_root,
            asset=asset,
            sha256=result.checksum,
            size_bytes=result.size_bytes,
            checksum_verified=expected is not None,
        )


__all__ = [
    "ArtifactFetcher",
    "BinaryRootError",
    "DownloadError",
    "DownloadResult",
    "ExtractionError",
    "FetchError",
    "FetchResult",
    "VerificationError",
    "build_asset_url",
    "compute_file_sha256",
    "download_file",
    "extract_archive",
    "fetch_checksum_content",
    "find_checksum_asset",
    "parse_checksum_file",
    "probe_url",
    "resolve_binary_root",
    "verify_download",
]
