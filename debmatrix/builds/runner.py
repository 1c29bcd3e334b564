"""Docker packaging backend.

This module handles:
- Staging a Docker build context (binaries and Debian metadata)
- Composing and executing `docker build` with a per-job log file
- Copying the produced .deb out of the image
- Extracting an error excerpt from a failed build log
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path

from debmatrix.project.defaults import DOCKERFILE
from debmatrix.project.request import BuildRequest

logger = logging.getLogger(__name__)

ERROR_WORDS = ("error", "Error", "ERROR", "failed", "Failed", "FAILED")

# Log lines examined and kept for error excerpts
EXCERPT_TAIL_LINES = 20
EXCERPT_MAX_LINES = 5

DOCKER_CMD_TIMEOUT = 120


class BuildExecutionError(Exception):
    """Raised when a packaging command cannot run to completion."""

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str = "build_error",
        stage: str = "docker_build",
    ) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.code = code
        self.stage = stage


@dataclass
class PackageBuildResult:
    """Result of a packaging backend run.

    Attributes:
        success: Whether a package was produced.
        exit_code: Exit code of the failing (or last) command.
        package_path: Produced .deb inside the job directory.
        log_path: Path to the build log file.
        image_tag: Docker image tag used.
        started_at: Build start time.
        finished_at: Build finish time.
        command: The build command that was executed.
        error_message: Error excerpt if the build failed.
        stage: Stage that failed (docker_build or docker_copy).
    """

    success: bool
    exit_code: int
    package_path: Path | None
    log_path: Path
    image_tag: str
    started_at: datetime
    finished_at: datetime
    command: str
    error_message: str | None = None
    stage: str = "docker_build"


def image_tag(package: str, distribution: str, architecture: str) -> str:
    """Return a unique image tag for one build."""
    return f"{package}-{distribution}-{architecture}-{uuid.uuid4().hex[:8]}"


def render_control(request: BuildRequest, distribution: str, architecture: str) -> str:
    """Render the DEBIAN/control file."""
    description = request.description or f"{request.package_name} packaged from upstream binaries"
    summary, _, rest = description.strip().partition("\n")
    lines = [
        f"Package: {request.package_name}",
        f"Version: {request.version}-{request.build_version}+{distribution}",
        f"Architecture: {architecture}",
        f"Maintainer: {request.maintainer}",
        "Section: utils",
        "Priority: optional",
        f"Homepage: {request.homepage or f'https://github.com/{request.github_repo}'}",
        f"Description: {summary}",
    ]
    for line in rest.splitlines():
        lines.append(f" {line.strip() or '.'}")
    return "\n".join(lines) + "\n"


def render_changelog(
    request: BuildRequest,
    distribution: str,
    when: datetime | None = None,
) -> str:
    """Render the Debian changelog entry for one build."""
    when = when or datetime.now(timezone.utc)
    version = f"{request.version}-{request.build_version}+{distribution}"
    return (
        f"{request.package_name} ({version}) {distribution}; urgency=medium\n\n"
        f"  * Package upstream release {request.version} of {request.github_repo}.\n\n"
        f" -- {request.maintainer}  {format_datetime(when)}\n"
    )


def render_copyright(request: BuildRequest) -> str:
    """Render a machine-readable copyright file."""
    return (
        "Format: https://www.debian.org/doc/packaging-manuals/copyright-format/1.0/\n"
        f"Upstream-Name: {request.package_name}\n"
        f"Source: https://github.com/{request.github_repo}\n\n"
        "Files: *\n"
        f"Copyright: {request.github_repo.split('/')[0]}\n"
        "License: see upstream\n"
    )


def stage_build_context(
    request: BuildRequest,
    distribution: str,
    architecture: str,
    binary_root: Path,
    context_dir: Path,
) -> Path:
    """Stage the Docker build context for one package.

    Layout::

        Dockerfile
        binaries/...
        output/DEBIAN/control
        output/copyright
        output/changelog.Debian

    Raises:
        BuildExecutionError: If staging fails.
    """
    try:
        context_dir.mkdir(parents=True, exist_ok=True)
        shutil.copytree(binary_root, context_dir / "binaries", dirs_exist_ok=True)

        output_dir = context_dir / "output"
        (output_dir / "DEBIAN").mkdir(parents=True, exist_ok=True)
        (output_dir / "DEBIAN" / "control").write_text(
            render_control(request, distribution, architecture), encoding="utf-8"
        )
        (output_dir / "copyright").write_text(render_copyright(request), encoding="utf-8")
        (output_dir / "changelog.Debian").write_text(
            render_changelog(request, distribution), encoding="utf-8"
        )
        shutil.copy2(DOCKERFILE, context_dir / "Dockerfile")
    except OSError as e:
        raise BuildExecutionError(
            f"Failed to stage build context: {e}", code="staging_error"
        ) from e

    return context_dir


def compose_docker_build_command(
    docker_bin: str,
    tag: str,
    request: BuildRequest,
    distribution: str,
    architecture: str,
) -> list[str]:
    """Compose the `docker build` command for one package."""
    build_args = {
        "DEBIAN_DIST": distribution,
        "PACKAGE_NAME": request.package_name,
        "VERSION": request.version,
        "BUILD_VERSION": request.build_version,
        "FULL_VERSION": request.full_version(distribution, architecture),
        "ARCH": architecture,
    }
    cmd = [docker_bin, "build", ".", "-t", tag, "-f", "Dockerfile"]
    for key, value in build_args.items():
        cmd.extend(["--build-arg", f"{key}={value}"])
    return cmd


def extract_error_excerpt(log_text: str) -> str | None:
    """Return error lines from the tail of a build log, joined with '; '."""
    tail = log_text.splitlines()[-EXCERPT_TAIL_LINES:]
    matches = [
        line.strip() for line in tail if any(word in line for word in ERROR_WORDS)
    ]
    if not matches:
        return None
    return "; ".join(matches[:EXCERPT_MAX_LINES])


def run_docker_build(
    cmd: list[str],
    context_dir: Path,
    log_path: Path,
    timeout: float | None = None,
) -> int:
    """Run a docker build, capturing output to a log file.

    Returns:
        Process exit code.

    Raises:
        BuildExecutionError: On timeout or if the command cannot start.
    """
    cmd_str = shlex.join(cmd)
    logger.debug("Executing: %s", cmd_str)
    started_at = datetime.now(timezone.utc)

    try:
        with log_path.open("w") as log_file:
            log_file.write(f"# Command: {cmd_str}\n")
            log_file.write(f"# Started: {started_at.isoformat()}\n")
            log_file.write(f"# CWD: {context_dir}\n")
            log_file.write("# " + "=" * 70 + "\n\n")
            log_file.flush()

            result = subprocess.run(
                cmd,
                cwd=context_dir,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                timeout=timeout,
                check=False,
            )
            exit_code = result.returncode

    except subprocess.TimeoutExpired as e:
        with log_path.open("a") as log_file:
            log_file.write(f"\n# TIMEOUT after {timeout} seconds\n")
        raise BuildExecutionError(
            f"Docker build timed out after {timeout} seconds",
            exit_code=-1,
            code="timeout",
        ) from e
    except OSError as e:
        raise BuildExecutionError(
            f"Failed to execute docker build: {e}", code="execution_error"
        ) from e

    finished_at = datetime.now(timezone.utc)
    with log_path.open("a") as log_file:
        log_file.write(f"\n# Finished: {finished_at.isoformat()}\n")
        log_file.write(f"# Exit code: {exit_code}\n")
        duration = (finished_at - started_at).total_seconds()
        log_file.write(f"# Duration: {duration:.1f}s\n")

    return exit_code


def copy_package_from_image(
    docker_bin: str,
    tag: str,
    package_filename: str,
    dest_dir: Path,
    timeout: float | None = DOCKER_CMD_TIMEOUT,
) -> Path:
    """Copy the built package out of an image.

    Raises:
        BuildExecutionError: If the container cannot be created or the
            package is missing from the image.
    """
    dest_path = dest_dir / package_filename
    try:
        created = subprocess.run(
            [docker_bin, "create", tag],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
        container_id = created.stdout.strip()
        try:
            subprocess.run(
                [docker_bin, "cp", f"{container_id}:/{package_filename}", str(dest_path)],
                capture_output=True,
                text=True,
                timeout=timeout,
                check=True,
            )
        finally:
            subprocess.run(
                [docker_bin, "rm", container_id],
                capture_output=True,
                text=True,
                timeout=timeout,
                check=False,
            )
    except subprocess.TimeoutExpired as e:
        raise BuildExecutionError(
            f"Timed out copying {package_filename} from {tag}",
            exit_code=-1,
            code="timeout",
            stage="docker_copy",
        ) from e
    except subprocess.CalledProcessError as e:
        raise BuildExecutionError(
            f"Failed to copy {package_filename} from {tag}: {(e.stderr or '').strip()}",
            exit_code=e.returncode,
            code="copy_error",
            stage="docker_copy",
        ) from e
    except OSError as e:
        raise BuildExecutionError(
            f"Failed to run docker: {e}", code="execution_error", stage="docker_copy"
        ) from e

    if not dest_path.is_file():
        raise BuildExecutionError(
            f"Package {package_filename} not produced by {tag}",
            code="package_missing",
            stage="docker_copy",
        )
    return dest_path


def remove_image(docker_bin: str, tag: str, timeout: float | None = DOCKER_CMD_TIMEOUT) -> None:
    """Remove a build image, logging failures."""
    try:
        result = subprocess.run(
            [docker_bin, "rmi", "-f", tag],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.warning("Failed to remove image %s: %s", tag, e)
        return
    if result.returncode != 0:
        logger.debug("docker rmi %s exited %d", tag, result.returncode)


class DockerBackend:
    """Builds one .deb per (architecture, distribution) inside Docker."""

    def __init__(self, docker_bin: str = "docker", keep_images: bool = False) -> None:
        self.docker_bin = docker_bin
        self.keep_images = keep_images

    def build(
        self,
        request: BuildRequest,
        architecture: str,
        distribution: str,
        binary_root: Path,
        job_dir: Path,
        timeout: float | None = None,
    ) -> PackageBuildResult:
        """Build a package.

        A nonzero docker exit is reported as ``success=False``; commands that
        cannot run (timeout, missing binary) raise.

        Raises:
            BuildExecutionError: If a command cannot run to completion.
        """
        tag = image_tag(request.package_name, distribution, architecture)
        context_dir = stage_build_context(
            request, distribution, architecture, binary_root, job_dir / "context"
        )
        log_path = job_dir / "docker-build.log"
        cmd = compose_docker_build_command(
            self.docker_bin, tag, request, distribution, architecture
        )

        started_at = datetime.now(timezone.utc)
        logger.info("[%s/%s] docker build %s", architecture, distribution, tag)
        exit_code = run_docker_build(cmd, context_dir, log_path, timeout=timeout)

        package_path: Path | None = None
        error_message: str | None = None
        stage = "docker_build"
        try:
            if exit_code != 0:
                excerpt = extract_error_excerpt(log_path.read_text(errors="replace"))
                error_message = excerpt or (
                    f"Docker build failed for {distribution}-{architecture} "
                    "- check build logs"
                )
                logger.error(
                    "[%s/%s] %s. See log: %s",
                    architecture,
                    distribution,
                    error_message,
                    log_path,
                )
            else:
                package_path = copy_package_from_image(
                    self.docker_bin,
                    tag,
                    request.package_filename(distribution, architecture),
                    job_dir,
                )
        finally:
            if not self.keep_images:
                remove_image(self.docker_bin, tag)

        return PackageBuildResult(
            success=package_path is not None,
            exit_code=exit_code,
            package_path=package_path,
            log_path=log_path,
            image_tag=tag,
            started_at=started_at,
            finished_at=datetime.now(timezone.utc),
            command=shlex.join(cmd),
            error_message=error_message,
            stage=stage,
        )


__all__ = [
    "BuildExecutionError",
    "DockerBackend",
    "PackageBuildResult",
    "compose_docker_build_command",
    "copy_package_from_image",
    "extract_error_excerpt",
    "image_tag",
    "render_changelog",
    "render_control",
    "render_copyright",
    "run_docker_build",
    "stage_build_context",
]
