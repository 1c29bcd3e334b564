"""Configuration settings for debmatrix.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_work_dir() -> Path:
    """Return the default working directory for per-unit scratch space."""
    return Path.home() / ".cache" / "debmatrix" / "work"


def _default_output_dir() -> Path:
    """Return the default directory for produced packages."""
    return Path.cwd()


def _default_telemetry_dir() -> Path:
    """Return the default telemetry directory."""
    return Path.cwd() / ".telemetry"


def _default_log_dir() -> Path:
    """Return the default directory for kept build logs."""
    return Path.cwd() / ".build-logs"


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the DEBMATRIX_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="DEBMATRIX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    work_dir: Path = Field(
        default_factory=_default_work_dir,
        description="Root directory for per-architecture and per-distribution scratch space",
    )
    output_dir: Path = Field(
        default_factory=_default_output_dir,
        description="Directory receiving built .deb packages",
    )
    telemetry_dir: Path = Field(
        default_factory=_default_telemetry_dir,
        description="Directory for telemetry metrics and the performance baseline",
    )
    log_dir: Path = Field(
        default_factory=_default_log_dir,
        description="Directory keeping build logs and lintian results",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Concurrency
    max_parallel: int | None = Field(
        default=None,
        ge=1,
        description="Override layer for concurrent architecture builds",
    )
    hard_max_parallel: int = Field(
        default=8,
        ge=1,
        description="Hard ceiling on concurrent architecture builds",
    )
    memory_per_job_mb: int = Field(
        default=2048,
        ge=1,
        description="Memory reserved per architecture build (MB)",
    )
    cpu_per_job: int = Field(
        default=1,
        ge=1,
        description="CPU cores reserved per architecture build",
    )
    disk_per_job_gb: int = Field(
        default=5,
        ge=1,
        description="Free disk reserved per architecture build (GB)",
    )
    degradation_memory_per_job_mb: int = Field(
        default=1024,
        ge=1,
        description="Minimum memory per job when degrading under pressure (MB)",
    )
    degradation_cores_per_job: int = Field(
        default=1,
        ge=1,
        description="Minimum CPU cores per job when degrading under pressure",
    )

    # Resource profile overrides (detected values are used when unset)
    cpu_cores: int | None = Field(default=None, ge=1, description="CPU core override")
    memory_mb: int | None = Field(default=None, ge=1, description="Memory override (MB)")
    disk_free_gb: int | None = Field(
        default=None, ge=0, description="Free disk override (GB)"
    )
    environment: Literal["interactive", "ci", "unknown"] | None = Field(
        default=None,
        description="Environment classification override",
    )

    # Scheduling
    poll_interval: float = Field(
        default=1.0,
        gt=0,
        description="Interval between scheduler completion polls (seconds)",
    )
    sample_interval: float = Field(
        default=5.0,
        gt=0,
        description="Interval between telemetry resource samples (seconds)",
    )

    # Timeouts (in seconds)
    head_timeout: int = Field(
        default=30,
        ge=1,
        description="Timeout for release existence probes and small fetches",
    )
    download_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for release artifact downloads",
    )
    build_timeout: int = Field(
        default=3600,
        ge=60,
        description="Timeout for a single packaging backend run",
    )
    quality_timeout: int = Field(
        default=600,
        ge=10,
        description="Timeout for a single lintian run",
    )
    architecture_timeout: int = Field(
        default=4 * 3600,
        ge=60,
        description="Deadline for a whole architecture pipeline",
    )

    # Upstream
    github_api_base: str = Field(
        default="https://api.github.com",
        description="GitHub API base URL",
    )
    github_download_base: str = Field(
        default="https://github.com",
        description="Base URL for release asset downloads",
    )
    github_token: str | None = Field(
        default=None,
        description="Optional GitHub token for API requests",
    )

    # Telemetry
    telemetry_enabled: bool = Field(default=True, description="Collect telemetry")
    regression_threshold: float = Field(
        default=0.20,
        gt=0,
        description="Relative increase over baseline flagged as a regression",
    )

    # External tools
    docker_bin: str = Field(default="docker", description="Docker executable")
    lintian_bin: str = Field(default="lintian", description="Lintian executable")


def get_settings() -> Settings:
    """Get the application settings singleton.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    The GitHub token is never rendered.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2, exclude={"github_token"})


__all__ = ["Settings", "get_settings", "print_settings_json"]
