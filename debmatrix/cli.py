"""Thin CLI wrapper for debmatrix.

This module provides the command-line interface using Typer.
All business logic is delegated to core modules.
"""

import json
import logging
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from debmatrix import __version__
from debmatrix.builds.service import (
    PreconditionError,
    discover_assets,
    fetch_listing,
    run_build_matrix,
)
from debmatrix.builds.summary import SUMMARY_FILENAME, BuildSummary, write_summary
from debmatrix.config import Settings, get_settings, print_settings_json
from debmatrix.project.io import ConfigurationError, load_build_config
from debmatrix.project.request import ALL_ARCHITECTURES, build_request_from_config
from debmatrix.releases.resolver import ReleaseResolver
from debmatrix.resources.profiler import (
    format_environment_report,
    profile_resources,
    resolve_concurrency,
    validate_build_environment,
)

app = typer.Typer(
    name="debmatrix",
    help="Build Debian packages from GitHub release binaries across architectures "
    "and distributions",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    """Route log records through rich at the configured level."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"debmatrix version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """debmatrix - multi-arch, multi-distribution Debian package builds."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective configuration."""
    settings = get_settings()
    if json_output:
        typer.echo(print_settings_json(settings))
        return

    max_parallel = (
        str(settings.max_parallel) if settings.max_parallel else "(computed)"
    )
    console.print("[bold]Effective Configuration:[/bold]")
    console.print()
    console.print("[bold]Paths:[/bold]")
    console.print(f"  Work directory:      {settings.work_dir}")
    console.print(f"  Output directory:    {settings.output_dir}")
    console.print(f"  Log directory:       {settings.log_dir}")
    console.print(f"  Telemetry directory: {settings.telemetry_dir}")
    console.print()
    console.print("[bold]Operational:[/bold]")
    console.print(f"  Log level:           {settings.log_level}")
    console.print(f"  Telemetry:           {settings.telemetry_enabled}")
    console.print(f"  Docker:              {settings.docker_bin}")
    console.print(f"  Lintian:             {settings.lintian_bin}")
    console.print()
    console.print("[bold]Concurrency:[/bold]")
    console.print(f"  Max parallel:        {max_parallel}")
    console.print(f"  Hard maximum:        {settings.hard_max_parallel}")
    console.print(f"  Memory per job:      {settings.memory_per_job_mb} MB")
    console.print()
    console.print("[bold]Timeouts (seconds):[/bold]")
    console.print(f"  Download timeout:    {settings.download_timeout}")
    console.print(f"  Build timeout:       {settings.build_timeout}")
    console.print(f"  Lintian timeout:     {settings.quality_timeout}")
    console.print(f"  Architecture:        {settings.architecture_timeout}")


def _print_results(summary: BuildSummary) -> None:
    table = Table(title=f"{summary.package} {summary.full_version}")
    table.add_column("Architecture")
    table.add_column("State")
    table.add_column("Built", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Skipped", justify="right")
    for outcome in summary.outcomes:
        table.add_row(
            outcome.architecture,
            outcome.state.value,
            str(outcome.succeeded),
            str(outcome.failed),
            str(outcome.skipped),
        )
    console.print(table)
    console.print(
        f"📦 Total artifact size: {summary.total_size_human} "
        f"({summary.total_packages} packages)"
    )
    if summary.telemetry is not None:
        for regression in summary.telemetry.regressions:
            console.print(f"[yellow]Performance regression: {regression}[/yellow]")


def _print_failures(summary: BuildSummary) -> None:
    table = Table(title="Failed builds", title_style="bold red")
    table.add_column("Architecture")
    table.add_column("Distribution")
    table.add_column("Stage")
    table.add_column("Category")
    table.add_column("Reason", overflow="fold")
    for failure in summary.failures:
        table.add_row(
            failure.architecture,
            failure.distribution or "-",
            failure.stage or "-",
            failure.category.value if failure.category else "-",
            failure.reason or "-",
        )
    err_console.print(table)


@app.command()
def build(
    config_path: Annotated[Path, typer.Argument(help="Project configuration file")],
    version: Annotated[str, typer.Argument(help="Upstream release version (tag)")],
    build_version: Annotated[str, typer.Argument(help="Debian build revision")],
    architecture: Annotated[
        str,
        typer.Argument(help="Architecture to build, or 'all'"),
    ] = ALL_ARCHITECTURES,
    max_parallel: Annotated[
        int | None,
        typer.Option("--max-parallel", min=1, help="Concurrent architecture builds"),
    ] = None,
    summary_path: Annotated[
        Path | None,
        typer.Option("--summary", help="Write the build summary to this file"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the build summary as JSON"),
    ] = False,
    save_baseline: Annotated[
        bool,
        typer.Option("--save-baseline", help="Save this run as the performance baseline"),
    ] = False,
    no_telemetry: Annotated[
        bool,
        typer.Option("--no-telemetry", help="Disable telemetry collection"),
    ] = False,
    lintian: Annotated[
        bool | None,
        typer.Option("--lintian/--no-lintian", help="Override the lintian setting"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging"),
    ] = False,
) -> None:
    """Build Debian packages for every architecture and distribution."""
    settings = get_settings()
    configure_logging(settings, verbose)
    if no_telemetry:
        settings = settings.model_copy(update={"telemetry_enabled": False})

    try:
        project = load_build_config(config_path)
        request = build_request_from_config(
            project, version, build_version, architecture
        )
    except ConfigurationError as e:
        err_console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(code=1) from None
    except ValueError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    if lintian is not None:
        request = request.with_quality(replace(request.quality, enabled=lintian))

    try:
        summary, _ = run_build_matrix(
            request,
            settings,
            cli_max_parallel=max_parallel,
            save_as_baseline=save_baseline,
        )
    except PreconditionError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    write_summary(summary, summary_path or Path(SUMMARY_FILENAME))

    if json_output:
        typer.echo(summary.model_dump_json(indent=2))
    else:
        _print_results(summary)

    if summary.failures:
        _print_failures(summary)
    if not summary.success:
        category = summary.failure_category.value if summary.failure_category else "unknown"
        err_console.print(f"[red]No packages were built (failure category: {category})[/red]")
        raise typer.Exit(code=1)


@app.command()
def resources(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
    max_parallel: Annotated[
        int | None,
        typer.Option("--max-parallel", min=1, help="Requested concurrent builds"),
    ] = None,
) -> None:
    """Show detected build resources and the resolved concurrency."""
    settings = get_settings()
    profile = profile_resources(settings)
    ceiling, source = resolve_concurrency(
        profile, cli_value=max_parallel, override_value=settings.max_parallel
    )
    warnings = validate_build_environment(profile)

    if json_output:
        output = profile.to_dict()
        output["concurrency"] = ceiling
        output["concurrency_source"] = source
        output["warnings"] = warnings
        typer.echo(json.dumps(output, indent=2))
        return

    console.print(format_environment_report(profile, ceiling, source), markup=False)
    for warning in warnings:
        console.print(f"[yellow]⚠ {warning}[/yellow]")


@app.command()
def discover(
    config_path: Annotated[Path, typer.Argument(help="Project configuration file")],
    version: Annotated[str, typer.Argument(help="Upstream release version (tag)")],
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show which release asset each architecture resolves to."""
    settings = get_settings()
    configure_logging(settings)
    try:
        project = load_build_config(config_path)
    except ConfigurationError as e:
        err_console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(code=1) from None
    request = build_request_from_config(project, version, "1")

    try:
        with httpx.Client(follow_redirects=True) as client:
            listing = fetch_listing(request, settings, client)
    except PreconditionError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1) from None

    resolved = discover_assets(request, listing)
    tagged = ReleaseResolver(request, listing).assets()
    if json_output:
        output = {
            "resolved": resolved,
            "assets": [
                {
                    "filename": asset.filename,
                    "architecture": asset.architecture,
                    "variant": asset.variant,
                }
                for asset in tagged
            ],
        }
        typer.echo(json.dumps(output, indent=2))
        return

    assets_table = Table(title="Release assets")
    assets_table.add_column("Filename")
    assets_table.add_column("Architecture")
    assets_table.add_column("Variant")
    for asset in tagged:
        assets_table.add_row(asset.filename, asset.architecture or "-", asset.variant or "-")
    console.print(assets_table)

    table = Table(title=f"{request.github_repo} {version}")
    table.add_column("Architecture")
    table.add_column("Asset")
    for arch, asset in resolved.items():
        table.add_row(arch, asset or "[dim]unavailable[/dim]")
    console.print(table)


@app.command()
def validate(
    config_path: Annotated[Path, typer.Argument(help="Project configuration file")],
) -> None:
    """Validate a project configuration file."""
    try:
        project = load_build_config(config_path)
    except ConfigurationError as e:
        console.print("[red]Validation failed:[/red]")
        console.print(str(e), markup=False)
        raise typer.Exit(code=1) from None

    console.print(f"[green]✓ Valid configuration: {project.package_name}[/green]")
    console.print(f"  Repository:    {project.github_repo}")
    console.print(f"  Discovery:     {project.discovery_mode.value}")
    console.print(f"  Architectures: {', '.join(project.architecture_names())}")
    console.print(f"  Distributions: {', '.join(project.debian_distributions)}")


if __name__ == "__main__":
    app()
