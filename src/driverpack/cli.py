"""Typer CLI entrypoint for driverpack."""

from __future__ import annotations

import logging
import platform
from pathlib import Path
from typing import Mapping, cast

import typer
import yaml

from driverpack.config import AppSettings, load_settings
from driverpack.errors import DriverPackError, SettingsError, WdkConfigError
from driverpack.logging_utils import configure_logging, level_for_verbosity
from driverpack.models import (
    ARCH_ALIASES,
    PROFILE_ALIASES,
    BuildRunOptions,
    CpuArchitecture,
    Profile,
    TargetArch,
)
from driverpack.pipeline.orchestrator import run_build_pipeline, write_run_summary
from driverpack.providers.exec import CommandRunner
from driverpack.providers.wdk import WdkBuild, detect_host_arch

app = typer.Typer(
    add_completion=False,
    help="Build Rust Windows drivers and package them with the WDK tools.",
    no_args_is_help=True,
)

CLI_TARGET_ARCHES = {"x86_64": "amd64", "aarch64": "arm64"}


def _normalize_choice(value: str | None, *, allowed: Mapping[str, str], option_name: str) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized not in allowed:
        allowed_rendered = ",".join(sorted(allowed))
        raise typer.BadParameter(f"{option_name} must be one of: {allowed_rendered}")
    return allowed[normalized]


def _verbosity(verbose: int, quiet: bool) -> int:
    if quiet and verbose:
        raise typer.BadParameter("--quiet cannot be combined with --verbose.")
    if quiet:
        return -1
    return min(verbose, 2)


def _host_tool_arch() -> CpuArchitecture:
    return ARCH_ALIASES.get(platform.machine().strip().lower(), "amd64")


def _load_settings_or_exit(config_file: Path | None, verbosity: int = 0) -> AppSettings:
    try:
        return load_settings(config_file=config_file)
    except SettingsError as exc:
        configure_logging(level_for_verbosity(verbosity)).error("%s", exc)
        raise typer.Exit(code=1) from exc


def _build_runner(settings: AppSettings, logger: logging.Logger) -> CommandRunner:
    """Command runner with the WDK tool directories prepended to PATH when found."""

    if not settings.wdk.extend_tool_path:
        return CommandRunner(logger=logger)
    wdk = WdkBuild(settings.wdk.content_root, logger=logger)
    try:
        extra_path = wdk.tool_paths(_host_tool_arch())
    except WdkConfigError as exc:
        logger.warning("wdk.tool_path_unavailable reason=%s", exc)
        extra_path = []
    logger.debug("wdk.tool_path dirs=%s", [str(path) for path in extra_path])
    return CommandRunner(extra_path=extra_path, logger=logger)


@app.command("show-config")
def show_config(
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        help="Optional settings YAML path.",
        exists=False,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
) -> None:
    """Print the effective configuration after env overrides."""

    settings = _load_settings_or_exit(config_file)
    rendered = yaml.safe_dump(settings.as_dict(), sort_keys=False)
    typer.echo(rendered)


@app.command("build")
def build(
    cwd: Path | None = typer.Option(
        None,
        "--cwd",
        help="Project, workspace, or emulated-workspace directory. Defaults to the current directory.",
        file_okay=False,
        dir_okay=True,
    ),
    profile: str | None = typer.Option(
        None,
        "--profile",
        help="Cargo profile: dev (alias debug) or release.",
    ),
    target_arch: str | None = typer.Option(
        None,
        "--target-arch",
        help="Target architecture: x86_64 or aarch64. Defaults to the rustc host.",
    ),
    sample_class: bool = typer.Option(
        False,
        "--sample-class/--no-sample-class",
        help="Validate the INF as a sample-class driver.",
    ),
    verify_signature: bool = typer.Option(
        False,
        "--verify-signature",
        help="Verify signatures of the signed binary and catalog.",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v, -vv).",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log errors.",
    ),
    config_file: Path | None = typer.Option(
        None,
        "--config-file",
        help="Optional settings YAML path.",
        exists=False,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    summary_file: Path | None = typer.Option(
        None,
        "--summary-file",
        help="Optional path for a JSON run summary.",
        dir_okay=False,
    ),
) -> None:
    """Build every driver package under the working directory and package it."""

    normalized_profile = _normalize_choice(profile, allowed=PROFILE_ALIASES, option_name="profile")
    normalized_arch = _normalize_choice(target_arch, allowed=CLI_TARGET_ARCHES, option_name="target-arch")
    verbosity = _verbosity(verbose, quiet)

    settings = _load_settings_or_exit(config_file, verbosity)
    logger = configure_logging(level_for_verbosity(verbosity), log_file=settings.logging.log_file)

    try:
        runner = _build_runner(settings, logger)
        if normalized_arch is not None:
            arch = TargetArch(cast(CpuArchitecture, normalized_arch), selected=True)
        else:
            arch = TargetArch(detect_host_arch(runner, settings.tools.rustc))
        options = BuildRunOptions(
            working_dir=cwd or Path.cwd(),
            target_arch=arch,
            profile=cast(Profile | None, normalized_profile),
            verify_signature=verify_signature,
            sample_class=sample_class,
            verbosity=verbosity,
        )
        result = run_build_pipeline(settings, options, runner=runner, logger=logger)
    except DriverPackError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc

    for package_result in result.package_results:
        if package_result.success:
            typer.echo(f"{package_result.package_name}: {package_result.output_dir}")
        else:
            typer.echo(f"{package_result.package_name}: failed at {package_result.stage}")
    for skipped in result.skipped_packages:
        typer.echo(f"{skipped.package_name}: skipped ({skipped.reason})")
    if summary_file is not None:
        summary_path = write_run_summary(result, summary_file)
        typer.echo(f"summary_path: {summary_path}")

    try:
        result.raise_for_failures()
    except DriverPackError as exc:
        logger.error("%s", exc)
        raise typer.Exit(code=1) from exc


def main() -> None:
    """CLI script entrypoint."""

    app()


if __name__ == "__main__":
    main()
