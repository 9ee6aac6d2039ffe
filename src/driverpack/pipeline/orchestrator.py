"""Workspace orchestration: discover driver packages, then build and package each one."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Protocol

from driverpack.config import AppSettings
from driverpack.errors import (
    DiscoveryError,
    NoDriverPackagesError,
    NotAProjectError,
    NoValidProjectsError,
    ProjectScanError,
    StageError,
)
from driverpack.models import BuildRunOptions, BuildRunResult, PackageJob, PackageResult, ProjectFailure
from driverpack.pipeline.build_task import BuildTask
from driverpack.pipeline.certificates import CertificateStore, ToolCertificateStore
from driverpack.pipeline.discover import discover_jobs
from driverpack.pipeline.package_task import PackageTask
from driverpack.providers.exec import CommandRunner
from driverpack.providers.fs import FileSystem
from driverpack.providers.metadata import CargoMetadataProvider, WorkspaceView
from driverpack.providers.wdk import WdkBuild
from driverpack.utils import new_run_id, now_utc, write_json_atomically

LOGGER = logging.getLogger(__name__)

MANIFEST_FILE_NAME = "Cargo.toml"


class MetadataProvider(Protocol):
    def resolve(self, working_dir: Path) -> WorkspaceView: ...


def _run_job(
    job: PackageJob,
    *,
    settings: AppSettings,
    options: BuildRunOptions,
    runner: CommandRunner,
    fs: FileSystem,
    certificate_store: CertificateStore,
    wdk: WdkBuild,
    logger: logging.Logger,
) -> PackageResult:
    """Build and package one job; stage failures become a failed result."""

    logger.info("Processing package: %s", job.package_name)
    try:
        if not job.is_package_only:
            BuildTask(
                job,
                verbosity=options.verbosity,
                runner=runner,
                fs=fs,
                cargo_tool=settings.tools.cargo,
                logger=logger,
            ).run()
        output_dir = PackageTask(
            job,
            settings=settings,
            runner=runner,
            fs=fs,
            certificate_store=certificate_store,
            wdk=wdk,
            logger=logger,
        ).run()
    except StageError as exc:
        logger.error("Packaging failed for package: %s at stage %s: %s", job.package_name, exc.stage, exc)
        return PackageResult.failed(job.package_name, exc)
    logger.info("Processing completed for package: %s", job.package_name)
    return PackageResult.succeeded(job.package_name, output_dir)


def run_build_pipeline(
    settings: AppSettings,
    options: BuildRunOptions,
    *,
    runner: CommandRunner | None = None,
    fs: FileSystem | None = None,
    metadata_provider: MetadataProvider | None = None,
    certificate_store: CertificateStore | None = None,
    wdk: WdkBuild | None = None,
    logger: logging.Logger | None = None,
) -> BuildRunResult:
    """Run discovery plus build-and-package for every driver under ``options.working_dir``.

    Discovery failures of a project root are raised immediately. Per-package
    stage failures are collected in the returned result; every job is attempted.
    """

    effective_logger = logger or LOGGER
    effective_runner = runner or CommandRunner(logger=effective_logger)
    effective_fs = fs or FileSystem()
    provider = metadata_provider or CargoMetadataProvider(
        effective_runner, cargo_tool=settings.tools.cargo, logger=effective_logger
    )
    store = certificate_store or ToolCertificateStore(
        effective_runner,
        store_name=settings.certificate.store_name,
        tools=settings.tools,
        certificate=settings.certificate,
        logger=effective_logger,
    )
    effective_wdk = wdk or WdkBuild(settings.wdk.content_root, logger=effective_logger)

    try:
        working_dir = effective_fs.canonicalize(options.working_dir)
    except OSError as exc:
        raise NotAProjectError(options.working_dir, str(exc)) from exc

    run_id = new_run_id()
    started_mono = time.monotonic()
    result = BuildRunResult(run_id=run_id, working_dir=working_dir, started_ts=now_utc())
    effective_logger.info(
        "build_run.start run_id=%s working_dir=%s profile=%s arch=%s",
        run_id,
        working_dir,
        options.profile or "default",
        options.target_arch.arch,
    )

    jobs: list[PackageJob] = []
    if effective_fs.exists(working_dir / MANIFEST_FILE_NAME):
        view = provider.resolve(working_dir)
        discovered = discover_jobs(view, working_dir, options, logger=effective_logger)
        jobs.extend(discovered.jobs)
        result.skipped_packages.extend(discovered.skipped)
    else:
        try:
            project_dirs = effective_fs.list_project_dirs(working_dir, marker=MANIFEST_FILE_NAME)
        except OSError as exc:
            raise ProjectScanError(working_dir, exc) from exc
        if not project_dirs:
            raise NoValidProjectsError(working_dir)
        effective_logger.info("build_run.emulated_workspace projects=%s", [path.name for path in project_dirs])
        for project_dir in project_dirs:
            try:
                view = provider.resolve(project_dir)
                discovered = discover_jobs(view, project_dir, options, logger=effective_logger)
            except DiscoveryError as exc:
                effective_logger.error("Error processing project %s: %s", project_dir, exc)
                result.failed_projects.append(ProjectFailure(project_dir=project_dir, error_message=str(exc)))
                continue
            jobs.extend(discovered.jobs)
            result.skipped_packages.extend(discovered.skipped)

    if not jobs and not result.failed_projects:
        raise NoDriverPackagesError(working_dir)

    effective_logger.info(
        "build_run.discovered run_id=%s jobs=%s skipped=%s failed_projects=%s",
        run_id,
        len(jobs),
        len(result.skipped_packages),
        len(result.failed_projects),
    )

    for job in jobs:
        result.package_results.append(
            _run_job(
                job,
                settings=settings,
                options=options,
                runner=effective_runner,
                fs=effective_fs,
                certificate_store=store,
                wdk=effective_wdk,
                logger=effective_logger,
            )
        )

    result.finished_ts = now_utc()
    effective_logger.info(
        "build_run.finish run_id=%s ok=%s succeeded=%s failed=%s duration_sec=%.2f",
        run_id,
        result.ok,
        sum(1 for package_result in result.package_results if package_result.success),
        len(result.failed_results),
        time.monotonic() - started_mono,
    )
    return result


def write_run_summary(result: BuildRunResult, summary_path: Path) -> Path:
    """Persist the run summary JSON atomically."""

    return write_json_atomically(result.to_summary(), summary_path)
