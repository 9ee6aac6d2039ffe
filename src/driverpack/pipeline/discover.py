"""Select and classify the packages of a project root into package jobs."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from driverpack.errors import NotAWorkspaceMemberError
from driverpack.models import BuildRunOptions, PackageJob, SkippedPackage, profile_output_dir_name
from driverpack.providers.metadata import WorkspacePackage, WorkspaceView

LOGGER = logging.getLogger(__name__)

NO_WDK_SECTION_REASON = "no package.metadata.wdk section"
NO_CDYLIB_REASON = "no cdylib target"


@dataclass(slots=True)
class DiscoveredJobs:
    """Jobs and skipped packages for one project root, in discovery order."""

    jobs: list[PackageJob] = field(default_factory=list)
    skipped: list[SkippedPackage] = field(default_factory=list)


def _same_path(left: Path, right: Path) -> bool:
    return left.resolve(strict=False) == right.resolve(strict=False)


def select_packages(view: WorkspaceView, working_dir: Path) -> tuple[WorkspacePackage, ...]:
    """Return the candidate packages for ``working_dir``.

    The workspace root selects every member; a member's own root selects only
    that member. Any other directory inside the workspace is rejected.
    """

    if _same_path(view.workspace_root, working_dir):
        return view.packages
    for package in view.packages:
        if _same_path(package.package_root, working_dir):
            return (package,)
    raise NotAWorkspaceMemberError(working_dir)


def classify_package(package: WorkspacePackage, logger: logging.Logger | None = None) -> SkippedPackage | None:
    """Return a ``SkippedPackage`` for non-driver packages, ``None`` for drivers."""

    effective_logger = logger or LOGGER
    if not package.has_wdk_section or package.driver_metadata is None:
        effective_logger.warning(
            "No package.metadata.wdk section found. Skipping driver package workflow for package: %s",
            package.name,
        )
        return SkippedPackage(package_name=package.name, reason=NO_WDK_SECTION_REASON)
    if package.driver_metadata.driver_type != "PACKAGE" and not package.has_cdylib_target:
        effective_logger.warning(
            "No cdylib target found. Skipping driver package workflow for package: %s",
            package.name,
        )
        return SkippedPackage(package_name=package.name, reason=NO_CDYLIB_REASON)
    return None


def profile_target_dir(target_directory: Path, options: BuildRunOptions) -> Path:
    """Directory cargo writes artifacts to for the requested profile and architecture."""

    base = target_directory
    if options.target_arch.selected:
        base = base / options.target_arch.triple
    return base / profile_output_dir_name(options.profile)


def build_job(package: WorkspacePackage, view: WorkspaceView, options: BuildRunOptions) -> PackageJob:
    if package.driver_metadata is None:
        raise ValueError(f"package {package.name} has no driver metadata")
    return PackageJob(
        package_name=package.name,
        manifest_path=package.manifest_path,
        package_root=package.package_root,
        driver_metadata=package.driver_metadata,
        profile=options.profile,
        target_arch=options.target_arch,
        target_dir=profile_target_dir(view.target_directory, options),
        sample_class=options.sample_class,
        verify_signature=options.verify_signature,
    )


def discover_jobs(
    view: WorkspaceView,
    working_dir: Path,
    options: BuildRunOptions,
    logger: logging.Logger | None = None,
) -> DiscoveredJobs:
    """Turn a resolved project root into package jobs plus skipped packages."""

    effective_logger = logger or LOGGER
    discovered = DiscoveredJobs()
    for package in select_packages(view, working_dir):
        skipped = classify_package(package, logger=effective_logger)
        if skipped is not None:
            discovered.skipped.append(skipped)
            continue
        discovered.jobs.append(build_job(package, view, options))
    effective_logger.debug(
        "discover.done working_dir=%s jobs=%s skipped=%s",
        working_dir,
        [job.package_name for job in discovered.jobs],
        [skipped.package_name for skipped in discovered.skipped],
    )
    return discovered
