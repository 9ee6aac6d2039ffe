"""Typed models for build runs, package jobs, and their outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

from driverpack.errors import PackagesFailedError, StageError
from driverpack.providers.metadata import DriverMetadata, KmdfDriver, UmdfDriver

Profile = Literal["dev", "release"]
CpuArchitecture = Literal["amd64", "arm64"]
PackageStage = Literal[
    "build",
    "locate_descriptor",
    "stage_output",
    "stamp_inf",
    "generate_catalog",
    "certificate",
    "sign",
    "verify_signature",
    "verify_inf",
]

PROFILE_ALIASES: dict[str, Profile] = {"dev": "dev", "debug": "dev", "release": "release"}
ARCH_ALIASES: dict[str, CpuArchitecture] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}
TARGET_TRIPLES: dict[CpuArchitecture, str] = {
    "amd64": "x86_64-pc-windows-msvc",
    "arm64": "aarch64-pc-windows-msvc",
}
INF2CAT_OS_MAPPING: dict[CpuArchitecture, str] = {
    "amd64": "10_x64",
    "arm64": "Server10_arm64",
}


def to_target_triple(arch: CpuArchitecture) -> str:
    """Return the Rust target triple for a CPU architecture."""

    return TARGET_TRIPLES[arch]


def arch_from_target_triple(triple: str) -> CpuArchitecture | None:
    """Map a host tuple printed by rustc back to an architecture, if supported."""

    for arch, known in TARGET_TRIPLES.items():
        if known == triple:
            return arch
    return None


def profile_output_dir_name(profile: Profile | None) -> str:
    return "release" if profile == "release" else "debug"


def cargo_verbosity_flag(verbosity: int) -> str | None:
    """Translate CLI verbosity into the matching cargo flag.

    ``-1`` is quiet, ``0`` the default, ``1`` one ``-v`` and anything higher
    the extra-verbose flag.
    """

    if verbosity < 0:
        return "-q"
    if verbosity == 0:
        return None
    if verbosity == 1:
        return "-v"
    return "-vv"


@dataclass(frozen=True, slots=True)
class TargetArch:
    """Architecture to package for and whether the user chose it explicitly."""

    arch: CpuArchitecture
    selected: bool = False

    @property
    def triple(self) -> str:
        return to_target_triple(self.arch)


@dataclass(frozen=True, slots=True)
class PackageJob:
    """One unit of orchestration work for a single driver package."""

    package_name: str
    manifest_path: Path
    package_root: Path
    driver_metadata: DriverMetadata
    profile: Profile | None
    target_arch: TargetArch
    target_dir: Path
    sample_class: bool = False
    verify_signature: bool = False

    @property
    def normalized_name(self) -> str:
        """Package name as cargo writes it into artifact file names."""

        return self.package_name.replace("-", "_")

    @property
    def is_package_only(self) -> bool:
        return self.driver_metadata.driver_type == "PACKAGE"

    @property
    def binary_extension(self) -> str:
        return "dll" if isinstance(self.driver_metadata, UmdfDriver) else "sys"

    @property
    def output_dir(self) -> Path:
        return self.target_dir / f"{self.normalized_name}_package"

    @property
    def is_debug_profile(self) -> bool:
        return self.profile != "release"

    @property
    def is_kernel_mode(self) -> bool:
        return not isinstance(self.driver_metadata, UmdfDriver)

    @property
    def is_kmdf(self) -> bool:
        return isinstance(self.driver_metadata, KmdfDriver)


@dataclass(frozen=True, slots=True)
class PackageResult:
    """Outcome of one package job."""

    package_name: str
    success: bool
    output_dir: Path | None = None
    stage: str | None = None
    error: StageError | None = None

    @classmethod
    def succeeded(cls, package_name: str, output_dir: Path) -> "PackageResult":
        return cls(package_name=package_name, success=True, output_dir=output_dir)

    @classmethod
    def failed(cls, package_name: str, error: StageError) -> "PackageResult":
        return cls(package_name=package_name, success=False, stage=error.stage, error=error)


@dataclass(frozen=True, slots=True)
class SkippedPackage:
    """A discovered package that is not driver-eligible."""

    package_name: str
    reason: str


@dataclass(frozen=True, slots=True)
class ProjectFailure:
    """A sub-project of an emulated workspace whose discovery failed."""

    project_dir: Path
    error_message: str


@dataclass(frozen=True, slots=True)
class BuildRunOptions:
    """Runtime options for one build-and-package run."""

    working_dir: Path
    target_arch: TargetArch
    profile: Profile | None = None
    verify_signature: bool = False
    sample_class: bool = False
    verbosity: int = 0


@dataclass(slots=True)
class BuildRunResult:
    """Aggregated outcome of a run: every job result in discovery order."""

    run_id: str
    working_dir: Path
    started_ts: datetime
    finished_ts: datetime | None = None
    package_results: list[PackageResult] = field(default_factory=list)
    skipped_packages: list[SkippedPackage] = field(default_factory=list)
    failed_projects: list[ProjectFailure] = field(default_factory=list)

    @property
    def failed_results(self) -> list[PackageResult]:
        return [result for result in self.package_results if not result.success]

    @property
    def ok(self) -> bool:
        return not self.failed_results and not self.failed_projects

    def raise_for_failures(self) -> None:
        """Raise the aggregate error when any job or sub-project failed."""

        if self.ok:
            return
        failed = [result.package_name for result in self.failed_results]
        failed.extend(str(project.project_dir) for project in self.failed_projects)
        raise PackagesFailedError(self.working_dir, failed)

    def to_summary(self) -> dict[str, Any]:
        """Return a JSON-serializable run summary."""

        return {
            "run_id": self.run_id,
            "working_dir": str(self.working_dir),
            "started_ts": self.started_ts.isoformat(),
            "finished_ts": self.finished_ts.isoformat() if self.finished_ts else None,
            "ok": self.ok,
            "packages_succeeded": sum(1 for result in self.package_results if result.success),
            "packages_failed": len(self.failed_results),
            "packages_skipped": len(self.skipped_packages),
            "packages": [
                {
                    "package_name": result.package_name,
                    "success": result.success,
                    "output_dir": str(result.output_dir) if result.output_dir else None,
                    "stage": result.stage,
                    "error_message": str(result.error) if result.error else None,
                }
                for result in self.package_results
            ],
            "skipped": [
                {"package_name": skipped.package_name, "reason": skipped.reason}
                for skipped in self.skipped_packages
            ],
            "failed_projects": [
                {"project_dir": str(project.project_dir), "error_message": project.error_message}
                for project in self.failed_projects
            ],
        }
