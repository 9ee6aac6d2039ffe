"""Build stage: one ``cargo build`` invocation per driver package."""

from __future__ import annotations

import logging

from driverpack.errors import (
    BuildCommandError,
    BuildSpawnError,
    CommandFailedError,
    CommandSpawnError,
    EmptyManifestPathError,
    ManifestPathError,
)
from driverpack.models import PackageJob, cargo_verbosity_flag
from driverpack.providers.exec import CommandRunner
from driverpack.providers.fs import FileSystem

LOGGER = logging.getLogger(__name__)


class BuildTask:
    """Builds the package named by ``job`` with the configured options."""

    def __init__(
        self,
        job: PackageJob,
        *,
        verbosity: int,
        runner: CommandRunner,
        fs: FileSystem,
        cargo_tool: str = "cargo",
        logger: logging.Logger | None = None,
    ) -> None:
        self.job = job
        self.verbosity = verbosity
        self.runner = runner
        self.fs = fs
        self.cargo_tool = cargo_tool
        self.logger = logger or LOGGER

    def build_args(self) -> list[str]:
        """Assemble the cargo arguments; the manifest path is resolved first."""

        job = self.job
        if job.manifest_path.name == "":
            raise EmptyManifestPathError(job.package_name)
        try:
            manifest_path = self.fs.canonicalize(job.manifest_path)
        except OSError as exc:
            raise ManifestPathError(job.package_name, job.manifest_path) from exc

        args = ["build", "-p", job.package_name, "--manifest-path", str(manifest_path)]
        if job.profile is not None:
            args.extend(["--profile", job.profile])
        if job.target_arch.selected:
            args.extend(["--target", job.target_arch.triple])
        flag = cargo_verbosity_flag(self.verbosity)
        if flag is not None:
            args.append(flag)
        return args

    def run(self) -> None:
        args = self.build_args()
        self.logger.info("Building package %s", self.job.package_name)
        try:
            self.runner.run(self.cargo_tool, args, cwd=self.job.package_root)
        except CommandFailedError as exc:
            raise BuildCommandError(self.job.package_name, exc.stdout, exc.stderr) from exc
        except CommandSpawnError as exc:
            raise BuildSpawnError(self.job.package_name, str(exc.cause)) from exc
        self.logger.debug("cargo build done for package: %s", self.job.package_name)
