"""Packaging state machine: turn a built driver into an installable package directory."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from driverpack.config import AppSettings
from driverpack.errors import (
    CatalogError,
    CertificateExportError,
    CommandError,
    CopyFileError,
    InfVerificationError,
    MissingDescriptorError,
    OutputDirectoryError,
    SignatureVerificationError,
    SignError,
    StampInfError,
    WdkConfigError,
)
from driverpack.models import INF2CAT_OS_MAPPING, PackageJob, PackageStage
from driverpack.pipeline.certificates import CertificateManager, CertificateStore, ToolCertificateStore
from driverpack.providers.exec import CommandRunner
from driverpack.providers.fs import FileSystem
from driverpack.providers.metadata import KmdfDriver, UmdfDriver
from driverpack.providers.wdk import WdkBuild
from driverpack.utils import package_layout

LOGGER = logging.getLogger(__name__)

PackageStep = tuple[PackageStage, Callable[[], None]]


class PackageTask:
    """Runs the packaging tools over one job's build output.

    Steps run in a fixed order and each raises a single ``StageError`` family.
    Files already written when a step fails are left in place.
    """

    def __init__(
        self,
        job: PackageJob,
        *,
        settings: AppSettings,
        runner: CommandRunner,
        fs: FileSystem,
        certificate_store: CertificateStore | None = None,
        wdk: WdkBuild | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.job = job
        self.settings = settings
        self.runner = runner
        self.fs = fs
        self.logger = logger or LOGGER
        self.tools = settings.tools
        self.certificate = settings.certificate
        store = certificate_store or ToolCertificateStore(
            runner,
            store_name=self.certificate.store_name,
            tools=self.tools,
            certificate=self.certificate,
            logger=self.logger,
        )
        self.certificate_manager = CertificateManager(store, package_name=job.package_name, logger=self.logger)
        self.wdk = wdk or WdkBuild(settings.wdk.content_root, logger=self.logger)

        self.layout = package_layout(
            package_root=job.package_root,
            target_dir=job.target_dir,
            name=job.normalized_name,
            binary_extension=job.binary_extension,
            cert_subject=self.certificate.subject_name,
        )
        self.output_dir = self.layout.output_dir

    def steps(self) -> list[PackageStep]:
        """Return the steps that apply to this job, in execution order."""

        steps: list[PackageStep] = [
            ("locate_descriptor", self.locate_descriptor),
            ("stage_output", self.stage_output),
            ("stamp_inf", self.stamp_inf),
            ("generate_catalog", self.generate_catalog),
        ]
        if self.job.is_package_only:
            return steps
        if self.certificate.test_signing:
            steps.append(("certificate", self.provision_certificate))
            steps.append(("sign", self.sign))
            if self.job.verify_signature:
                steps.append(("verify_signature", self.verify_signature))
        steps.append(("verify_inf", self.verify_inf))
        return steps

    def run(self) -> Path:
        for stage, step in self.steps():
            self.logger.debug("package.step package=%s stage=%s", self.job.package_name, stage)
            step()
        self.logger.info("Package created at %s", self.output_dir)
        return self.output_dir

    def locate_descriptor(self) -> None:
        if not self.fs.exists(self.layout.src_inx):
            raise MissingDescriptorError(self.job.package_name, self.layout.src_inx)

    def _copy(self, src: Path, dest: Path) -> None:
        try:
            self.fs.copy(src, dest)
        except OSError as exc:
            raise CopyFileError(self.job.package_name, src, dest, exc) from exc

    def stage_output(self) -> None:
        job = self.job
        try:
            self.fs.create_dir(self.output_dir)
        except OSError as exc:
            raise OutputDirectoryError(job.package_name, self.output_dir, exc) from exc

        if not job.is_package_only:
            if self.layout.src_binary != self.layout.src_dll:
                self.logger.debug("Renaming %s to %s", self.layout.src_dll, self.layout.src_binary)
                try:
                    self.fs.rename(self.layout.src_dll, self.layout.src_binary)
                except OSError as exc:
                    raise CopyFileError(job.package_name, self.layout.src_dll, self.layout.src_binary, exc) from exc
            self._copy(self.layout.src_binary, self.layout.dest_binary)

        self._copy(self.layout.src_inx, self.layout.dest_inf)

        if not job.is_package_only and job.is_debug_profile:
            self._copy(self.layout.src_pdb, self.layout.dest_pdb)
            self._copy(self.layout.src_map, self.layout.dest_map)

    def stamp_inf_args(self) -> list[str]:
        args = [
            "-f",
            str(self.layout.dest_inf),
            "-d",
            "*",
            "-a",
            self.job.target_arch.arch,
            "-c",
            self.layout.dest_cat.name,
            "-v",
            "*",
        ]
        metadata = self.job.driver_metadata
        if isinstance(metadata, KmdfDriver):
            args.extend(["-k", f"{metadata.kmdf_version_major}.{metadata.target_kmdf_version_minor}"])
        elif isinstance(metadata, UmdfDriver):
            args.extend(["-u", f"{metadata.umdf_version_major}.{metadata.target_umdf_version_minor}.0"])
        return args

    def stamp_inf(self) -> None:
        self.logger.info("Running stampinf")
        try:
            self.runner.run(self.tools.stampinf, self.stamp_inf_args())
        except CommandError as exc:
            raise StampInfError(self.job.package_name, exc) from exc

    def generate_catalog(self) -> None:
        self.logger.info("Running inf2cat")
        args = [
            f"/driver:{self.output_dir}",
            f"/os:{INF2CAT_OS_MAPPING[self.job.target_arch.arch]}",
            "/uselocaltime",
        ]
        try:
            self.runner.run(self.tools.inf2cat, args)
        except CommandError as exc:
            raise CatalogError(self.job.package_name, exc) from exc

    def provision_certificate(self) -> None:
        subject = self.certificate.subject_name
        if self.fs.exists(self.layout.src_cert):
            self.logger.info("Certificate %s already exists at %s", subject, self.layout.src_cert)
        else:
            handle = self.certificate_manager.ensure_certificate(subject, self.layout.src_cert)
            self.logger.info(
                "certificate.provisioned subject=%s store=%s created=%s path=%s",
                handle.subject_name,
                handle.store_name,
                handle.created,
                handle.cert_path,
            )
        try:
            self.fs.copy(self.layout.src_cert, self.layout.dest_cert)
        except OSError as exc:
            raise CertificateExportError(self.job.package_name, subject, self.layout.dest_cert, exc) from exc

    def sign_args(self, file_path: Path) -> list[str]:
        return [
            "sign",
            "/v",
            "/s",
            self.certificate.store_name,
            "/n",
            self.certificate.subject_name,
            "/t",
            self.certificate.timestamp_url,
            "/fd",
            self.certificate.hash_algorithm,
            str(file_path),
        ]

    def sign(self) -> None:
        for file_path in (self.layout.dest_binary, self.layout.dest_cat):
            self.logger.info("Signing %s", file_path.name)
            try:
                self.runner.run(self.tools.signtool, self.sign_args(file_path))
            except CommandError as exc:
                raise SignError(self.job.package_name, exc) from exc

    def verify_signature(self) -> None:
        for file_path in (self.layout.dest_binary, self.layout.dest_cat):
            self.logger.info("Verifying signature of %s", file_path.name)
            try:
                self.runner.run(self.tools.signtool, ["verify", "/v", "/pa", str(file_path)])
            except CommandError as exc:
                raise SignatureVerificationError(self.job.package_name, exc) from exc

    def infverif_args(self) -> list[str]:
        mode = "/u" if isinstance(self.job.driver_metadata, UmdfDriver) else "/w"
        args = ["/v", mode]
        if self.job.sample_class:
            args.append("/msft")
        args.append(str(self.layout.dest_inf))
        return args

    def verify_inf(self) -> None:
        job = self.job
        if job.sample_class:
            try:
                build_number = self.wdk.detect_wdk_build_number()
            except WdkConfigError as exc:
                raise InfVerificationError(job.package_name, exc) from exc
            if build_number >= self.settings.wdk.missing_sample_flag_min_build:
                self.logger.info(
                    "Skipping InfVerif for WDK build %s: the samples flag is not available in this build.",
                    build_number,
                )
                return

        self.logger.info("Running InfVerif")
        try:
            self.runner.run(self.tools.infverif, self.infverif_args())
        except CommandError as exc:
            raise InfVerificationError(job.package_name, exc) from exc
