"""Test-certificate provisioning: check, create if absent, export to a .cer file."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from driverpack.config import CertificateConfig, ToolsConfig
from driverpack.errors import (
    CertificateCreateError,
    CertificateExportError,
    CertificateOutputDecodeError,
    CertificateQueryError,
    CommandError,
)
from driverpack.providers.exec import CommandRunner

LOGGER = logging.getLogger(__name__)


class CertificateStore(Protocol):
    """A named certificate store; the store itself outlives any run."""

    store_name: str

    def exists(self, subject_name: str) -> bool: ...

    def create(self, subject_name: str) -> None: ...

    def export(self, subject_name: str, dest_path: Path) -> None: ...


@dataclass(frozen=True, slots=True)
class CertificateHandle:
    """Location of an exported certificate and how it was obtained."""

    store_name: str
    subject_name: str
    cert_path: Path
    created: bool


class ToolCertificateStore:
    """Certificate store driven by ``certmgr`` and ``makecert``.

    ``exists`` parses certmgr's listing, so it is sensitive to the tool's
    output format. Raises ``CommandError`` and ``UnicodeDecodeError`` as-is.
    """

    def __init__(
        self,
        runner: CommandRunner,
        *,
        store_name: str = "WDRTestCertStore",
        tools: ToolsConfig | None = None,
        certificate: CertificateConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.runner = runner
        self.store_name = store_name
        self.tools = tools or ToolsConfig()
        self.certificate = certificate or CertificateConfig(store_name=store_name)
        self.logger = logger or LOGGER

    def exists(self, subject_name: str) -> bool:
        self.logger.debug("Checking if self signed certificate exists in %s store.", self.store_name)
        output = self.runner.run(self.tools.certmgr, ["-s", self.store_name], check=False)
        if not output.success:
            return False
        listing = output.stdout.decode("utf-8")
        return subject_name in listing

    def create(self, subject_name: str) -> None:
        self.logger.info("Creating self signed certificate in %s store using makecert.", self.store_name)
        self.runner.run(
            self.tools.makecert,
            [
                "-r",
                "-pe",
                "-a",
                self.certificate.hash_algorithm,
                "-eku",
                self.certificate.enhanced_key_usage,
                "-ss",
                self.store_name,
                "-n",
                f"CN={subject_name}",
            ],
        )

    def export(self, subject_name: str, dest_path: Path) -> None:
        self.logger.info("Creating certificate file from %s store using certmgr.", self.store_name)
        self.runner.run(
            self.tools.certmgr,
            ["-put", "-s", self.store_name, "-c", "-n", subject_name, str(dest_path)],
        )


class CertificateManager:
    """Idempotent provisioning of the shared test certificate.

    Concurrent runs on one machine may both see the certificate as absent and
    both create it; the store is not locked.
    """

    def __init__(self, store: CertificateStore, *, package_name: str = "", logger: logging.Logger | None = None) -> None:
        self.store = store
        self.package_name = package_name
        self.logger = logger or LOGGER

    def exists(self, subject_name: str) -> bool:
        try:
            return self.store.exists(subject_name)
        except UnicodeDecodeError as exc:
            raise CertificateOutputDecodeError(self.package_name, self.store.store_name, exc) from exc
        except CommandError as exc:
            raise CertificateQueryError(self.package_name, self.store.store_name, exc) from exc

    def create(self, subject_name: str) -> None:
        try:
            self.store.create(subject_name)
        except CommandError as exc:
            raise CertificateCreateError(self.package_name, subject_name, exc) from exc

    def export(self, subject_name: str, dest_path: Path) -> None:
        try:
            self.store.export(subject_name, dest_path)
        except CommandError as exc:
            raise CertificateExportError(self.package_name, subject_name, dest_path, exc) from exc

    def ensure_certificate(self, subject_name: str, dest_path: Path) -> CertificateHandle:
        """Make sure ``subject_name`` is in the store and exported to ``dest_path``."""

        created = False
        if not self.exists(subject_name):
            self.create(subject_name)
            created = True
        else:
            self.logger.debug("Certificate %s already present in %s store.", subject_name, self.store.store_name)
        self.export(subject_name, dest_path)
        return CertificateHandle(
            store_name=self.store.store_name,
            subject_name=subject_name,
            cert_path=dest_path,
            created=created,
        )
