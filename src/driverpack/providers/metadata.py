"""Resolve cargo project/workspace metadata and driver configuration blocks."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from driverpack.errors import CommandError, DriverMetadataError, NotAProjectError
from driverpack.providers.exec import CommandRunner

LOGGER = logging.getLogger(__name__)

WDK_METADATA_KEY = "wdk"
DRIVER_MODEL_KEY = "driver-model"
DRIVER_TYPE_KEY = "driver-type"
CDYLIB_KIND = "cdylib"
VERBATIM_PATH_PREFIX = "\\\\?\\"


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class _DriverModel(BaseModel):
    model_config = ConfigDict(alias_generator=_kebab, populate_by_name=True, extra="forbid", frozen=True)


class WdmDriver(_DriverModel):
    """Windows Driver Model."""

    driver_type: Literal["WDM"] = "WDM"


class KmdfDriver(_DriverModel):
    """Kernel Mode Driver Framework."""

    driver_type: Literal["KMDF"] = "KMDF"
    kmdf_version_major: int = Field(default=1, ge=0, le=255)
    target_kmdf_version_minor: int = Field(default=33, ge=0, le=255)
    minimum_kmdf_version_minor: int | None = Field(default=None, ge=0, le=255)


class UmdfDriver(_DriverModel):
    """User Mode Driver Framework."""

    driver_type: Literal["UMDF"] = "UMDF"
    umdf_version_major: int = Field(default=2, ge=0, le=255)
    target_umdf_version_minor: int = Field(default=33, ge=0, le=255)
    minimum_umdf_version_minor: int | None = Field(default=None, ge=0, le=255)


class PackageOnlyDriver(_DriverModel):
    """INF-only package (null drivers, extension INFs); nothing is compiled."""

    driver_type: Literal["PACKAGE"] = "PACKAGE"


DriverMetadata = Annotated[
    Union[WdmDriver, KmdfDriver, UmdfDriver, PackageOnlyDriver],
    Field(discriminator="driver_type"),
]
DRIVER_METADATA_ADAPTER: TypeAdapter[Any] = TypeAdapter(DriverMetadata)


def parse_driver_metadata(package_name: str, driver_model: object) -> DriverMetadata:
    """Validate a ``driver-model`` table into one of the driver variants."""

    if not isinstance(driver_model, dict):
        raise DriverMetadataError(package_name, f"{DRIVER_MODEL_KEY} must be a table, got {type(driver_model).__name__}")
    data = dict(driver_model)
    driver_type = data.get(DRIVER_TYPE_KEY)
    if isinstance(driver_type, str):
        data[DRIVER_TYPE_KEY] = driver_type.strip().upper()
    try:
        return DRIVER_METADATA_ADAPTER.validate_python(data)
    except ValidationError as exc:
        raise DriverMetadataError(package_name, str(exc)) from exc


class CargoTarget(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    kind: list[str] = Field(default_factory=list)


class CargoPackage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str
    manifest_path: Path
    targets: list[CargoTarget] = Field(default_factory=list)
    metadata: dict[str, Any] | None = None


class CargoMetadata(BaseModel):
    """Subset of ``cargo metadata --format-version 1`` output used for discovery."""

    model_config = ConfigDict(extra="ignore")

    packages: list[CargoPackage]
    workspace_members: list[str]
    workspace_root: Path
    target_directory: Path
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class WorkspacePackage:
    """One package found under a working directory."""

    name: str
    manifest_path: Path
    driver_metadata: DriverMetadata | None
    has_wdk_section: bool = False
    has_cdylib_target: bool = False

    @property
    def package_root(self) -> Path:
        return self.manifest_path.parent


@dataclass(frozen=True, slots=True)
class WorkspaceView:
    """Packages of a project or workspace in discovery order."""

    workspace_root: Path
    target_directory: Path
    packages: tuple[WorkspacePackage, ...]


def _wdk_section(metadata: dict[str, Any] | None) -> dict[str, Any] | None:
    if not isinstance(metadata, dict):
        return None
    section = metadata.get(WDK_METADATA_KEY)
    return section if isinstance(section, dict) else None


def build_workspace_view(metadata: CargoMetadata) -> WorkspaceView:
    """Turn validated cargo metadata into a ``WorkspaceView``.

    A package's own ``driver-model`` wins; packages with an empty
    ``[package.metadata.wdk]`` fall back to ``[workspace.metadata.wdk]``.
    """

    workspace_wdk = _wdk_section(metadata.metadata) or {}
    by_id = {package.id: package for package in metadata.packages}
    ordered = [by_id[member] for member in metadata.workspace_members if member in by_id]

    packages: list[WorkspacePackage] = []
    for package in ordered:
        package_wdk = _wdk_section(package.metadata)
        driver_metadata: DriverMetadata | None = None
        if package_wdk is not None:
            driver_model = package_wdk.get(DRIVER_MODEL_KEY, workspace_wdk.get(DRIVER_MODEL_KEY))
            if driver_model is None:
                raise DriverMetadataError(package.name, "no driver-model found in package or workspace metadata")
            driver_metadata = parse_driver_metadata(package.name, driver_model)
        packages.append(
            WorkspacePackage(
                name=package.name,
                manifest_path=package.manifest_path,
                driver_metadata=driver_metadata,
                has_wdk_section=package_wdk is not None,
                has_cdylib_target=any(CDYLIB_KIND in target.kind for target in package.targets),
            )
        )

    return WorkspaceView(
        workspace_root=metadata.workspace_root,
        target_directory=metadata.target_directory,
        packages=tuple(packages),
    )


def strip_verbatim_prefix(path: Path) -> Path:
    """Drop the Windows ``\\\\?\\`` prefix that cargo does not accept."""

    text = str(path)
    if text.startswith(VERBATIM_PATH_PREFIX):
        return Path(text[len(VERBATIM_PATH_PREFIX):])
    return path


class CargoMetadataProvider:
    """Metadata provider backed by ``cargo metadata``."""

    def __init__(self, runner: CommandRunner, cargo_tool: str = "cargo", logger: logging.Logger | None = None) -> None:
        self.runner = runner
        self.cargo_tool = cargo_tool
        self.logger = logger or LOGGER

    def resolve(self, working_dir: Path) -> WorkspaceView:
        """Resolve the project or workspace rooted at ``working_dir``."""

        cwd = strip_verbatim_prefix(working_dir)
        try:
            output = self.runner.run(
                self.cargo_tool,
                ["metadata", "--format-version", "1", "--no-deps"],
                cwd=cwd,
            )
        except CommandError as exc:
            raise NotAProjectError(working_dir, str(exc)) from exc

        try:
            metadata = CargoMetadata.model_validate_json(output.stdout)
        except ValidationError as exc:
            raise NotAProjectError(working_dir, "unexpected cargo metadata output") from exc

        view = build_workspace_view(metadata)
        self.logger.debug(
            "metadata.resolved workspace_root=%s packages=%s",
            view.workspace_root,
            [package.name for package in view.packages],
        )
        return view
