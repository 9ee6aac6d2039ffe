"""Providers wrapping external collaborators: processes, files, cargo metadata, the WDK."""

from driverpack.providers.exec import CommandOutput, CommandRunner
from driverpack.providers.fs import FileSystem
from driverpack.providers.metadata import (
    CargoMetadataProvider,
    DriverMetadata,
    KmdfDriver,
    PackageOnlyDriver,
    UmdfDriver,
    WdmDriver,
    WorkspacePackage,
    WorkspaceView,
    build_workspace_view,
    parse_driver_metadata,
)

__all__ = [
    "CommandOutput",
    "CommandRunner",
    "FileSystem",
    "CargoMetadataProvider",
    "DriverMetadata",
    "KmdfDriver",
    "UmdfDriver",
    "WdmDriver",
    "PackageOnlyDriver",
    "WorkspacePackage",
    "WorkspaceView",
    "build_workspace_view",
    "parse_driver_metadata",
]
