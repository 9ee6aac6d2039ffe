"""Exception hierarchy for discovery, build, and packaging failures."""

from __future__ import annotations

from pathlib import Path
from typing import ClassVar, Sequence


class DriverPackError(RuntimeError):
    """Base class for every error raised by driverpack."""


def _with_output(message: str, stdout: str, stderr: str) -> str:
    """Append captured tool output to ``message`` so it reaches the logs."""

    if stdout.strip():
        message = f"{message}\n STDOUT: {stdout.rstrip()}"
    if stderr.strip():
        message = f"{message}\n STDERR: {stderr.rstrip()}"
    return message


class SettingsError(DriverPackError):
    """Raised when the settings file or environment overrides cannot be loaded."""

    def __init__(self, settings_file: Path | None, detail: str) -> None:
        super().__init__(f"Invalid driverpack settings ({settings_file or 'defaults'}): {detail}")
        self.settings_file = settings_file


class CommandError(DriverPackError):
    """Raised when an external tool cannot be run to completion."""

    def __init__(self, message: str, *, command: str, args: Sequence[str]) -> None:
        super().__init__(message)
        self.command = command
        self.args_list = list(args)


class CommandSpawnError(CommandError):
    """Raised when the operating system refuses to start a tool."""

    def __init__(self, command: str, args: Sequence[str], cause: OSError) -> None:
        super().__init__(f"Unable to run '{command}': {cause}", command=command, args=args)
        self.cause = cause


class CommandFailedError(CommandError):
    """Raised when a tool exits with a non-zero status."""

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        *,
        returncode: int,
        stdout: str,
        stderr: str = "",
    ) -> None:
        super().__init__(
            _with_output(
                f"Command '{command}' with args {list(args)} failed with exit code {returncode}", stdout, stderr
            ),
            command=command,
            args=args,
        )
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class WdkConfigError(DriverPackError):
    """Raised when the installed WDK cannot be located or identified."""


class UnsupportedHostArchError(DriverPackError):
    """Raised when the host toolchain does not target a supported Windows architecture."""


class DiscoveryError(DriverPackError):
    """Base class for failures that happen before any package is processed."""


class NotAProjectError(DiscoveryError):
    """Raised when a directory is not a valid cargo project or workspace."""

    def __init__(self, path: Path, detail: str | None = None) -> None:
        message = f"Error parsing Cargo.toml, not a valid rust project/workspace: {path}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.path = path


class DriverMetadataError(DiscoveryError):
    """Raised when a package.metadata.wdk section cannot be interpreted."""

    def __init__(self, package_name: str, detail: str) -> None:
        super().__init__(
            f"Error parsing WDK metadata for package {package_name}, not a valid driver project: {detail}"
        )
        self.package_name = package_name


class NotAWorkspaceMemberError(DiscoveryError):
    """Raised when the working directory is neither the workspace root nor a member root."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Not a workspace member, working directory: {path}")
        self.path = path


class NoValidProjectsError(DiscoveryError):
    """Raised when a directory without Cargo.toml holds no cargo project either."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"No valid rust projects in the working directory: {path}")
        self.path = path


class ProjectScanError(DiscoveryError):
    """Raised when an emulated-workspace directory cannot be listed."""

    def __init__(self, path: Path, cause: OSError) -> None:
        super().__init__(f"Unable to list projects in the working directory: {path}: {cause}")
        self.path = path
        self.cause = cause


class NoDriverPackagesError(DiscoveryError):
    """Raised when discovery succeeds but finds nothing to package."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"No valid driver projects in this directory: {path}")
        self.path = path


class StageError(DriverPackError):
    """Failure of one pipeline stage for one package.

    Subclasses set ``stage`` so the orchestrator can always report which tool
    or step failed without inspecting the message.
    """

    stage: ClassVar[str] = "unknown"

    def __init__(self, package_name: str, message: str) -> None:
        super().__init__(message)
        self.package_name = package_name


class BuildStageError(StageError):
    stage: ClassVar[str] = "build"


class EmptyManifestPathError(BuildStageError):
    def __init__(self, package_name: str) -> None:
        super().__init__(package_name, f"Empty manifest path found for package: {package_name}")


class ManifestPathError(BuildStageError):
    def __init__(self, package_name: str, manifest_path: Path) -> None:
        super().__init__(package_name, f"Error getting canonicalized path for manifest file: {manifest_path}")
        self.manifest_path = manifest_path


class BuildCommandError(BuildStageError):
    """cargo build ran but exited non-zero."""

    def __init__(self, package_name: str, stdout: str, stderr: str = "") -> None:
        super().__init__(
            package_name,
            _with_output(f"Error running cargo build command for package: {package_name}", stdout, stderr),
        )
        self.stdout = stdout
        self.stderr = stderr


class BuildSpawnError(BuildStageError):
    """cargo could not be started at all."""

    def __init__(self, package_name: str, detail: str) -> None:
        super().__init__(package_name, f"Unable to start cargo build for package {package_name}: {detail}")


class PackageStageError(StageError):
    """Base class for the packaging state machine."""


class MissingDescriptorError(PackageStageError):
    stage: ClassVar[str] = "locate_descriptor"

    def __init__(self, package_name: str, inx_path: Path) -> None:
        super().__init__(
            package_name,
            f"Missing .inx file in source path: {inx_path}, Please ensure you are in a Rust driver project directory.",
        )
        self.inx_path = inx_path


class StagingError(PackageStageError):
    stage: ClassVar[str] = "stage_output"


class OutputDirectoryError(StagingError):
    def __init__(self, package_name: str, path: Path, cause: OSError) -> None:
        super().__init__(package_name, f"Failed to create package directory {path}: {cause}")
        self.path = path
        self.cause = cause


class CopyFileError(StagingError):
    def __init__(self, package_name: str, src: Path, dest: Path, cause: OSError) -> None:
        super().__init__(package_name, f"Failed to copy file error, src: {src}, dest: {dest}, error: {cause}")
        self.src = src
        self.dest = dest
        self.cause = cause


class ToolStageError(PackageStageError):
    """A packaging tool exited non-zero; keeps the captured output for diagnostics."""

    tool_description: ClassVar[str] = "packaging tool"

    def __init__(self, package_name: str, cause: DriverPackError) -> None:
        super().__init__(package_name, f"Error running {self.tool_description}: {cause}")
        self.stdout = cause.stdout if isinstance(cause, CommandFailedError) else ""
        self.stderr = cause.stderr if isinstance(cause, CommandFailedError) else ""


class StampInfError(ToolStageError):
    stage: ClassVar[str] = "stamp_inf"
    tool_description: ClassVar[str] = "stampinf command"


class CatalogError(ToolStageError):
    stage: ClassVar[str] = "generate_catalog"
    tool_description: ClassVar[str] = "inf2cat command"


class SignError(ToolStageError):
    stage: ClassVar[str] = "sign"
    tool_description: ClassVar[str] = "signtool sign command"


class SignatureVerificationError(ToolStageError):
    stage: ClassVar[str] = "verify_signature"
    tool_description: ClassVar[str] = "signtool verify command"


class InfVerificationError(ToolStageError):
    stage: ClassVar[str] = "verify_inf"
    tool_description: ClassVar[str] = "infverif command"


class CertificateError(PackageStageError):
    stage: ClassVar[str] = "certificate"


class CertificateQueryError(CertificateError):
    def __init__(self, package_name: str, store_name: str, cause: CommandError) -> None:
        super().__init__(
            package_name, f"Checking for existence of cert in store {store_name} using certmgr failed: {cause}"
        )


class CertificateOutputDecodeError(CertificateError):
    def __init__(self, package_name: str, store_name: str, cause: UnicodeDecodeError) -> None:
        super().__init__(
            package_name,
            f"Error reading stdout while checking for existence of cert in store {store_name}: {cause}",
        )


class CertificateCreateError(CertificateError):
    def __init__(self, package_name: str, subject_name: str, cause: CommandError) -> None:
        super().__init__(package_name, f"Error generating certificate {subject_name} using makecert: {cause}")


class CertificateExportError(CertificateError):
    def __init__(self, package_name: str, subject_name: str, dest_path: Path, cause: Exception) -> None:
        super().__init__(
            package_name, f"Error creating cert file {dest_path} for {subject_name} from store: {cause}"
        )
        self.dest_path = dest_path


class PackagesFailedError(DriverPackError):
    """Aggregate failure: at least one package or project did not complete."""

    def __init__(self, working_dir: Path, failed: Sequence[str]) -> None:
        super().__init__(f"One or more packages failed to build in {working_dir}: {', '.join(failed)}")
        self.working_dir = working_dir
        self.failed = list(failed)
