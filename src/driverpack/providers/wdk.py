"""Windows Driver Kit discovery: content root, build number, host architecture."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from driverpack.errors import CommandError, UnsupportedHostArchError, WdkConfigError
from driverpack.models import CpuArchitecture, arch_from_target_triple
from driverpack.providers.exec import CommandRunner

LOGGER = logging.getLogger(__name__)

DEFAULT_WDK_CONTENT_ROOT = Path("C:/Program Files (x86)/Windows Kits/10")
HOST_TOOL_DIR_NAMES: dict[CpuArchitecture, str] = {"amd64": "x64", "arm64": "arm64"}


def parse_wdk_version(version: str) -> tuple[int, int, int, int]:
    """Parse ``10.0.<build>.<rev>`` into a tuple, rejecting anything else."""

    parts = version.strip().split(".")
    if len(parts) != 4 or parts[0] != "10":
        raise WdkConfigError(f"WDK version string is not in the expected 10.x.y.z format: {version!r}")
    try:
        major, minor, build, revision = (int(part) for part in parts)
    except ValueError as exc:
        raise WdkConfigError(f"WDK version string has non-numeric parts: {version!r}") from exc
    return major, minor, build, revision


def detect_wdk_content_root(
    configured: Path | None = None,
    environ: Mapping[str, str] | None = None,
    logger: logging.Logger | None = None,
) -> Path | None:
    """Locate the WDK content root from settings, environment, or the default install path."""

    effective_logger = logger or LOGGER
    env = os.environ if environ is None else environ

    if configured is not None:
        if configured.is_dir():
            return configured
        effective_logger.warning("wdk.configured_root_missing path=%s", configured)

    content_root = env.get("WDKContentRoot")
    if content_root:
        path = Path(content_root)
        if path.is_dir():
            return path
        effective_logger.warning("wdk.content_root_env_invalid path=%s", path)

    kit_root = env.get("MicrosoftKitRoot")
    if kit_root:
        path = Path(kit_root)
        if not path.is_absolute() or not path.is_dir():
            effective_logger.warning("wdk.kit_root_env_invalid path=%s", path)
        else:
            candidate = path / "Windows Kits" / env.get("WDKKitVersion", "10.0").split(".")[0]
            if candidate.is_dir():
                return candidate

    if DEFAULT_WDK_CONTENT_ROOT.is_dir():
        return DEFAULT_WDK_CONTENT_ROOT
    return None


def detect_sdk_version(content_root: Path, environ: Mapping[str, str] | None = None) -> str:
    """Return the newest ``10.*`` version folder under ``<root>/Lib``.

    ``Version_Number`` (set inside an eWDK prompt) takes precedence.
    """

    env = os.environ if environ is None else environ
    pinned = env.get("Version_Number")
    if pinned:
        return pinned

    lib_dir = content_root / "Lib"
    try:
        candidates = [child.name for child in lib_dir.iterdir() if child.is_dir() and child.name.startswith("10.")]
    except OSError as exc:
        raise WdkConfigError(f"Unable to read Windows SDK directory {lib_dir}: {exc}") from exc

    versions: list[tuple[tuple[int, int, int, int], str]] = []
    for name in candidates:
        try:
            versions.append((parse_wdk_version(name), name))
        except WdkConfigError:
            continue
    if not versions:
        raise WdkConfigError(f"No Windows SDK version directory found in {lib_dir}")
    return max(versions)[1]


class WdkBuild:
    """Provider for facts about the installed WDK."""

    def __init__(
        self,
        content_root: Path | None = None,
        environ: Mapping[str, str] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.configured_root = content_root
        self.environ = environ
        self.logger = logger or LOGGER

    def content_root(self) -> Path:
        root = detect_wdk_content_root(self.configured_root, self.environ, logger=self.logger)
        if root is None:
            raise WdkConfigError("Unable to detect the WDK content root. Install the WDK or set WDKContentRoot.")
        return root

    def sdk_version(self) -> str:
        return detect_sdk_version(self.content_root(), self.environ)

    def detect_wdk_build_number(self) -> int:
        """Return the build component of the detected WDK version (e.g. 26100)."""

        build_number = parse_wdk_version(self.sdk_version())[2]
        self.logger.debug("wdk.build_number build=%s", build_number)
        return build_number

    def tool_paths(self, host_arch: CpuArchitecture) -> list[Path]:
        """Directories holding stampinf, inf2cat, signtool, and friends for ``host_arch``."""

        root = self.content_root()
        version = self.sdk_version()
        host_dir = HOST_TOOL_DIR_NAMES[host_arch]
        candidates = [
            root / "bin" / version / host_dir,
            root / "bin" / version / "x86",
            root / "Tools" / version / host_dir,
        ]
        return [path for path in candidates if path.is_dir()]


def detect_host_arch(runner: CommandRunner, rustc_tool: str = "rustc") -> CpuArchitecture:
    """Return the host architecture reported by ``rustc --print host-tuple``."""

    try:
        output = runner.run(rustc_tool, ["--print", "host-tuple"])
    except CommandError as exc:
        raise UnsupportedHostArchError(f"Unable to read rustc host tuple: {exc}") from exc

    host_tuple = output.stdout_text().strip()
    arch = arch_from_target_triple(host_tuple)
    if arch is None:
        raise UnsupportedHostArchError(
            f"Unsupported default target: {host_tuple}. Only x86_64-pc-windows-msvc and "
            "aarch64-pc-windows-msvc are supported. Use --target-arch to pick an architecture explicitly."
        )
    return arch
