from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeRunner
from driverpack.errors import UnsupportedHostArchError, WdkConfigError
from driverpack.providers.wdk import (
    WdkBuild,
    detect_host_arch,
    detect_sdk_version,
    detect_wdk_content_root,
    parse_wdk_version,
)


def _kit(root: Path, *versions: str) -> Path:
    for version in versions:
        (root / "Lib" / version).mkdir(parents=True)
    return root


def test_parse_wdk_version() -> None:
    assert parse_wdk_version("10.0.26100.0") == (10, 0, 26100, 0)


@pytest.mark.parametrize("version", ["10.0.26100", "11.0.1.2", "10.0.abc.0"])
def test_parse_wdk_version_rejects_other_formats(version: str) -> None:
    with pytest.raises(WdkConfigError):
        parse_wdk_version(version)


def test_detect_sdk_version_picks_newest(tmp_path: Path) -> None:
    root = _kit(tmp_path, "10.0.22621.0", "10.0.26100.0", "10.0.19041.0", "wdf")
    assert detect_sdk_version(root, environ={}) == "10.0.26100.0"


def test_detect_sdk_version_prefers_pinned_version(tmp_path: Path) -> None:
    root = _kit(tmp_path, "10.0.26100.0")
    assert detect_sdk_version(root, environ={"Version_Number": "10.0.22621.0"}) == "10.0.22621.0"


def test_detect_sdk_version_without_versions(tmp_path: Path) -> None:
    with pytest.raises(WdkConfigError):
        detect_sdk_version(tmp_path, environ={})


def test_content_root_from_configuration_then_environment(tmp_path: Path) -> None:
    configured = tmp_path / "configured"
    configured.mkdir()
    from_env = tmp_path / "env"
    from_env.mkdir()

    assert detect_wdk_content_root(configured, environ={"WDKContentRoot": str(from_env)}) == configured
    assert detect_wdk_content_root(None, environ={"WDKContentRoot": str(from_env)}) == from_env


def test_content_root_from_kit_root(tmp_path: Path) -> None:
    kits = tmp_path / "Windows Kits" / "10"
    kits.mkdir(parents=True)
    assert detect_wdk_content_root(None, environ={"MicrosoftKitRoot": str(tmp_path)}) == kits


def test_build_number_from_detected_kit(tmp_path: Path) -> None:
    root = _kit(tmp_path, "10.0.22621.0", "10.0.26100.0")
    assert WdkBuild(root, environ={}).detect_wdk_build_number() == 26100


def test_tool_paths_only_lists_existing_dirs(tmp_path: Path) -> None:
    root = _kit(tmp_path, "10.0.26100.0")
    (root / "bin" / "10.0.26100.0" / "x64").mkdir(parents=True)
    (root / "Tools" / "10.0.26100.0" / "x64").mkdir(parents=True)

    assert WdkBuild(root, environ={}).tool_paths("amd64") == [
        root / "bin" / "10.0.26100.0" / "x64",
        root / "Tools" / "10.0.26100.0" / "x64",
    ]


@pytest.mark.parametrize(
    ("host_tuple", "arch"),
    [("x86_64-pc-windows-msvc", "amd64"), ("aarch64-pc-windows-msvc\n", "arm64")],
)
def test_detect_host_arch(host_tuple: str, arch: str) -> None:
    runner = FakeRunner(host_tuple=host_tuple)
    assert detect_host_arch(runner) == arch  # type: ignore[arg-type]
    assert runner.calls[0].args == ["--print", "host-tuple"]


def test_detect_host_arch_rejects_other_hosts() -> None:
    runner = FakeRunner(host_tuple="x86_64-unknown-linux-gnu")
    with pytest.raises(UnsupportedHostArchError, match="Unsupported default target"):
        detect_host_arch(runner)  # type: ignore[arg-type]
