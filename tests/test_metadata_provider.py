from __future__ import annotations

from pathlib import Path

import pytest

from conftest import KMDF_MODEL, FakeRunner, make_view, metadata_json, package_json
from driverpack.errors import DriverMetadataError, NotAProjectError
from driverpack.providers.metadata import (
    CargoMetadata,
    CargoMetadataProvider,
    KmdfDriver,
    PackageOnlyDriver,
    UmdfDriver,
    WdmDriver,
    build_workspace_view,
    parse_driver_metadata,
    strip_verbatim_prefix,
)


def test_parse_driver_metadata_accepts_kebab_keys_and_any_case() -> None:
    parsed = parse_driver_metadata(
        "driver",
        {"driver-type": "kmdf", "kmdf-version-major": 1, "target-kmdf-version-minor": 31},
    )
    assert isinstance(parsed, KmdfDriver)
    assert parsed.target_kmdf_version_minor == 31
    assert parsed.minimum_kmdf_version_minor is None


def test_parse_driver_metadata_variants_and_defaults() -> None:
    umdf = parse_driver_metadata("u", {"driver-type": "UMDF"})
    assert isinstance(umdf, UmdfDriver)
    assert (umdf.umdf_version_major, umdf.target_umdf_version_minor) == (2, 33)
    assert isinstance(parse_driver_metadata("w", {"driver-type": "WDM"}), WdmDriver)
    assert isinstance(parse_driver_metadata("p", {"driver-type": "PACKAGE"}), PackageOnlyDriver)


@pytest.mark.parametrize(
    "driver_model",
    [
        {"driver-type": "KMDFX"},
        {"kmdf-version-major": 1},
        {"driver-type": "KMDF", "unknown-key": 1},
        {"driver-type": "KMDF", "kmdf-version-major": 256},
        "KMDF",
    ],
)
def test_parse_driver_metadata_rejects_invalid_blocks(driver_model: object) -> None:
    with pytest.raises(DriverMetadataError, match="driver"):
        parse_driver_metadata("driver", driver_model)


def test_build_workspace_view_keeps_member_order_and_flags(tmp_path: Path) -> None:
    view = make_view(
        tmp_path,
        [
            package_json(tmp_path, "b-driver", driver_model=KMDF_MODEL),
            package_json(tmp_path, "a_lib", wdk=False, kinds=("lib",)),
        ],
    )
    assert [package.name for package in view.packages] == ["b-driver", "a_lib"]
    driver, library = view.packages
    assert driver.has_wdk_section and driver.has_cdylib_target
    assert isinstance(driver.driver_metadata, KmdfDriver)
    assert driver.package_root == tmp_path / "b-driver"
    assert not library.has_wdk_section
    assert library.driver_metadata is None
    assert view.target_directory == tmp_path / "target"


def test_build_workspace_view_inherits_workspace_driver_model(tmp_path: Path) -> None:
    raw = metadata_json(
        tmp_path,
        [package_json(tmp_path, "driver")],
        workspace_metadata={"wdk": {"driver-model": {"driver-type": "UMDF"}}},
    )
    view = build_workspace_view(CargoMetadata.model_validate_json(raw))
    assert isinstance(view.packages[0].driver_metadata, UmdfDriver)


def test_build_workspace_view_requires_a_driver_model_somewhere(tmp_path: Path) -> None:
    raw = metadata_json(tmp_path, [package_json(tmp_path, "driver")])
    with pytest.raises(DriverMetadataError):
        build_workspace_view(CargoMetadata.model_validate_json(raw))


def test_provider_runs_cargo_metadata_in_working_dir(tmp_path: Path) -> None:
    raw = metadata_json(tmp_path, [package_json(tmp_path, "driver", driver_model=KMDF_MODEL)])
    runner = FakeRunner(stdout_by_command={"cargo": raw.encode("utf-8")})
    view = CargoMetadataProvider(runner).resolve(tmp_path)

    assert view.workspace_root == tmp_path
    (call,) = runner.calls
    assert call.args == ["metadata", "--format-version", "1", "--no-deps"]
    assert call.cwd == tmp_path


def test_provider_failure_is_not_a_project(tmp_path: Path) -> None:
    runner = FakeRunner(fail={"cargo": 101})
    with pytest.raises(NotAProjectError, match="not a valid rust project"):
        CargoMetadataProvider(runner).resolve(tmp_path)


def test_provider_rejects_unexpected_output(tmp_path: Path) -> None:
    runner = FakeRunner(stdout_by_command={"cargo": b"{\"packages\": 3}"})
    with pytest.raises(NotAProjectError):
        CargoMetadataProvider(runner).resolve(tmp_path)


def test_strip_verbatim_prefix() -> None:
    assert strip_verbatim_prefix(Path("\\\\?\\C:\\work\\driver")) == Path("C:\\work\\driver")
    assert strip_verbatim_prefix(Path("/work/driver")) == Path("/work/driver")
