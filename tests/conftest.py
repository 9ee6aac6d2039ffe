from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

import pytest

from driverpack.config import AppSettings, load_settings
from driverpack.errors import CommandFailedError, CommandSpawnError
from driverpack.models import BuildRunOptions, PackageJob, TargetArch
from driverpack.providers.exec import CommandOutput
from driverpack.providers.metadata import CargoMetadata, WorkspaceView, build_workspace_view, parse_driver_metadata


@dataclass
class Call:
    command: str
    args: list[str]
    cwd: Path | None = None


@dataclass
class FakeRunner:
    """Stands in for CommandRunner; tool handlers write the files the real tools would."""

    target_root: Path | None = None
    host_tuple: str = "x86_64-pc-windows-msvc"
    fail: dict[str, int] = field(default_factory=dict)
    missing: set[str] = field(default_factory=set)
    cert_subjects: set[str] = field(default_factory=set)
    certmgr_listing: bytes | None = None
    stdout_by_command: dict[str, bytes] = field(default_factory=dict)
    stderr_by_command: dict[str, bytes] = field(default_factory=dict)
    calls: list[Call] = field(default_factory=list)

    def run(
        self,
        command: str,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        *,
        check: bool = True,
    ) -> CommandOutput:
        args = list(args)
        self.calls.append(Call(command=command, args=args, cwd=cwd))
        if command in self.missing:
            raise CommandSpawnError(command, args, FileNotFoundError(2, "not found", command))

        returncode = self.fail.get(command, 0)
        stdout = self.stdout_by_command.get(command, b"")
        if returncode == 0:
            stdout = self._handle(command, args) or stdout
        stderr = self.stderr_by_command.get(command, b"")
        output = CommandOutput(command=command, args=tuple(args), returncode=returncode, stdout=stdout, stderr=stderr)
        if check and returncode != 0:
            raise CommandFailedError(
                command,
                args,
                returncode=returncode,
                stdout=stdout.decode("utf-8", "replace"),
                stderr=stderr.decode("utf-8", "replace"),
            )
        return output

    def calls_for(self, command: str) -> list[Call]:
        return [call for call in self.calls if call.command == command]

    def _handle(self, command: str, args: list[str]) -> bytes | None:
        if command == "cargo" and args and args[0] == "build":
            self._cargo_build(args)
        elif command == "rustc":
            return self.host_tuple.encode("utf-8")
        elif command == "inf2cat":
            driver_dir = Path(args[0].split(":", 1)[1])
            for inf in driver_dir.glob("*.inf"):
                inf.with_suffix(".cat").write_bytes(b"catalog")
        elif command == "makecert":
            self.cert_subjects.add(args[args.index("-n") + 1].removeprefix("CN="))
        elif command == "certmgr.exe":
            if "-put" in args:
                Path(args[-1]).write_bytes(b"certificate")
                return None
            if self.certmgr_listing is not None:
                return self.certmgr_listing
            lines = [f"Subject::\n  [0,0] 2.5.4.3 (CN) {subject}" for subject in sorted(self.cert_subjects)]
            return ("==============Certificate # 1 ==========\n" + "\n".join(lines)).encode("utf-8")
        return None

    def _cargo_build(self, args: list[str]) -> None:
        if self.target_root is None:
            return
        name = args[args.index("-p") + 1].replace("-", "_")
        out_dir = self.target_root
        if "--target" in args:
            out_dir = out_dir / args[args.index("--target") + 1]
        profile = args[args.index("--profile") + 1] if "--profile" in args else "dev"
        out_dir = out_dir / ("release" if profile == "release" else "debug")
        (out_dir / "deps").mkdir(parents=True, exist_ok=True)
        (out_dir / f"{name}.dll").write_bytes(b"binary")
        (out_dir / f"{name}.pdb").write_bytes(b"symbols")
        (out_dir / "deps" / f"{name}.map").write_bytes(b"map")


class FakeWdk:
    def __init__(self, build_number: int = 22621) -> None:
        self.build_number = build_number
        self.calls = 0

    def detect_wdk_build_number(self) -> int:
        self.calls += 1
        return self.build_number

    def tool_paths(self, host_arch: str) -> list[Path]:
        return []


class FakeMetadataProvider:
    def __init__(self, views: Mapping[Path, WorkspaceView | Exception]) -> None:
        self.views = {path.resolve(): view for path, view in views.items()}
        self.resolved: list[Path] = []

    def resolve(self, working_dir: Path) -> WorkspaceView:
        self.resolved.append(working_dir)
        view = self.views[working_dir.resolve()]
        if isinstance(view, Exception):
            raise view
        return view


class FakeCertificateStore:
    def __init__(self, subjects: set[str] | None = None, store_name: str = "WDRTestCertStore") -> None:
        self.store_name = store_name
        self.subjects = set(subjects or ())
        self.created: list[str] = []
        self.exported: list[Path] = []

    def exists(self, subject_name: str) -> bool:
        return subject_name in self.subjects

    def create(self, subject_name: str) -> None:
        self.subjects.add(subject_name)
        self.created.append(subject_name)

    def export(self, subject_name: str, dest_path: Path) -> None:
        dest_path.write_bytes(b"certificate")
        self.exported.append(dest_path)


KMDF_MODEL: dict[str, Any] = {"driver-type": "KMDF", "kmdf-version-major": 1, "target-kmdf-version-minor": 33}


def package_json(
    root: Path,
    name: str,
    *,
    driver_model: dict[str, Any] | None = None,
    wdk: bool = True,
    kinds: Sequence[str] = ("cdylib",),
) -> dict[str, Any]:
    metadata = None
    if wdk:
        metadata = {"wdk": {"driver-model": driver_model} if driver_model is not None else {}}
    return {
        "id": f"path+file://{root / name}#{name}@0.1.0",
        "name": name,
        "manifest_path": str(root / name / "Cargo.toml"),
        "targets": [{"name": name.replace("-", "_"), "kind": list(kinds)}],
        "metadata": metadata,
    }


def metadata_json(root: Path, packages: list[dict[str, Any]], workspace_metadata: dict[str, Any] | None = None) -> str:
    return json.dumps(
        {
            "packages": packages,
            "workspace_members": [package["id"] for package in packages],
            "workspace_root": str(root),
            "target_directory": str(root / "target"),
            "metadata": workspace_metadata,
            "version": 1,
        }
    )


def make_view(root: Path, packages: list[dict[str, Any]]) -> WorkspaceView:
    return build_workspace_view(CargoMetadata.model_validate_json(metadata_json(root, packages)))


def write_driver_project(root: Path, name: str, *, inx: bool = True) -> Path:
    package_root = root / name
    package_root.mkdir(parents=True, exist_ok=True)
    (package_root / "Cargo.toml").write_text(f'[package]\nname = "{name}"\n', encoding="utf-8")
    if inx:
        (package_root / f"{name.replace('-', '_')}.inx").write_text("[Version]\n", encoding="utf-8")
    return package_root


@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    return load_settings(config_file=tmp_path / "no-settings.yaml")


@pytest.fixture
def mixed_workspace(tmp_path: Path) -> Path:
    root = tmp_path / "ws"
    root.mkdir()
    (root / "Cargo.toml").write_text('[workspace]\nmembers = ["driver", "non_driver_crate"]\n', encoding="utf-8")
    write_driver_project(root, "driver")
    write_driver_project(root, "non_driver_crate", inx=False)
    return root


@pytest.fixture
def mixed_view(mixed_workspace: Path) -> WorkspaceView:
    return make_view(
        mixed_workspace,
        [
            package_json(mixed_workspace, "driver", driver_model=KMDF_MODEL),
            package_json(mixed_workspace, "non_driver_crate", wdk=False, kinds=("lib",)),
        ],
    )


def make_job(
    root: Path,
    name: str = "driver",
    *,
    driver_model: dict[str, Any] | None = None,
    profile: str | None = None,
    sample_class: bool = False,
    verify_signature: bool = False,
    target_arch: TargetArch | None = None,
) -> PackageJob:
    package_root = root / name
    target_dir = root / "target" / ("release" if profile == "release" else "debug")
    return PackageJob(
        package_name=name,
        manifest_path=package_root / "Cargo.toml",
        package_root=package_root,
        driver_metadata=parse_driver_metadata(name, driver_model or KMDF_MODEL),
        profile=profile,  # type: ignore[arg-type]
        target_arch=target_arch or TargetArch("amd64"),
        target_dir=target_dir,
        sample_class=sample_class,
        verify_signature=verify_signature,
    )


def run_options(working_dir: Path, **overrides: Any) -> BuildRunOptions:
    values: dict[str, Any] = {"working_dir": working_dir, "target_arch": TargetArch("amd64")}
    values.update(overrides)
    return BuildRunOptions(**values)


