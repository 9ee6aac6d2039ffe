"""Artifact path layout and atomic file helpers."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4


@dataclass(frozen=True, slots=True)
class PackageLayout:
    """Source artifacts of one driver build and their places in the package directory."""

    src_inx: Path
    src_dll: Path
    src_binary: Path
    src_pdb: Path
    src_map: Path
    src_cert: Path
    output_dir: Path
    dest_binary: Path
    dest_inf: Path
    dest_pdb: Path
    dest_map: Path
    dest_cat: Path
    dest_cert: Path


def package_layout(
    *,
    package_root: Path,
    target_dir: Path,
    name: str,
    binary_extension: str,
    cert_subject: str,
) -> PackageLayout:
    """Compute every path the packaging steps read or write.

    ``name`` is the crate name with ``-`` already replaced by ``_``.
    """

    output_dir = target_dir / f"{name}_package"
    return PackageLayout(
        src_inx=package_root / f"{name}.inx",
        src_dll=target_dir / f"{name}.dll",
        src_binary=target_dir / f"{name}.{binary_extension}",
        src_pdb=target_dir / f"{name}.pdb",
        src_map=target_dir / "deps" / f"{name}.map",
        src_cert=target_dir / f"{cert_subject}.cer",
        output_dir=output_dir,
        dest_binary=output_dir / f"{name}.{binary_extension}",
        dest_inf=output_dir / f"{name}.inf",
        dest_pdb=output_dir / f"{name}.pdb",
        dest_map=output_dir / f"{name}.map",
        dest_cat=output_dir / f"{name}.cat",
        dest_cert=output_dir / f"{cert_subject}.cer",
    )


def _atomic_temp_path(target_path: Path) -> Path:
    return target_path.parent / f".{target_path.name}.{uuid4().hex}.tmp"


def write_json_atomically(payload: dict[str, Any], output_path: Path) -> Path:
    """Write JSON payload atomically to output path."""

    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = _atomic_temp_path(output_path)
    try:
        temp_path.write_text(json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n", encoding="utf-8")
        os.replace(temp_path, output_path)
    finally:
        if temp_path.exists():
            temp_path.unlink()
    return output_path
