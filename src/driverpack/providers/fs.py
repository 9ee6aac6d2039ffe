"""Filesystem primitives used by discovery and packaging."""

from __future__ import annotations

import shutil
from pathlib import Path


class FileSystem:
    """Small, swappable facade over the filesystem calls the pipeline needs.

    Methods raise ``OSError`` unchanged; callers translate it into the stage
    error that names the operation.
    """

    def copy(self, src: Path, dest: Path) -> Path:
        return Path(shutil.copyfile(src, dest))

    def rename(self, src: Path, dest: Path) -> Path:
        return src.replace(dest)

    def exists(self, path: Path) -> bool:
        return path.exists()

    def create_dir(self, path: Path) -> Path:
        path.mkdir(parents=True, exist_ok=True)
        return path

    def canonicalize(self, path: Path) -> Path:
        return path.resolve(strict=True)

    def list_project_dirs(self, root: Path, marker: str = "Cargo.toml") -> list[Path]:
        """Return immediate subdirectories of ``root`` containing ``marker``, sorted by name."""

        return sorted(
            child for child in root.iterdir() if child.is_dir() and (child / marker).is_file()
        )
