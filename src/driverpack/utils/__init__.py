"""Shared helpers: artifact layout, atomic writes, run ids."""

from driverpack.utils.paths import PackageLayout, package_layout, write_json_atomically
from driverpack.utils.time_utils import new_run_id, now_utc

__all__ = [
    "PackageLayout",
    "package_layout",
    "write_json_atomically",
    "new_run_id",
    "now_utc",
]
