"""Build, packaging, and orchestration stages."""

from driverpack.pipeline.build_task import BuildTask
from driverpack.pipeline.certificates import (
    CertificateHandle,
    CertificateManager,
    CertificateStore,
    ToolCertificateStore,
)
from driverpack.pipeline.discover import DiscoveredJobs, classify_package, discover_jobs, select_packages
from driverpack.pipeline.orchestrator import run_build_pipeline, write_run_summary
from driverpack.pipeline.package_task import PackageTask

__all__ = [
    "BuildTask",
    "CertificateHandle",
    "CertificateManager",
    "CertificateStore",
    "ToolCertificateStore",
    "DiscoveredJobs",
    "classify_package",
    "discover_jobs",
    "select_packages",
    "PackageTask",
    "run_build_pipeline",
    "write_run_summary",
]
