"""Run identifiers and UTC timestamps."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def new_run_id(prefix: str = "build-run") -> str:
    """Short unique id used to correlate the log events of one run."""

    return f"{prefix}-{uuid4().hex[:12]}"
