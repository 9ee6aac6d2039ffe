"""Thin wrapper around subprocess for running external tools."""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence

from driverpack.errors import CommandFailedError, CommandSpawnError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CommandOutput:
    """Captured result of one tool invocation."""

    command: str
    args: tuple[str, ...]
    returncode: int
    stdout: bytes
    stderr: bytes

    @property
    def success(self) -> bool:
        return self.returncode == 0

    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")


class CommandRunner:
    """Run tools synchronously, capturing stdout and stderr.

    ``extra_path`` entries are prepended to ``PATH`` for every invocation so the
    WDK tool directories do not have to be on the user's ``PATH``.
    """

    def __init__(self, extra_path: Sequence[Path] = (), logger: logging.Logger | None = None) -> None:
        self.extra_path = tuple(extra_path)
        self.logger = logger or LOGGER

    def _environment(self, env: Mapping[str, str] | None) -> dict[str, str]:
        merged = dict(os.environ)
        if self.extra_path:
            prefix = os.pathsep.join(str(path) for path in self.extra_path)
            current = merged.get("PATH", "")
            merged["PATH"] = f"{prefix}{os.pathsep}{current}" if current else prefix
        if env:
            merged.update(env)
        return merged

    def run(
        self,
        command: str,
        args: Sequence[str],
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        *,
        check: bool = True,
    ) -> CommandOutput:
        """Run ``command`` with ``args`` and return its captured output.

        Raises ``CommandSpawnError`` when the tool cannot be started and, when
        ``check`` is true, ``CommandFailedError`` on a non-zero exit status.
        """

        self.logger.debug("Running: %s %s (cwd=%s)", command, list(args), cwd)
        try:
            proc = subprocess.run(
                [command, *args],
                cwd=str(cwd) if cwd else None,
                env=self._environment(env),
                capture_output=True,
                check=False,
            )
        except OSError as exc:
            raise CommandSpawnError(command, args, exc) from exc

        output = CommandOutput(
            command=command,
            args=tuple(args),
            returncode=int(proc.returncode),
            stdout=proc.stdout or b"",
            stderr=proc.stderr or b"",
        )
        if check and not output.success:
            raise CommandFailedError(
                command,
                args,
                returncode=output.returncode,
                stdout=output.stdout_text(),
                stderr=output.stderr.decode("utf-8", errors="replace"),
            )

        self.logger.debug(
            "COMMAND: %s\n ARGS: %s\n OUTPUT: %s",
            command,
            list(args),
            output.stdout_text(),
        )
        return output
