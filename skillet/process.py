"""Subprocess execution used by the git resolver and update checks."""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from skillet.logging import get_logger

log = get_logger(__name__)


@dataclass
class CommandResult:
    args: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


CommandRunner = Callable[..., CommandResult]


def run_command(args: Sequence[str], *, cwd: str | Path | None = None) -> CommandResult:
    """Run a command and capture its output without raising on failure."""
    argv = [str(arg) for arg in args]
    log.debug("Running command", args=argv, cwd=str(cwd) if cwd else None)
    try:
        completed = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            check=False,
            stdin=subprocess.DEVNULL,
        )
    except FileNotFoundError as exc:
        return CommandResult(args=argv, returncode=127, stderr=str(exc))
    return CommandResult(
        args=argv,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )
