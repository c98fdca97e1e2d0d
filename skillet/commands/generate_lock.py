"""``skillet generate-lock``: rebuild the lockfile from installed skills."""

from __future__ import annotations

from pathlib import Path

from skillet.exceptions import SkilletError
from skillet.lockfile import generate_lockfile
from skillet.prompts import WriteLine


def run_generate_lock_command(
    *,
    stdout: WriteLine,
    stderr: WriteLine,
    global_scope: bool = False,
    cwd: str | Path | None = None,
    home_dir: str | Path | None = None,
) -> int:
    try:
        result = generate_lockfile(scope="global" if global_scope else "project", cwd=cwd, home_dir=home_dir)
    except (SkilletError, OSError) as exc:
        stderr(str(exc))
        return 1
    stdout(f"Wrote lockfile: {result.output_path}")
    return 0
