"""``skillet list``: show the skills visible from the working directory."""

from __future__ import annotations

from pathlib import Path

from skillet.discovery import discover_skills
from skillet.prompts import WriteLine


def run_list_command(
    *,
    stdout: WriteLine,
    stderr: WriteLine,
    cwd: str | Path | None = None,
    home_dir: str | Path | None = None,
    verbose: bool = False,
) -> int:
    result = discover_skills(cwd=cwd, home_dir=home_dir, verbose=verbose)

    for warning in result.warnings:
        stderr(f"Skipping {warning.path}: {warning.message}")

    if not result.skills:
        stdout("No skills found.")
        return 0

    for skill in result.skills:
        stdout(f"{skill.name}\t{skill.description}\t{skill.path}")
    return 0
