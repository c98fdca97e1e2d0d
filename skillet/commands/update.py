"""``skillet update``: reinstall outdated lockfile sources through the add flow."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from skillet.commands.add import AddRequest, run_add_command
from skillet.commands.check import NO_LOCKFILE_MESSAGE, CheckResult, collect_check_results
from skillet.exceptions import SkilletError
from skillet.installer import SymlinkFn
from skillet.lockfile import LockfileSource, load_lockfile
from skillet.logging import get_logger
from skillet.process import CommandRunner, run_command
from skillet.prompts import Prompts, WriteLine

log = get_logger(__name__)


@dataclass
class OutdatedGroup:
    source: LockfileSource
    skills: list[str] = field(default_factory=list)


def _group_key(source: LockfileSource) -> tuple[str, str, str, str, str, str]:
    return (
        source.type,
        source.url,
        source.ref or "",
        source.digest or "",
        ",".join(sorted(source.agents)),
        source.install_method,
    )


def group_outdated(results: list[CheckResult]) -> list[OutdatedGroup]:
    """Collect outdated skills per provenance tuple and agent set, in first-seen order."""
    groups: dict[tuple[str, ...], OutdatedGroup] = {}
    for result in results:
        if result.status != "outdated":
            continue
        group = groups.setdefault(_group_key(result.source), OutdatedGroup(source=result.source))
        if result.skill not in group.skills:
            group.skills.append(result.skill)
    return list(groups.values())


def build_source_argument(source: LockfileSource) -> str:
    """Turn a recorded source back into an identifier the add flow accepts."""
    url = source.url
    if source.type == "git":
        # Absolute paths would otherwise resolve as plain local directories.
        if os.path.isabs(url):
            url = f"file://{url}"
        return f"{url}#{source.ref}" if source.ref else url
    return url


def build_add_request(group: OutdatedGroup, *, global_scope: bool) -> AddRequest:
    return AddRequest(
        source=build_source_argument(group.source),
        skills=list(group.skills),
        agents=list(group.source.agents),
        global_scope=global_scope,
        yes=True,
        copy=group.source.install_method == "copy",
    )


async def run_update_command(
    *,
    stdout: WriteLine,
    stderr: WriteLine,
    global_scope: bool = False,
    yes: bool = False,
    cwd: str | Path | None = None,
    home_dir: str | Path | None = None,
    verbose: bool = False,
    prompts: Prompts | None = None,
    runner: CommandRunner = run_command,
    client: httpx.AsyncClient | None = None,
    insecure_http: bool | None = None,
    symlink_fn: SymlinkFn | None = None,
) -> int:
    """Update every outdated source recorded in the scope's lockfile.

    Each group is re-added with its original ref, agents and install method.
    Returns 1 if any group failed to update.
    """
    prompts = prompts or Prompts()
    try:
        lock = load_lockfile(scope="global" if global_scope else "project", cwd=cwd, home_dir=home_dir)
    except SkilletError as exc:
        stderr(str(exc))
        return 1
    if lock is None:
        stderr(NO_LOCKFILE_MESSAGE)
        return 1

    results = await collect_check_results(
        lock.sources,
        runner=runner,
        client=client,
        insecure_http=insecure_http,
    )
    groups = group_outdated(results)
    if not groups:
        stdout("No updates available.")
        return 0

    if not yes and prompts.confirm is not None:
        total = sum(len(group.skills) for group in groups)
        if not prompts.confirm(f"Update {total} outdated skill(s)?"):
            stderr("Aborted.")
            return 1

    failures = 0
    for group in groups:
        log.info("Updating source", type=group.source.type, url=group.source.url, skills=group.skills)
        try:
            request = build_add_request(group, global_scope=global_scope)
        except SkilletError as exc:
            stderr(str(exc))
            exit_code = 1
        else:
            exit_code = await run_add_command(
                request,
                stdout=stdout,
                stderr=stderr,
                cwd=cwd,
                home_dir=home_dir,
                verbose=verbose,
                insecure_http=insecure_http,
                client=client,
                runner=runner,
                symlink_fn=symlink_fn,
            )

        if exit_code != 0:
            failures += 1
            for skill in group.skills:
                stderr(f"{skill}\tfailed\t{group.source.url}")
            continue

        for skill in group.skills:
            stdout(f"{skill}\tupdated\t{group.source.url}")

    return 1 if failures else 0
