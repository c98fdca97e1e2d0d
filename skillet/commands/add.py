"""``skillet add``: resolve a source and install its skills for one or more agents."""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

import httpx

from skillet.agents import Scope, get_agent_path_map, parse_agent_list, resolve_target_agents
from skillet.config import get_config
from skillet.discovery import DiscoveredSkill, discover_source_skills
from skillet.exceptions import (
    AgentDetectionError,
    InstallConflictError,
    SelectionError,
    SkilletError,
)
from skillet.installer import InstallMethod, SymlinkFn, install_skill
from skillet.lockfile import generate_lockfile
from skillet.logging import get_logger
from skillet.process import CommandRunner, run_command
from skillet.prompts import Prompts, SelectInstallMethod, SelectNames, WriteLine
from skillet.provenance import SourceMetadata, write_source_metadata
from skillet.resolvers.source import ResolvedSource, resolve_source

log = get_logger(__name__)

ALL_SKILLS_TOKEN = "*"


def split_list_values(values: Iterable[str]) -> list[str]:
    """Flatten repeated and comma-separated option values."""
    items: list[str] = []
    for value in values:
        items.extend(item.strip() for item in str(value).split(",") if item.strip())
    return items


@dataclass
class AddRequest:
    source: str
    skills: list[str] = field(default_factory=list)
    agents: list[str] = field(default_factory=list)
    global_scope: bool = False
    yes: bool = False
    copy: bool = False
    list_only: bool = False
    install_all: bool = False

    def __post_init__(self) -> None:
        self.skills = sorted(set(split_list_values(self.skills)))
        self.agents = parse_agent_list(self.agents)
        if self.install_all:
            self.yes = True
            self.skills = [ALL_SKILLS_TOKEN]

    @property
    def scope(self) -> Scope:
        return "global" if self.global_scope else "project"


def select_skills(
    request: AddRequest,
    available: list[DiscoveredSkill],
    prompt: SelectNames | None = None,
) -> list[DiscoveredSkill]:
    names = [skill.name for skill in available]

    if ALL_SKILLS_TOKEN in request.skills:
        return list(available)

    if request.skills:
        missing = [name for name in request.skills if name not in names]
        if missing:
            raise SelectionError(f"Requested skill(s) not found: {', '.join(missing)}")
        return [skill for skill in available if skill.name in request.skills]

    if request.yes or prompt is None:
        return list(available)

    chosen = sorted(set(prompt(names)))
    if not chosen:
        raise SelectionError("No skills selected.")
    missing = [name for name in chosen if name not in names]
    if missing:
        raise SelectionError(f"Selected skill(s) not found: {', '.join(missing)}")
    return [skill for skill in available if skill.name in chosen]


def select_agents(
    request: AddRequest,
    cwd: Path,
    home_dir: Path,
    prompt: SelectNames | None = None,
) -> list[str]:
    agents = resolve_target_agents(
        cwd,
        home_dir,
        explicit_agents=request.agents,
        prompt_when_none=None if request.yes else prompt,
    )
    if not agents:
        raise AgentDetectionError("No agents selected.")
    return agents


def select_install_method(
    request: AddRequest,
    prompt: SelectInstallMethod | None = None,
) -> InstallMethod:
    if request.copy:
        return "copy"
    default_method = get_config().install.default_method
    if request.yes or prompt is None:
        return default_method
    chosen = prompt()
    if chosen not in ("symlink", "copy"):
        raise SelectionError(f"Unknown install method: {chosen}")
    return chosen


def _install_all(
    request: AddRequest,
    resolved: ResolvedSource,
    skills: list[DiscoveredSkill],
    agents: list[str],
    method: InstallMethod,
    *,
    cwd: Path,
    home_dir: Path,
    stdout: WriteLine,
    stderr: WriteLine,
    symlink_fn: SymlinkFn | None,
) -> int:
    scope_root = home_dir if request.global_scope else cwd
    storage_root = scope_root / ".skillet" / "storage"
    path_map = get_agent_path_map(cwd, home_dir)
    failures = 0

    for agent in agents:
        target_skills_dir = path_map[agent].for_scope(request.scope)
        for skill in skills:
            try:
                installed = install_skill(
                    source_id=resolved.source_id,
                    source_skill_path=skill.path,
                    storage_root=storage_root,
                    target_skills_dir=target_skills_dir,
                    prefer_copy=method == "copy",
                    symlink_fn=symlink_fn,
                )
            except InstallConflictError as exc:
                failures += 1
                stderr(str(exc))
                continue

            write_source_metadata(
                installed.installed_path,
                SourceMetadata(
                    type=resolved.type,
                    url=resolved.url,
                    ref=resolved.ref,
                    digest=resolved.digest,
                    install_method=installed.method,
                ),
            )
            stdout(f"Installed {skill.name} to {agent} ({installed.method})")

    return failures


async def _add(
    request: AddRequest,
    *,
    cwd: Path,
    home_dir: Path,
    scratch_root: Path,
    verbose: bool,
    stdout: WriteLine,
    stderr: WriteLine,
    prompts: Prompts,
    insecure_http: bool | None,
    client: httpx.AsyncClient | None,
    runner: CommandRunner,
    symlink_fn: SymlinkFn | None,
) -> int:
    resolved = await resolve_source(
        request.source,
        temp_root=scratch_root,
        insecure_http=insecure_http,
        client=client,
        runner=runner,
    )
    log.info("Resolved source", type=resolved.type, url=resolved.url, ref=resolved.ref, digest=resolved.digest)

    available = discover_source_skills(resolved.content_path)
    if not available:
        stderr(f"No skills discovered in source: {request.source}")
        return 1

    if request.list_only:
        for skill in available:
            stdout(f"{skill.name}\t{skill.description}\t{skill.path}")
        return 0

    skills = select_skills(request, available, prompts.select_skills)
    agents = select_agents(request, cwd, home_dir, prompts.select_agents)
    method = select_install_method(request, prompts.select_install_method)

    if not request.yes and prompts.confirm is not None:
        question = (
            f"Install {len(skills)} skill(s) ({', '.join(skill.name for skill in skills)}) "
            f"for {', '.join(agents)} using {method}?"
        )
        if not prompts.confirm(question):
            stderr("Aborted.")
            return 1

    failures = _install_all(
        request,
        resolved,
        skills,
        agents,
        method,
        cwd=cwd,
        home_dir=home_dir,
        stdout=stdout,
        stderr=stderr,
        symlink_fn=symlink_fn,
    )

    lock = generate_lockfile(scope=request.scope, cwd=cwd, home_dir=home_dir)
    if verbose:
        stdout(f"Updated lockfile: {lock.output_path}")

    return 1 if failures else 0


async def run_add_command(
    request: AddRequest,
    *,
    stdout: WriteLine,
    stderr: WriteLine,
    cwd: str | Path | None = None,
    home_dir: str | Path | None = None,
    verbose: bool = False,
    prompts: Prompts | None = None,
    insecure_http: bool | None = None,
    client: httpx.AsyncClient | None = None,
    runner: CommandRunner = run_command,
    symlink_fn: SymlinkFn | None = None,
) -> int:
    """Resolve ``request.source`` and install the selected skills.

    Every error is reported as one line on ``stderr``; the return value is the
    process exit code. Scratch space used for resolution is removed before
    returning.
    """
    cwd_path = Path(cwd or Path.cwd()).resolve()
    home_path = Path(home_dir or Path.home()).resolve()
    scope_root = home_path if request.global_scope else cwd_path

    scratch_parent = scope_root / ".skillet" / "tmp"
    scratch_parent.mkdir(parents=True, exist_ok=True)
    scratch_root = Path(tempfile.mkdtemp(prefix="add-", dir=scratch_parent))

    try:
        return await _add(
            request,
            cwd=cwd_path,
            home_dir=home_path,
            scratch_root=scratch_root,
            verbose=verbose,
            stdout=stdout,
            stderr=stderr,
            prompts=prompts or Prompts(),
            insecure_http=insecure_http,
            client=client,
            runner=runner,
            symlink_fn=symlink_fn,
        )
    except SkilletError as exc:
        log.debug("Add failed", source=request.source, error=str(exc))
        stderr(str(exc))
        return 1
    finally:
        shutil.rmtree(scratch_root, ignore_errors=True)
