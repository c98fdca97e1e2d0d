"""Skill discovery across standard, per-agent and fallback locations."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from skillet.agents import KNOWN_AGENTS, agent_skills_relpath
from skillet.exceptions import SkillParseError
from skillet.logging import get_logger
from skillet.skill import SKILL_FILENAME, SkillFile, load_skill_file

log = get_logger(__name__)

STANDARD_SKILL_DIRS = (
    ".",
    "skills",
    "skills/.curated",
    "skills/.experimental",
    "skills/.system",
)
FALLBACK_IGNORED_DIRS = frozenset(
    {".git", ".skillet", "node_modules", "dist", ".worktrees", "worktrees", "__pycache__", ".venv"}
)

DiscoverySource = Literal["standard", "agent", "fallback"]


@dataclass
class DiscoveredSkill:
    name: str
    description: str
    path: Path
    source: DiscoverySource = "standard"


@dataclass
class DiscoveryWarning:
    path: Path
    message: str
    field: str | None = None


@dataclass
class DiscoveryResult:
    skills: list[DiscoveredSkill] = field(default_factory=list)
    warnings: list[DiscoveryWarning] = field(default_factory=list)
    used_fallback: bool = False


def list_child_directories(root: Path) -> list[Path]:
    """Immediate child directories of root, including symlinks to directories."""
    try:
        entries = list(os.scandir(root))
    except OSError:
        return []
    children = [Path(entry.path) for entry in entries if entry.is_dir(follow_symlinks=True)]
    return sorted(children, key=str)


def find_skill_files(root: Path, ignored: frozenset[str] = frozenset()) -> list[Path]:
    """Recursively collect SKILL.md files, pruning ignored directory names."""
    found: list[Path] = []
    for current, dirs, files in os.walk(root):
        dirs[:] = [name for name in dirs if name not in ignored]
        if SKILL_FILENAME in files:
            candidate = Path(current) / SKILL_FILENAME
            if candidate.is_file():
                found.append(candidate)
    return sorted(found, key=str)


def _canonical(path: Path) -> str:
    try:
        return os.path.realpath(path)
    except OSError:
        return os.path.abspath(path)


class _Collector:
    def __init__(self, verbose: bool):
        self.verbose = verbose
        self.skills: list[DiscoveredSkill] = []
        self.warnings: list[DiscoveryWarning] = []
        self._seen_paths: set[str] = set()
        self._seen_names: set[str] = set()

    def collect_dir(self, skill_dir: Path, source: DiscoverySource) -> bool:
        """Record the skill in skill_dir; return True when a SKILL.md exists there."""
        skill_md = skill_dir / SKILL_FILENAME
        if not skill_md.is_file():
            return False

        try:
            parsed: SkillFile = load_skill_file(skill_md)
        except SkillParseError as exc:
            if self.verbose:
                self.warnings.append(DiscoveryWarning(path=skill_md, message=str(exc), field=exc.field))
            log.debug("Skipping invalid skill", path=str(skill_md), error=str(exc))
            return True

        canonical = _canonical(skill_dir)
        if canonical in self._seen_paths or parsed.name in self._seen_names:
            return True

        self._seen_paths.add(canonical)
        self._seen_names.add(parsed.name)
        self.skills.append(
            DiscoveredSkill(
                name=parsed.name,
                description=parsed.description,
                path=skill_dir,
                source=source,
            )
        )
        return True

    def collect_root(self, root: Path, source: DiscoverySource) -> int:
        candidates = sorted({root, *list_child_directories(root)}, key=str)
        return sum(1 for candidate in candidates if self.collect_dir(candidate, source))


def _agent_roots(cwd: Path, home_dir: Path) -> list[Path]:
    roots: set[Path] = set()
    for agent in KNOWN_AGENTS:
        roots.add(cwd / agent_skills_relpath(agent))
        roots.add(home_dir / agent_skills_relpath(agent))
    return sorted((root for root in roots if root.is_dir()), key=str)


def discover_skills(
    *,
    cwd: str | Path | None = None,
    home_dir: str | Path | None = None,
    verbose: bool = False,
) -> DiscoveryResult:
    """Discover skills visible from ``cwd``.

    Standard project locations are scanned first, then every agent skills
    directory under ``cwd`` and ``home_dir``. Only when neither produced a
    single SKILL.md is ``cwd`` scanned recursively. The first occurrence of a
    path or a name wins.
    """
    cwd_path = Path(cwd or Path.cwd()).resolve()
    home_path = Path(home_dir or Path.home()).resolve()
    collector = _Collector(verbose)

    standard_roots = sorted(
        {(cwd_path / rel).resolve() for rel in STANDARD_SKILL_DIRS if (cwd_path / rel).is_dir()},
        key=str,
    )
    candidate_count = 0
    for root in standard_roots:
        candidate_count += collector.collect_root(root, "standard")
    for root in _agent_roots(cwd_path, home_path):
        candidate_count += collector.collect_root(root, "agent")

    used_fallback = candidate_count == 0
    if used_fallback:
        for skill_md in find_skill_files(cwd_path, FALLBACK_IGNORED_DIRS):
            collector.collect_dir(skill_md.parent, "fallback")

    skills = sorted(collector.skills, key=lambda skill: (skill.name, str(skill.path)))
    return DiscoveryResult(skills=skills, warnings=collector.warnings, used_fallback=used_fallback)


def discover_source_skills(content_path: str | Path) -> list[DiscoveredSkill]:
    """Discover installable skills inside a resolved source.

    Standard locations and their immediate children are checked first; a
    recursive scan runs only when they yield nothing. Names are unique.
    """
    root = Path(content_path)
    collector = _Collector(verbose=False)

    candidates: set[Path] = set()
    for rel in STANDARD_SKILL_DIRS:
        standard_root = root / rel if rel != "." else root
        if standard_root.is_dir():
            candidates.add(standard_root)
            candidates.update(list_child_directories(standard_root))

    for candidate in sorted(candidates, key=str):
        collector.collect_dir(candidate, "standard")

    if not collector.skills:
        for skill_md in find_skill_files(root):
            collector.collect_dir(skill_md.parent, "fallback")

    return sorted(collector.skills, key=lambda skill: skill.name)
