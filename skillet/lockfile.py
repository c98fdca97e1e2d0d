"""Lockfile generation from installed skills and lockfile loading."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from skillet.agents import KNOWN_AGENTS, Scope, agent_skills_relpath
from skillet.discovery import list_child_directories
from skillet.exceptions import LockfileError, SkillParseError
from skillet.logging import get_logger
from skillet.provenance import read_source_metadata
from skillet.skill import SKILL_FILENAME, load_skill_file

log = get_logger(__name__)

LOCKFILE_NAME = "skillet.lock.yaml"
LOCKFILE_VERSION = 1
UNKNOWN_SOURCE_TYPE = "unknown"


class LockfileSource(BaseModel):
    """One grouped provenance tuple and the skills and agents that use it."""

    model_config = ConfigDict(populate_by_name=True)

    type: str
    url: str
    ref: str | None = None
    digest: str | None = None
    install_method: str = Field(alias="installMethod")
    skills: list[str] = Field(default_factory=list)
    agents: list[str] = Field(default_factory=list)

    @property
    def sort_key(self) -> tuple[str, str, str, str, str]:
        return (self.type, self.url, self.ref or "", self.digest or "", self.install_method)

    def to_document(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "url": self.url}
        if self.ref:
            data["ref"] = self.ref
        if self.digest:
            data["digest"] = self.digest
        data["installMethod"] = self.install_method
        data["skills"] = list(self.skills)
        data["agents"] = list(self.agents)
        return data


class LockfileDocument(BaseModel):
    version: Literal[1] = LOCKFILE_VERSION
    sources: list[LockfileSource] = Field(default_factory=list)

    def to_document(self) -> dict[str, Any]:
        return {"version": self.version, "sources": [source.to_document() for source in self.sources]}

    def to_yaml(self) -> str:
        return yaml.safe_dump(
            self.to_document(),
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )


@dataclass
class GenerateLockfileResult:
    output_path: Path
    yaml: str
    lockfile: LockfileDocument


@dataclass
class LoadedLockfile:
    path: Path
    document: LockfileDocument

    @property
    def sources(self) -> list[LockfileSource]:
        return self.document.sources


def lockfile_path(scope: Scope, cwd: Path, home_dir: Path) -> Path:
    if scope == "global":
        return home_dir / ".skillet" / LOCKFILE_NAME
    return cwd / LOCKFILE_NAME


def _resolve_roots(cwd: str | Path | None, home_dir: str | Path | None) -> tuple[Path, Path]:
    return Path(cwd or Path.cwd()).resolve(), Path(home_dir or Path.home()).resolve()


def build_lockfile(scan_root: Path) -> LockfileDocument:
    """Group every valid installed skill under scan_root by its provenance tuple."""
    groups: dict[tuple[str, str, str, str, str], tuple[LockfileSource, set[str], set[str]]] = {}

    for agent in KNOWN_AGENTS:
        agent_dir = scan_root / agent_skills_relpath(agent)
        if not agent_dir.is_dir():
            continue

        for skill_dir in list_child_directories(agent_dir):
            if not (skill_dir / SKILL_FILENAME).is_file():
                continue
            try:
                skill = load_skill_file(skill_dir / SKILL_FILENAME)
            except SkillParseError as exc:
                log.debug("Skipping invalid installed skill", path=str(skill_dir), error=str(exc))
                continue

            metadata = read_source_metadata(skill_dir)
            source = LockfileSource(
                type=metadata.type or UNKNOWN_SOURCE_TYPE,
                url=metadata.url or f"file://{skill_dir}",
                ref=metadata.ref,
                digest=metadata.digest,
                install_method=metadata.install_method or ("symlink" if skill_dir.is_symlink() else "copy"),
            )
            _, skills, agents = groups.setdefault(source.sort_key, (source, set(), set()))
            skills.add(skill.name)
            agents.add(agent)

    sources = [
        source.model_copy(update={"skills": sorted(skills), "agents": sorted(agents)})
        for source, skills, agents in groups.values()
    ]
    sources.sort(key=lambda item: item.sort_key)
    return LockfileDocument(version=LOCKFILE_VERSION, sources=sources)


def generate_lockfile(
    *,
    scope: Scope,
    cwd: str | Path | None = None,
    home_dir: str | Path | None = None,
) -> GenerateLockfileResult:
    """Regenerate the lockfile for a scope from the skills installed on disk.

    The previous lockfile is never read; output is byte-identical for
    unchanged disk state.
    """
    cwd_path, home_path = _resolve_roots(cwd, home_dir)
    scan_root = home_path if scope == "global" else cwd_path
    output_path = lockfile_path(scope, cwd_path, home_path)

    document = build_lockfile(scan_root)
    text = document.to_yaml()
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(text, encoding="utf-8")
    log.debug("Wrote lockfile", path=str(output_path), sources=len(document.sources))

    return GenerateLockfileResult(output_path=output_path, yaml=text, lockfile=document)


def load_lockfile(
    *,
    scope: Scope,
    cwd: str | Path | None = None,
    home_dir: str | Path | None = None,
) -> LoadedLockfile | None:
    """Load the scope's lockfile, or return None when it does not exist."""
    cwd_path, home_path = _resolve_roots(cwd, home_dir)
    path = lockfile_path(scope, cwd_path, home_path)
    if not path.is_file():
        return None

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise LockfileError(f"Invalid lockfile YAML in {path}: {exc}", str(path)) from exc
    if not isinstance(data, dict):
        raise LockfileError(f"Lockfile must contain a mapping: {path}", str(path))

    try:
        document = LockfileDocument.model_validate(data)
    except ValidationError as exc:
        raise LockfileError(f"Invalid lockfile {path}: {exc}", str(path)) from exc
    return LoadedLockfile(path=path, document=document)
