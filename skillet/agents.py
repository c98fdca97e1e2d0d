"""Supported agents and their skills directories."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from skillet.exceptions import AgentDetectionError

KNOWN_AGENTS: tuple[str, ...] = ("claude", "codex", "opencode", "cursor", "windsurf")
ALL_AGENTS_TOKEN = "*"

Scope = Literal["project", "global"]
PromptSelectAgents = Callable[[list[str]], list[str]]


@dataclass
class AgentPaths:
    project: Path
    global_: Path

    def for_scope(self, scope: Scope) -> Path:
        return self.global_ if scope == "global" else self.project


@dataclass
class DetectedAgent:
    agent: str
    locations: list[Scope] = field(default_factory=list)
    paths: list[Path] = field(default_factory=list)


def agent_skills_relpath(agent: str) -> Path:
    return Path(f".{agent}") / "skills"


def get_agent_path_map(cwd: str | Path, home_dir: str | Path) -> dict[str, AgentPaths]:
    cwd_path = Path(cwd).resolve()
    home_path = Path(home_dir).resolve()
    return {
        agent: AgentPaths(
            project=cwd_path / agent_skills_relpath(agent),
            global_=home_path / agent_skills_relpath(agent),
        )
        for agent in KNOWN_AGENTS
    }


def detect_installed_agents(cwd: str | Path, home_dir: str | Path) -> list[DetectedAgent]:
    """Agents with an existing project or global skills directory."""
    detected: list[DetectedAgent] = []
    for agent, paths in get_agent_path_map(cwd, home_dir).items():
        found = DetectedAgent(agent=agent)
        for scope in ("project", "global"):
            candidate = paths.for_scope(scope)
            if candidate.is_dir():
                found.locations.append(scope)
                found.paths.append(candidate)
        if found.locations:
            detected.append(found)
    return sorted(detected, key=lambda item: item.agent)


def normalize_agents(agents: Iterable[str]) -> list[str]:
    agent_list = [str(agent).strip() for agent in agents if str(agent).strip()]
    invalid = [agent for agent in agent_list if agent not in KNOWN_AGENTS]
    if invalid:
        raise AgentDetectionError(f"Unknown agent(s): {', '.join(invalid)}")
    return sorted(set(agent_list))


def parse_agent_list(values: Iterable[str]) -> list[str]:
    """Expand comma-separated agent options; ``*`` selects every known agent."""
    agents: list[str] = []
    for value in values:
        for item in str(value).split(","):
            item = item.strip()
            if not item:
                continue
            if item == ALL_AGENTS_TOKEN:
                agents.extend(KNOWN_AGENTS)
                continue
            if item not in KNOWN_AGENTS:
                raise AgentDetectionError(f"Unknown agent: {item}")
            agents.append(item)
    return sorted(set(agents))


def resolve_target_agents(
    cwd: str | Path,
    home_dir: str | Path,
    *,
    explicit_agents: Iterable[str] | None = None,
    prompt_when_none: PromptSelectAgents | None = None,
) -> list[str]:
    """Explicit agents, else detected agents, else whatever the prompt returns."""
    explicit = list(explicit_agents or [])
    if explicit:
        return normalize_agents(explicit)

    detected = [item.agent for item in detect_installed_agents(cwd, home_dir)]
    if detected:
        return normalize_agents(detected)

    if prompt_when_none is not None:
        return normalize_agents(prompt_when_none(list(KNOWN_AGENTS)))

    raise AgentDetectionError(
        "No supported agents detected. Specify --agent explicitly or install an agent skills directory."
    )
