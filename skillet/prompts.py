"""Collaborator callbacks: line sinks and interactive prompts used by the commands."""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass

from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

WriteLine = Callable[[str], None]
SelectNames = Callable[[list[str]], list[str]]
SelectInstallMethod = Callable[[], str]
ConfirmAction = Callable[[str], bool]


@dataclass
class Prompts:
    """Optional interactive collaborators; a missing callback means "not interactive"."""

    select_skills: SelectNames | None = None
    select_agents: SelectNames | None = None
    select_install_method: SelectInstallMethod | None = None
    confirm: ConfirmAction | None = None


def can_prompt_interactively() -> bool:
    """Return True when stdin/stdout are interactive terminals."""
    return sys.stdin.isatty() and sys.stdout.isatty()


def parse_selection(answer: str, options: list[str]) -> list[str]:
    """Map a comma-separated answer of names, 1-based indexes or ``*`` onto options."""
    selected: list[str] = []
    for token in (part.strip() for part in answer.split(",")):
        if not token:
            continue
        if token == "*":
            return list(options)
        if token.isdigit() and 1 <= int(token) <= len(options):
            selected.append(options[int(token) - 1])
            continue
        selected.append(token)
    return sorted(set(selected))


def _select_from(console: Console, title: str, question: str, options: list[str]) -> list[str]:
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Option", justify="center")
    table.add_column("Name")
    for idx, option in enumerate(options, start=1):
        table.add_row(str(idx), option)
    console.print(table)

    answer = Prompt.ask(question, default="*", console=console)
    return parse_selection(answer, options)


def create_console_prompts(console: Console) -> Prompts:
    """Build rich-backed prompts bound to ``console``."""

    def select_skills(available: list[str]) -> list[str]:
        return _select_from(
            console,
            "Available Skills",
            "Skills to install (numbers or names, comma-separated; * for all)",
            available,
        )

    def select_agents(available: list[str]) -> list[str]:
        return _select_from(
            console,
            "Agents",
            "No agent skills directory found. Install for which agents?",
            available,
        )

    def select_install_method() -> str:
        return Prompt.ask(
            "Install method",
            choices=["symlink", "copy"],
            default="symlink",
            console=console,
        )

    def confirm(message: str) -> bool:
        return Confirm.ask(message, default=True, console=console)

    return Prompts(
        select_skills=select_skills,
        select_agents=select_agents,
        select_install_method=select_install_method,
        confirm=confirm,
    )
