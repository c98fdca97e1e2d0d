"""Main entry point for Skillet."""

import asyncio
import os
from pathlib import Path

import typer
from rich.console import Console

from skillet import __version__
from skillet.commands.add import AddRequest, run_add_command
from skillet.commands.check import run_check_command
from skillet.commands.generate_lock import run_generate_lock_command
from skillet.commands.list_skills import run_list_command
from skillet.commands.update import run_update_command
from skillet.config import Config, set_config
from skillet.exceptions import SkilletError
from skillet.logging import configure_logging, log
from skillet.prompts import Prompts, can_prompt_interactively, create_console_prompts

app = typer.Typer(
    name="skillet",
    help="Skillet - install agent skills from git, HTTP archives and OCI registries",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def _stdout(line: str) -> None:
    typer.echo(line)


def _stderr(line: str) -> None:
    typer.echo(line, err=True)


def _prompts() -> Prompts:
    if can_prompt_interactively():
        return create_console_prompts(console)
    return Prompts()


def _verbose(ctx: typer.Context) -> bool:
    return bool((ctx.obj or {}).get("verbose", False))


def _exit(code: int) -> None:
    if code:
        raise typer.Exit(code)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging and extra output"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
) -> None:
    """Load configuration and set up logging for every command."""
    if verbose:
        os.environ["SKILLET_LOGGING__LEVEL"] = "DEBUG"

    try:
        cfg = Config.from_yaml(Path(config)) if config else Config.load()
    except SkilletError as e:
        _stderr(str(e))
        raise typer.Exit(1) from e

    set_config(cfg)
    configure_logging()
    log.debug("Configuration loaded", config=config or str(Config.resolve_default_config_path()))

    ctx.obj = {"verbose": verbose}


@app.command()
def add(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="git repo, archive URL, oci:// reference or local path"),
    list_only: bool = typer.Option(False, "-l", "--list", help="List skills in the source and exit"),
    install_all: bool = typer.Option(False, "--all", help="Install every skill without prompting"),
    global_scope: bool = typer.Option(False, "-g", "--global", help="Install into the home directory"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Accept defaults without prompting"),
    copy: bool = typer.Option(False, "--copy", help="Copy instead of symlinking"),
    skill: list[str] = typer.Option([], "-s", "--skill", help="Skill name(s) to install; '*' for all"),
    agent: list[str] = typer.Option([], "-a", "--agent", help="Target agent(s); '*' for all"),
    insecure_http: bool = typer.Option(False, "--insecure-http", help="Use plain HTTP for OCI registries"),
) -> None:
    """Install skills from a source."""
    try:
        request = AddRequest(
            source=source,
            skills=skill,
            agents=agent,
            global_scope=global_scope,
            yes=yes,
            copy=copy,
            list_only=list_only,
            install_all=install_all,
        )
    except SkilletError as e:
        _stderr(str(e))
        raise typer.Exit(1) from e

    code = asyncio.run(
        run_add_command(
            request,
            stdout=_stdout,
            stderr=_stderr,
            verbose=_verbose(ctx),
            prompts=Prompts() if yes else _prompts(),
            insecure_http=insecure_http or None,
        )
    )
    _exit(code)


@app.command()
def check(
    global_scope: bool = typer.Option(False, "-g", "--global", help="Check the global lockfile"),
) -> None:
    """Report which locked skills have newer upstream content."""
    code = asyncio.run(run_check_command(stdout=_stdout, stderr=_stderr, global_scope=global_scope))
    _exit(code)


@app.command()
def update(
    ctx: typer.Context,
    global_scope: bool = typer.Option(False, "-g", "--global", help="Update the global lockfile"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Update without confirmation"),
) -> None:
    """Reinstall outdated skills from their recorded sources."""
    code = asyncio.run(
        run_update_command(
            stdout=_stdout,
            stderr=_stderr,
            global_scope=global_scope,
            yes=yes,
            verbose=_verbose(ctx),
            prompts=Prompts() if yes else _prompts(),
        )
    )
    _exit(code)


@app.command("generate-lock")
def generate_lock(
    global_scope: bool = typer.Option(False, "-g", "--global", help="Write the global lockfile"),
) -> None:
    """Rebuild the lockfile from installed skills."""
    _exit(run_generate_lock_command(stdout=_stdout, stderr=_stderr, global_scope=global_scope))


@app.command("list")
def list_skills(ctx: typer.Context) -> None:
    """List skills visible from the current directory."""
    _exit(run_list_command(stdout=_stdout, stderr=_stderr, verbose=_verbose(ctx)))


@app.command()
def version() -> None:
    """Show version information."""
    _stdout(f"Skillet v{__version__}")


if __name__ == "__main__":
    app()
