from pathlib import Path

import pytest
import yaml

from skillet.commands.add import AddRequest, run_add_command, split_list_values
from skillet.lockfile import LOCKFILE_NAME
from skillet.prompts import Prompts, parse_selection
from skillet.provenance import read_source_metadata


class _Sink:
    def __init__(self) -> None:
        self.lines: list[str] = []

    def __call__(self, line: str) -> None:
        self.lines.append(line)


def _source_repo(root: Path) -> Path:
    source = root / "source"
    for name in ("alpha", "beta"):
        skill_dir = source / "skills" / name
        skill_dir.mkdir(parents=True)
        (skill_dir / "SKILL.md").write_text(
            f"---\nname: {name}\ndescription: The {name} skill\n---\n",
            encoding="utf-8",
        )
        (skill_dir / "content.txt").write_text(f"{name}\n", encoding="utf-8")
    return source


@pytest.fixture
def workspace(tmp_path: Path):
    project = tmp_path / "project"
    home = tmp_path / "home"
    project.mkdir()
    home.mkdir()
    return project, home, _source_repo(tmp_path)


async def _run(request: AddRequest, project: Path, home: Path, **kwargs):
    stdout, stderr = _Sink(), _Sink()
    code = await run_add_command(request, stdout=stdout, stderr=stderr, cwd=project, home_dir=home, **kwargs)
    return code, stdout.lines, stderr.lines


def test_split_list_values_and_parse_selection():
    assert split_list_values(["a,b", " c ", ""]) == ["a", "b", "c"]
    assert parse_selection("2, alpha", ["alpha", "beta"]) == ["alpha", "beta"]
    assert parse_selection("*", ["alpha", "beta"]) == ["alpha", "beta"]


def test_install_all_implies_yes_and_wildcard():
    request = AddRequest(source=".", install_all=True)

    assert request.yes is True
    assert request.skills == ["*"]
    assert request.scope == "project"


@pytest.mark.asyncio
async def test_list_only_prints_source_skills(workspace):
    project, home, source = workspace

    code, stdout, stderr = await _run(AddRequest(source=str(source), list_only=True), project, home)

    assert code == 0
    assert stderr == []
    assert stdout == [
        f"alpha\tThe alpha skill\t{source / 'skills' / 'alpha'}",
        f"beta\tThe beta skill\t{source / 'skills' / 'beta'}",
    ]
    assert not (project / LOCKFILE_NAME).exists()
    assert list((project / ".skillet" / "tmp").iterdir()) == []


@pytest.mark.asyncio
async def test_add_selected_skill_from_local_directory(workspace):
    project, home, source = workspace

    code, stdout, stderr = await _run(
        AddRequest(source=str(source), skills=["beta"], agents=["claude"], yes=True),
        project,
        home,
        verbose=True,
    )

    assert code == 0, stderr
    assert stdout[0] == "Installed beta to claude (symlink)"
    assert stdout[-1] == f"Updated lockfile: {project / LOCKFILE_NAME}"
    installed = project / ".claude" / "skills" / "beta"
    assert installed.is_symlink()
    assert not (project / ".claude" / "skills" / "alpha").exists()

    metadata = read_source_metadata(installed)
    assert metadata.type == "local"
    assert metadata.url == f"file://{source}"
    assert metadata.install_method == "symlink"

    lock = yaml.safe_load((project / LOCKFILE_NAME).read_text(encoding="utf-8"))
    assert lock["sources"][0]["skills"] == ["beta"]
    assert lock["sources"][0]["agents"] == ["claude"]


@pytest.mark.asyncio
async def test_add_copy_to_every_requested_agent(workspace):
    project, home, source = workspace

    code, stdout, _ = await _run(
        AddRequest(source=str(source), skills=["*"], agents=["codex,cursor"], yes=True, copy=True),
        project,
        home,
    )

    assert code == 0
    assert sorted(stdout) == [
        "Installed alpha to codex (copy)",
        "Installed alpha to cursor (copy)",
        "Installed beta to codex (copy)",
        "Installed beta to cursor (copy)",
    ]
    assert (project / ".cursor" / "skills" / "alpha" / "content.txt").read_text(encoding="utf-8") == "alpha\n"
    assert not (project / ".cursor" / "skills" / "alpha").is_symlink()


@pytest.mark.asyncio
async def test_add_global_scope_uses_home(workspace):
    project, home, source = workspace

    code, _, _ = await _run(
        AddRequest(source=str(source), skills=["alpha"], agents=["opencode"], yes=True, global_scope=True),
        project,
        home,
    )

    assert code == 0
    assert (home / ".opencode" / "skills" / "alpha" / "SKILL.md").is_file()
    assert (home / ".skillet" / LOCKFILE_NAME).is_file()
    assert not (project / LOCKFILE_NAME).exists()


@pytest.mark.asyncio
async def test_add_reports_unknown_requested_skill(workspace):
    project, home, source = workspace

    code, _, stderr = await _run(
        AddRequest(source=str(source), skills=["gamma"], agents=["claude"], yes=True),
        project,
        home,
    )

    assert code == 1
    assert stderr == ["Requested skill(s) not found: gamma"]


@pytest.mark.asyncio
async def test_add_uses_prompts_when_interactive(workspace):
    project, home, source = workspace
    asked: list[str] = []

    def confirm(message: str) -> bool:
        asked.append(message)
        return True

    prompts = Prompts(
        select_skills=lambda names: ["alpha"],
        select_agents=lambda agents: ["windsurf"],
        select_install_method=lambda: "copy",
        confirm=confirm,
    )

    code, stdout, _ = await _run(AddRequest(source=str(source)), project, home, prompts=prompts)

    assert code == 0
    assert stdout == ["Installed alpha to windsurf (copy)"]
    assert asked and "alpha" in asked[0]


@pytest.mark.asyncio
async def test_add_prompt_selection_errors_and_abort(workspace):
    project, home, source = workspace

    code, _, stderr = await _run(
        AddRequest(source=str(source), agents=["claude"]),
        project,
        home,
        prompts=Prompts(select_skills=lambda names: []),
    )
    assert code == 1
    assert stderr == ["No skills selected."]

    code, _, stderr = await _run(
        AddRequest(source=str(source), agents=["claude"]),
        project,
        home,
        prompts=Prompts(select_skills=lambda names: ["nope"]),
    )
    assert code == 1
    assert stderr == ["Selected skill(s) not found: nope"]

    code, stdout, stderr = await _run(
        AddRequest(source=str(source), agents=["claude"]),
        project,
        home,
        prompts=Prompts(confirm=lambda message: False),
    )
    assert code == 1
    assert stdout == []
    assert stderr == ["Aborted."]
    assert not (project / ".claude" / "skills").exists()


@pytest.mark.asyncio
async def test_add_without_agents_fails(workspace):
    project, home, source = workspace

    code, _, stderr = await _run(AddRequest(source=str(source), yes=True), project, home)

    assert code == 1
    assert "No supported agents detected" in stderr[0]


@pytest.mark.asyncio
async def test_add_continues_after_install_conflict(workspace):
    project, home, source = workspace
    target = project / ".claude" / "skills"
    target.mkdir(parents=True)
    (target / "alpha").write_text("occupied", encoding="utf-8")

    code, stdout, stderr = await _run(
        AddRequest(source=str(source), agents=["claude"], yes=True),
        project,
        home,
    )

    assert code == 1
    assert stdout == ["Installed beta to claude (symlink)"]
    assert len(stderr) == 1 and "Install conflict" in stderr[0]
    assert (project / LOCKFILE_NAME).is_file()


@pytest.mark.asyncio
async def test_add_reports_empty_source(tmp_path: Path):
    empty = tmp_path / "empty"
    empty.mkdir()

    code, _, stderr = await _run(AddRequest(source=str(empty), yes=True), tmp_path, tmp_path)

    assert code == 1
    assert stderr == [f"No skills discovered in source: {empty}"]
