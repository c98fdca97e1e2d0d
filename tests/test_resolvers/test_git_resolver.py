import shutil
import subprocess
from pathlib import Path

import pytest

from skillet.exceptions import GitSourceError
from skillet.process import CommandResult
from skillet.resolvers.git import (
    parse_git_source,
    parse_ls_remote_commit,
    query_remote_commit,
    resolve_git_source,
)

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

SHA_A = "a" * 40
SHA_B = "b" * 40


def _git(cwd: Path, *args: str) -> str:
    completed = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return completed.stdout.strip()


def _make_repo(root: Path) -> Path:
    repo = root / "repo"
    skill_dir = repo / "skills" / "alpha"
    skill_dir.mkdir(parents=True)
    (skill_dir / "SKILL.md").write_text("---\nname: alpha\ndescription: Alpha\n---\n", encoding="utf-8")
    (skill_dir / "content.txt").write_text("v1\n", encoding="utf-8")
    _git(repo, "init", "-q")
    _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    _git(repo, "add", ".")
    _git(repo, "commit", "-q", "-m", "init")
    return repo


@pytest.fixture
def git_identity(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Skillet Tests")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "tests@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Skillet Tests")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "tests@example.com")


def test_parse_shorthand_and_fragment():
    parsed = parse_git_source("owner/repo#main:skills/alpha")

    assert parsed.clone_url == "https://github.com/owner/repo.git"
    assert parsed.ref == "main"
    assert parsed.subdirectory == "skills/alpha"


def test_parse_tree_url_and_fragment_override():
    parsed = parse_git_source("https://github.com/owner/repo/tree/dev/skills/alpha")
    assert parsed.clone_url == "https://github.com/owner/repo.git"
    assert parsed.ref == "dev"
    assert parsed.subdirectory == "skills/alpha"

    overridden = parse_git_source("https://github.com/owner/repo/tree/dev/skills/alpha#v2")
    assert overridden.ref == "v2"
    assert overridden.subdirectory == "skills/alpha"


def test_parse_ssh_and_https_urls_get_git_suffix():
    assert parse_git_source("git@github.com:owner/repo").clone_url == "git@github.com:owner/repo.git"
    assert parse_git_source("https://gitlab.com/owner/repo/").clone_url == "https://gitlab.com/owner/repo.git"
    assert parse_git_source("https://gitlab.com/owner/repo.git#v1").ref == "v1"


def test_parse_local_paths_become_absolute(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)

    assert parse_git_source("./repo#main").clone_url == str(tmp_path / "repo")
    assert parse_git_source(f"file://{tmp_path}/repo").clone_url == str(tmp_path / "repo")


@pytest.mark.parametrize("source", ["", "not a source", "owner/repo#main:../escape"])
def test_parse_rejects_invalid_sources(source: str):
    with pytest.raises(GitSourceError):
        parse_git_source(source)


def test_parse_ls_remote_prefers_peeled_tag():
    output = f"{SHA_A}\trefs/tags/v1\n{SHA_B}\trefs/tags/v1^{{}}\n"

    assert parse_ls_remote_commit(output) == SHA_B
    assert parse_ls_remote_commit(f"{SHA_A}\tHEAD\n") == SHA_A
    assert parse_ls_remote_commit("\n") is None


def test_query_remote_commit_uses_runner():
    calls: list[list[str]] = []

    def fake_runner(args, **kwargs):
        calls.append(list(args))
        return CommandResult(args=list(args), returncode=0, stdout=f"{SHA_A}\trefs/heads/main\n")

    assert query_remote_commit("https://example.com/repo.git", "main", runner=fake_runner) == SHA_A
    assert calls == [["git", "ls-remote", "https://example.com/repo.git", "main"]]


def test_query_remote_commit_reports_failures():
    def failing_runner(args, **kwargs):
        return CommandResult(args=list(args), returncode=128, stderr="fatal: repository not found")

    with pytest.raises(GitSourceError, match="repository not found") as exc_info:
        query_remote_commit("https://example.com/missing.git", runner=failing_runner)
    assert exc_info.value.command[:2] == ["git", "ls-remote"]

    def short_runner(args, **kwargs):
        return CommandResult(args=list(args), returncode=0, stdout="abc123\tHEAD\n")

    with pytest.raises(GitSourceError, match="Unexpected git ls-remote output"):
        query_remote_commit("https://example.com/repo.git", runner=short_runner)

    def empty_runner(args, **kwargs):
        return CommandResult(args=list(args), returncode=0, stdout="")

    with pytest.raises(GitSourceError, match=r"Unable to resolve latest git digest .* \(HEAD\)"):
        query_remote_commit("https://example.com/repo.git", runner=empty_runner)


def test_resolve_git_source_rejects_missing_local_repository(tmp_path: Path):
    with pytest.raises(GitSourceError, match="Local repository does not exist"):
        resolve_git_source(str(tmp_path / "absent"), temp_root=tmp_path / "scratch")


@requires_git
def test_resolve_git_source_checks_out_ref_and_subdirectory(tmp_path: Path, git_identity):
    repo = _make_repo(tmp_path)
    head = _git(repo, "rev-parse", "HEAD")

    resolved = resolve_git_source(f"{repo}#main:skills/alpha", temp_root=tmp_path / "scratch")

    assert resolved.commit_sha == head
    assert resolved.parsed.clone_url == str(repo)
    assert resolved.content_path == resolved.checkout_path / "skills" / "alpha"
    assert (resolved.content_path / "content.txt").read_text(encoding="utf-8") == "v1\n"
    assert resolved.checkout_path.parent == (tmp_path / "scratch").resolve()


@requires_git
def test_resolve_git_source_rejects_missing_subdirectory(tmp_path: Path, git_identity):
    repo = _make_repo(tmp_path)

    with pytest.raises(GitSourceError, match="Subdirectory not found"):
        resolve_git_source(f"{repo}#main:skills/missing", temp_root=tmp_path / "scratch")
