from pathlib import Path

import pytest
import yaml

from skillet.exceptions import LockfileError
from skillet.lockfile import LOCKFILE_NAME, generate_lockfile, load_lockfile
from skillet.provenance import SourceMetadata, write_source_metadata


def _installed_skill(root: Path, agent: str, name: str, metadata: SourceMetadata | None = None) -> Path:
    skill_dir = root / f".{agent}" / "skills" / name
    skill_dir.mkdir(parents=True)
    (skill_dir / "SKILL.md").write_text(f"---\nname: {name}\ndescription: {name}\n---\n", encoding="utf-8")
    if metadata is not None:
        write_source_metadata(skill_dir, metadata)
    return skill_dir


GIT_SOURCE = SourceMetadata(
    type="git",
    url="https://example.com/repo.git",
    ref="main",
    digest="a" * 40,
    install_method="symlink",
)


def test_generate_groups_skills_and_agents_by_provenance(tmp_path: Path):
    home = tmp_path / "home"
    _installed_skill(tmp_path, "claude", "beta", GIT_SOURCE)
    _installed_skill(tmp_path, "claude", "alpha", GIT_SOURCE)
    _installed_skill(tmp_path, "codex", "alpha", GIT_SOURCE)
    _installed_skill(
        tmp_path,
        "codex",
        "gamma",
        SourceMetadata(type="oci", url="oci://r/gamma:1", digest="sha256:x", install_method="copy"),
    )

    result = generate_lockfile(scope="project", cwd=tmp_path, home_dir=home)

    assert result.output_path == tmp_path / LOCKFILE_NAME
    document = yaml.safe_load(result.output_path.read_text(encoding="utf-8"))
    assert document == {
        "version": 1,
        "sources": [
            {
                "type": "git",
                "url": "https://example.com/repo.git",
                "ref": "main",
                "digest": "a" * 40,
                "installMethod": "symlink",
                "skills": ["alpha", "beta"],
                "agents": ["claude", "codex"],
            },
            {
                "type": "oci",
                "url": "oci://r/gamma:1",
                "digest": "sha256:x",
                "installMethod": "copy",
                "skills": ["gamma"],
                "agents": ["codex"],
            },
        ],
    }


def test_generate_is_byte_identical_for_unchanged_state(tmp_path: Path):
    _installed_skill(tmp_path, "cursor", "alpha", GIT_SOURCE)

    first = generate_lockfile(scope="project", cwd=tmp_path, home_dir=tmp_path / "home")
    first_bytes = first.output_path.read_bytes()
    second = generate_lockfile(scope="project", cwd=tmp_path, home_dir=tmp_path / "home")

    assert second.output_path.read_bytes() == first_bytes
    assert second.yaml == first.yaml


def test_generate_defaults_missing_sidecar_to_unknown(tmp_path: Path):
    skill_dir = _installed_skill(tmp_path, "windsurf", "alpha")

    result = generate_lockfile(scope="project", cwd=tmp_path, home_dir=tmp_path / "home")

    [source] = result.lockfile.sources
    assert source.type == "unknown"
    assert source.url == f"file://{skill_dir}"
    assert source.install_method == "copy"


def test_generate_skips_invalid_skills(tmp_path: Path):
    skill_dir = tmp_path / ".claude" / "skills" / "broken"
    skill_dir.mkdir(parents=True)
    (skill_dir / "SKILL.md").write_text("no frontmatter", encoding="utf-8")
    (tmp_path / ".claude" / "skills" / "empty").mkdir()

    result = generate_lockfile(scope="project", cwd=tmp_path, home_dir=tmp_path / "home")

    assert result.lockfile.sources == []
    assert yaml.safe_load(result.yaml) == {"version": 1, "sources": []}


def test_global_scope_writes_under_home(tmp_path: Path):
    home = tmp_path / "home"
    _installed_skill(home, "opencode", "alpha", GIT_SOURCE)

    result = generate_lockfile(scope="global", cwd=tmp_path / "project", home_dir=home)

    assert result.output_path == home / ".skillet" / LOCKFILE_NAME
    assert result.lockfile.sources[0].agents == ["opencode"]


def test_load_lockfile_round_trip_and_errors(tmp_path: Path):
    assert load_lockfile(scope="project", cwd=tmp_path, home_dir=tmp_path) is None

    _installed_skill(tmp_path, "claude", "alpha", GIT_SOURCE)
    generate_lockfile(scope="project", cwd=tmp_path, home_dir=tmp_path / "home")

    loaded = load_lockfile(scope="project", cwd=tmp_path, home_dir=tmp_path / "home")
    assert loaded is not None
    assert loaded.sources[0].install_method == "symlink"
    assert loaded.sources[0].skills == ["alpha"]

    (tmp_path / LOCKFILE_NAME).write_text("version: 2\nsources: []\n", encoding="utf-8")
    with pytest.raises(LockfileError):
        load_lockfile(scope="project", cwd=tmp_path, home_dir=tmp_path)

    (tmp_path / LOCKFILE_NAME).write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(LockfileError, match="mapping"):
        load_lockfile(scope="project", cwd=tmp_path, home_dir=tmp_path)
