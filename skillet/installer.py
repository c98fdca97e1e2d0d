"""Place skills into the storage root and link or copy them into agent directories."""

from __future__ import annotations

import hashlib
import os
import shutil
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal
from uuid import uuid4

from skillet.exceptions import InstallConflictError
from skillet.logging import get_logger
from skillet.provenance import SOURCE_METADATA_FILENAME

log = get_logger(__name__)

InstallMethod = Literal["symlink", "copy"]
SymlinkFn = Callable[[Path, Path], None]

STORAGE_KEY_CHARS = 16


@dataclass
class InstallResult:
    skill_name: str
    storage_path: Path
    installed_path: Path
    method: InstallMethod
    changed: bool
    message: str


def digest_source_id(source_id: str) -> str:
    return hashlib.sha256(source_id.encode("utf-8")).hexdigest()[:STORAGE_KEY_CHARS]


def storage_path_for(storage_root: Path, source_id: str, skill_name: str) -> Path:
    return Path(storage_root) / digest_source_id(source_id) / skill_name


def compute_content_fingerprint(skill_dir: Path) -> str | None:
    """Hash relative paths and bytes of every file, ignoring the provenance sidecar."""
    if not skill_dir.is_dir():
        return None
    root = skill_dir.resolve()
    digest = hashlib.sha256()
    for path in sorted(root.rglob("*")):
        if path.name == SOURCE_METADATA_FILENAME and path.parent == root:
            continue
        if not path.is_file():
            continue
        digest.update(path.relative_to(root).as_posix().encode("utf-8"))
        digest.update(b"\0")
        digest.update(path.read_bytes())
        digest.update(b"\0")
    return f"sha256:{digest.hexdigest()}"


def _default_symlink(target: Path, link_path: Path) -> None:
    os.symlink(target, link_path, target_is_directory=True)


def _remove_path(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)


def _temp_sibling(path: Path, tag: str) -> Path:
    return path.parent / f".{path.name}.{tag}-{uuid4().hex[:12]}"


def _swap_into_place(staged: Path, destination: Path) -> None:
    """Rename staged over destination, restoring the previous occupant on failure."""
    if not os.path.lexists(destination):
        os.replace(staged, destination)
        return

    backup = _temp_sibling(destination, "backup")
    os.replace(destination, backup)
    try:
        os.replace(staged, destination)
    except OSError:
        os.replace(backup, destination)
        raise
    _remove_path(backup)


def replace_directory_atomically(source: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    staged = _temp_sibling(destination, "tmp")
    shutil.copytree(source, staged, symlinks=True)
    try:
        _swap_into_place(staged, destination)
    except OSError:
        if os.path.lexists(staged):
            _remove_path(staged)
        raise


def replace_symlink_atomically(target: Path, link_path: Path, symlink_fn: SymlinkFn) -> None:
    link_path.parent.mkdir(parents=True, exist_ok=True)
    staged = _temp_sibling(link_path, "tmp-link")
    symlink_fn(target, staged)
    try:
        _swap_into_place(staged, link_path)
    except OSError:
        if os.path.lexists(staged):
            _remove_path(staged)
        raise


def _assert_replaceable(install_path: Path) -> None:
    if not os.path.lexists(install_path):
        return
    if install_path.is_symlink() or install_path.is_dir():
        return
    raise InstallConflictError(
        f"Install conflict at {install_path}: existing path is not a directory or symlink",
        str(install_path),
    )


def _current_method(install_path: Path) -> InstallMethod | None:
    if install_path.is_symlink():
        return "symlink"
    if install_path.is_dir():
        return "copy"
    return None


def _install_into_target(
    storage_path: Path,
    installed_path: Path,
    prefer_copy: bool,
    symlink_fn: SymlinkFn,
) -> InstallMethod:
    if prefer_copy:
        replace_directory_atomically(storage_path, installed_path)
        return "copy"

    try:
        replace_symlink_atomically(storage_path, installed_path, symlink_fn)
        return "symlink"
    except (OSError, NotImplementedError) as exc:
        log.info("Symlink failed, falling back to copy", path=str(installed_path), error=str(exc))
        replace_directory_atomically(storage_path, installed_path)
        return "copy"


def install_skill(
    *,
    source_id: str,
    source_skill_path: str | Path,
    storage_root: str | Path,
    target_skills_dir: str | Path,
    prefer_copy: bool = False,
    symlink_fn: SymlinkFn | None = None,
) -> InstallResult:
    """Install one skill directory for one agent.

    The content is first copied to ``storage_root/<sha256(source_id)[:16]>/<name>``
    and then symlinked (or copied) into ``target_skills_dir``. Both steps stage
    next to their destination and rename into place, fully replacing earlier
    content. A symlink failure falls back to a copy.

    Raises:
        InstallConflictError: if the source is not a directory, the target
            skills directory is not a directory, or the install path holds a
            regular file.
    """
    source_path = Path(os.path.abspath(source_skill_path))
    storage_root_path = Path(os.path.abspath(storage_root))
    target_dir = Path(os.path.abspath(target_skills_dir))

    if not source_path.is_dir():
        raise InstallConflictError(f"Source skill path is not a directory: {source_path}", str(source_path))
    if os.path.lexists(target_dir) and not target_dir.is_dir():
        raise InstallConflictError(
            f"Target skills directory must be a directory: {target_dir}",
            str(target_dir),
        )

    skill_name = source_path.name
    storage_path = storage_path_for(storage_root_path, source_id, skill_name)
    installed_path = target_dir / skill_name

    _assert_replaceable(installed_path)

    new_fingerprint = compute_content_fingerprint(source_path)
    previous_storage = compute_content_fingerprint(storage_path)
    previous_installed = compute_content_fingerprint(installed_path)
    previous_method = _current_method(installed_path)

    target_dir.mkdir(parents=True, exist_ok=True)
    replace_directory_atomically(source_path, storage_path)
    method = _install_into_target(
        storage_path,
        installed_path,
        prefer_copy,
        symlink_fn or _default_symlink,
    )

    changed = (
        previous_storage != new_fingerprint
        or previous_installed != new_fingerprint
        or previous_method != method
    )
    action = "symlinked" if method == "symlink" else "copied"
    message = f"{action} {skill_name} to {installed_path}"
    if not changed:
        message = f"{message} (unchanged)"
    log.debug("Installed skill", skill=skill_name, method=method, changed=changed, storage=str(storage_path))

    return InstallResult(
        skill_name=skill_name,
        storage_path=storage_path,
        installed_path=installed_path,
        method=method,
        changed=changed,
        message=message,
    )
