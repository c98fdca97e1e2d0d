"""Archive inspection and path-safe extraction shared by the HTTP and OCI resolvers."""

from __future__ import annotations

import os
import posixpath
import re
import shutil
import stat
import tarfile
import zipfile
from pathlib import Path
from typing import Literal

from skillet.exceptions import ArchiveResolveError, ResolveError
from skillet.skill import SKILL_FILENAME

ArchiveFormat = Literal["zip", "tar.gz", "tar"]

_DRIVE_LETTER = re.compile(r"^[a-zA-Z]:")
_IGNORED_TOP_LEVEL = frozenset({".DS_Store", "__MACOSX"})


def validate_entry_path(
    entry: str,
    error_cls: type[ResolveError] = ArchiveResolveError,
) -> str | None:
    """Validate one archive entry name and return its normalized relative path.

    Returns None for entries that name the archive root itself.
    """
    sanitized = str(entry or "").replace("\\", "/")
    if not sanitized:
        return None
    if sanitized.startswith("/") or _DRIVE_LETTER.match(sanitized):
        raise error_cls(f"Archive entry uses absolute path: {entry}")

    normalized = posixpath.normpath(sanitized)
    if normalized == ".." or normalized.startswith("../") or "/../" in normalized:
        raise error_cls(f"Archive entry escapes extraction root: {entry}")
    if normalized == ".":
        return None
    return normalized


def _destination_for(target_dir: Path, rel_path: str, error_cls: type[ResolveError]) -> Path:
    destination = (target_dir / rel_path).resolve()
    try:
        destination.relative_to(target_dir)
    except ValueError as exc:
        raise error_cls(f"Archive entry escapes extraction root: {rel_path}") from exc
    return destination


def _check_entry_count(count: int, max_entries: int | None, error_cls: type[ResolveError]) -> None:
    if max_entries is not None and count > max_entries:
        raise error_cls(f"Archive entry count exceeds limit ({max_entries})")


def _zip_member_is_link(member: zipfile.ZipInfo) -> bool:
    mode = member.external_attr >> 16
    return bool(mode) and stat.S_ISLNK(mode)


def _extract_zip(
    archive_path: Path,
    target_dir: Path,
    max_entries: int | None,
    error_cls: type[ResolveError],
) -> None:
    with zipfile.ZipFile(archive_path, "r") as archive:
        members = archive.infolist()
        _check_entry_count(len(members), max_entries, error_cls)

        planned: list[tuple[zipfile.ZipInfo, str]] = []
        for member in members:
            rel_path = validate_entry_path(member.filename, error_cls)
            if _zip_member_is_link(member):
                raise error_cls(f"Archive contains a symbolic link; refusing extraction: {member.filename}")
            if rel_path:
                planned.append((member, rel_path))

        for member, rel_path in planned:
            destination = _destination_for(target_dir, rel_path, error_cls)
            if member.is_dir():
                destination.mkdir(parents=True, exist_ok=True)
                continue
            destination.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(member, "r") as source_file:
                with destination.open("wb") as out_file:
                    shutil.copyfileobj(source_file, out_file)


def _extract_tar(
    archive_path: Path,
    target_dir: Path,
    max_entries: int | None,
    error_cls: type[ResolveError],
) -> None:
    with tarfile.open(archive_path, "r:*") as archive:
        members = archive.getmembers()
        _check_entry_count(len(members), max_entries, error_cls)

        planned: list[tuple[tarfile.TarInfo, str]] = []
        for member in members:
            rel_path = validate_entry_path(member.name, error_cls)
            if member.issym() or member.islnk():
                raise error_cls(f"Archive contains symbolic or hard links; refusing extraction: {member.name}")
            if rel_path:
                planned.append((member, rel_path))

        for member, rel_path in planned:
            destination = _destination_for(target_dir, rel_path, error_cls)
            if member.isdir():
                destination.mkdir(parents=True, exist_ok=True)
                continue
            if not member.isfile():
                continue
            source_file = archive.extractfile(member)
            if source_file is None:
                continue
            destination.parent.mkdir(parents=True, exist_ok=True)
            with source_file:
                with destination.open("wb") as out_file:
                    shutil.copyfileobj(source_file, out_file)


def extract_archive(
    archive_path: Path,
    archive_format: ArchiveFormat,
    target_dir: Path,
    *,
    max_entries: int | None = None,
    error_cls: type[ResolveError] = ArchiveResolveError,
) -> None:
    """Extract an archive after validating every entry.

    The entry count and every entry path are checked before the first file is
    written; links are refused outright.
    """
    target_dir.mkdir(parents=True, exist_ok=True)
    target_dir = target_dir.resolve()
    try:
        if archive_format == "zip":
            _extract_zip(archive_path, target_dir, max_entries, error_cls)
        else:
            _extract_tar(archive_path, target_dir, max_entries, error_cls)
    except (tarfile.TarError, zipfile.BadZipFile, EOFError, OSError) as exc:
        raise error_cls(f"Failed to extract {archive_format} archive: {exc}") from exc


def directory_size(directory: Path) -> int:
    """Sum the sizes of regular files below a directory, without following links."""
    total = 0
    for current, _dirs, files in os.walk(directory):
        for name in files:
            file_path = os.path.join(current, name)
            info = os.lstat(file_path)
            if stat.S_ISREG(info.st_mode):
                total += info.st_size
    return total


def normalize_content_path(extract_path: Path) -> Path:
    """Unwrap a single top-level directory, ignoring OS metadata entries."""
    entries = [entry for entry in extract_path.iterdir() if entry.name not in _IGNORED_TOP_LEVEL]
    if len(entries) == 1 and entries[0].is_dir():
        return entries[0]
    return extract_path


def find_skill_directories(root: Path) -> list[Path]:
    """Return every directory below root (inclusive) that holds a SKILL.md file."""
    found: set[Path] = set()
    for current, _dirs, files in os.walk(root):
        if SKILL_FILENAME in files and os.path.isfile(os.path.join(current, SKILL_FILENAME)):
            found.add(Path(current))
    return sorted(found)
