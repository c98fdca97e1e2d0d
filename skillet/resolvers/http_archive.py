"""Resolve ``.zip`` / ``.tar.gz`` archives served over HTTP(S)."""

from __future__ import annotations

import tempfile
from dataclasses import dataclass
from pathlib import Path

import httpx

from skillet.archive import (
    ArchiveFormat,
    directory_size,
    extract_archive,
    normalize_content_path,
)
from skillet.config import get_config
from skillet.exceptions import ArchiveResolveError
from skillet.http import download_to_file, http_client
from skillet.logging import get_logger

log = get_logger(__name__)

ARCHIVE_SUFFIXES = (".zip", ".tar.gz", ".tgz")


@dataclass
class ResolvedHttpArchive:
    format: ArchiveFormat
    archive_path: Path
    extract_path: Path
    content_path: Path
    final_url: str


def is_archive_url(source: str) -> bool:
    return source.startswith(("http://", "https://")) and source.lower().endswith(ARCHIVE_SUFFIXES)


def detect_archive_format(final_url: str, content_type: str, head: bytes) -> ArchiveFormat:
    """Detect the archive format from URL suffix, then content type, then magic bytes."""
    lower_url = final_url.lower().split("?", 1)[0].split("#", 1)[0]
    lower_type = (content_type or "").lower()

    if lower_url.endswith((".tar.gz", ".tgz")):
        return "tar.gz"
    if lower_url.endswith(".zip"):
        return "zip"
    if "application/zip" in lower_type:
        return "zip"
    if "application/gzip" in lower_type or "application/x-gzip" in lower_type:
        return "tar.gz"
    if head[:2] == b"\x1f\x8b":
        return "tar.gz"
    if len(head) >= 4 and head[:2] == b"PK" and head[2] in (3, 5, 7) and head[3] in (4, 6, 8):
        return "zip"
    raise ArchiveResolveError("Unable to detect archive format (expected .zip or .tar.gz)")


async def resolve_http_archive(
    url: str,
    *,
    temp_root: str | Path | None = None,
    max_download_bytes: int | None = None,
    max_entries: int | None = None,
    max_extracted_bytes: int | None = None,
    client: httpx.AsyncClient | None = None,
) -> ResolvedHttpArchive:
    """Download and safely unpack an archive into a fresh scratch directory.

    Limits default to the ``limits`` section of the configuration. The scratch
    directory is left in place for the caller to reclaim, including on failure.
    """
    limits = get_config().limits
    if max_download_bytes is None:
        max_download_bytes = limits.max_download_bytes
    if max_entries is None:
        max_entries = limits.max_entries
    if max_extracted_bytes is None:
        max_extracted_bytes = limits.max_extracted_bytes

    root = Path(temp_root).expanduser().resolve() if temp_root else Path(tempfile.gettempdir())
    root.mkdir(parents=True, exist_ok=True)
    work_dir = Path(tempfile.mkdtemp(prefix="skillet-archive-", dir=root))

    log.debug("Downloading archive", url=url, work_dir=str(work_dir))
    async with http_client(client) as http:
        downloaded = await download_to_file(
            http,
            url,
            work_dir / "archive.part",
            max_bytes=max_download_bytes,
            error_cls=ArchiveResolveError,
        )

    archive_format = detect_archive_format(downloaded.final_url, downloaded.content_type, downloaded.head)
    archive_path = downloaded.path.replace(
        work_dir / ("archive.zip" if archive_format == "zip" else "archive.tar.gz")
    )

    extract_path = work_dir / "extract"
    extract_archive(
        archive_path,
        archive_format,
        extract_path,
        max_entries=max_entries,
        error_cls=ArchiveResolveError,
    )

    extracted_bytes = directory_size(extract_path)
    if extracted_bytes > max_extracted_bytes:
        raise ArchiveResolveError(f"Extracted archive size exceeds limit ({max_extracted_bytes} bytes)")

    return ResolvedHttpArchive(
        format=archive_format,
        archive_path=archive_path,
        extract_path=extract_path,
        content_path=normalize_content_path(extract_path),
        final_url=downloaded.final_url,
    )
