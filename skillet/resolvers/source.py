"""Dispatch a raw source identifier to the matching resolver."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

import httpx

from skillet.logging import get_logger
from skillet.process import CommandRunner, run_command
from skillet.resolvers.git import resolve_git_source
from skillet.resolvers.http_archive import is_archive_url, resolve_http_archive
from skillet.resolvers.oci import OCI_SCHEME, resolve_oci_source

log = get_logger(__name__)

SourceType = Literal["git", "http", "oci", "local"]


@dataclass
class ResolvedSource:
    type: SourceType
    url: str
    content_path: Path
    ref: str | None = None
    digest: str | None = None
    scratch_path: Path | None = None

    @property
    def source_id(self) -> str:
        """Identity used to key the storage root."""
        return f"{self.type}:{self.url}:{self.ref or ''}:{self.digest or ''}"


async def resolve_source(
    source: str,
    *,
    temp_root: str | Path | None = None,
    insecure_http: bool | None = None,
    client: httpx.AsyncClient | None = None,
    runner: CommandRunner = run_command,
) -> ResolvedSource:
    """Resolve any supported source identifier into local content.

    Order: ``oci://`` references, HTTP(S) archive URLs, existing local
    directories, then everything the git resolver accepts.
    """
    if source.startswith(OCI_SCHEME):
        oci = await resolve_oci_source(
            source,
            temp_root=temp_root,
            insecure_http=insecure_http,
            client=client,
        )
        return ResolvedSource(
            type="oci",
            url=source,
            digest=oci.resolved_digest,
            content_path=oci.content_path,
            scratch_path=oci.extract_path.parent,
        )

    if is_archive_url(source):
        archive = await resolve_http_archive(source, temp_root=temp_root, client=client)
        return ResolvedSource(
            type="http",
            url=source,
            content_path=archive.content_path,
            scratch_path=archive.extract_path.parent,
        )

    local_path = Path(source).expanduser()
    if local_path.is_dir():
        absolute = Path(os.path.abspath(local_path))
        return ResolvedSource(type="local", url=f"file://{absolute}", content_path=absolute)

    git = resolve_git_source(source, temp_root=temp_root, runner=runner)
    log.debug("Resolved git source", url=git.parsed.clone_url, ref=git.parsed.ref, commit=git.commit_sha)
    return ResolvedSource(
        type="git",
        url=git.parsed.clone_url,
        ref=git.parsed.ref,
        digest=git.commit_sha,
        content_path=git.content_path,
        scratch_path=git.checkout_path,
    )
