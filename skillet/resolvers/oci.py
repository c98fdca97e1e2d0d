"""Resolve single-skill artifacts from OCI registries."""

from __future__ import annotations

import hashlib
import json
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import httpx

from skillet.archive import extract_archive, find_skill_directories
from skillet.config import get_config
from skillet.exceptions import OciResolveError
from skillet.http import download_to_file, http_client
from skillet.logging import get_logger

log = get_logger(__name__)

OCI_SCHEME = "oci://"
SKILL_ARTIFACT_TYPE = "application/vnd.skillet.skill.v1+tar"
MANIFEST_ACCEPT = "application/vnd.oci.image.manifest.v1+json, application/vnd.oci.artifact.manifest.v1+json"
_LOCAL_REGISTRY_PREFIXES = ("localhost", "127.0.0.1")


@dataclass
class ParsedOciReference:
    registry: str
    repository: str
    reference_type: Literal["tag", "digest"]
    reference: str


@dataclass
class ResolvedOciSource:
    parsed: ParsedOciReference
    resolved_digest: str
    extract_path: Path
    content_path: Path


def parse_oci_reference(source: str) -> ParsedOciReference:
    """Parse ``oci://registry/repository[:tag|@sha256:digest]``."""
    trimmed = str(source or "").strip()
    if not trimmed.startswith(OCI_SCHEME):
        raise OciResolveError("OCI reference must start with oci://")

    without_scheme = trimmed[len(OCI_SCHEME) :]
    registry, sep, remainder = without_scheme.partition("/")
    if not sep or not registry or not remainder:
        raise OciResolveError(f"Invalid OCI reference: {source}")

    if "@" in remainder:
        repository, _, digest = remainder.partition("@")
        if not repository or not digest:
            raise OciResolveError(f"Invalid OCI digest reference: {source}")
        return ParsedOciReference(
            registry=registry,
            repository=repository,
            reference_type="digest",
            reference=digest,
        )

    tag_index = remainder.rfind(":")
    if tag_index <= 0 or tag_index == len(remainder) - 1 or "/" in remainder[tag_index:]:
        raise OciResolveError(f"OCI tag reference must include :tag or @digest: {source}")

    return ParsedOciReference(
        registry=registry,
        repository=remainder[:tag_index],
        reference_type="tag",
        reference=remainder[tag_index + 1 :],
    )


def registry_base_url(parsed: ParsedOciReference, insecure_http: bool = False) -> str:
    scheme = "http" if insecure_http or parsed.registry.startswith(_LOCAL_REGISTRY_PREFIXES) else "https"
    return f"{scheme}://{parsed.registry}/v2/{parsed.repository}"


def digest_manifest_bytes(body: bytes) -> str:
    """Best-effort digest over the literal manifest bytes as served."""
    return f"sha256:{hashlib.sha256(body).hexdigest()}"


async def _fetch_manifest(
    http: httpx.AsyncClient,
    parsed: ParsedOciReference,
    insecure_http: bool,
) -> httpx.Response:
    url = f"{registry_base_url(parsed, insecure_http)}/manifests/{parsed.reference}"
    try:
        response = await http.get(url, headers={"Accept": MANIFEST_ACCEPT}, follow_redirects=True)
    except httpx.HTTPError as exc:
        raise OciResolveError(f"OCI request failed for {url}: {exc}") from exc
    if not response.is_success:
        raise OciResolveError(
            f"OCI request failed ({response.status_code} {response.reason_phrase}) for {url}"
        )
    return response


def _resolved_digest(parsed: ParsedOciReference, response: httpx.Response) -> str:
    if parsed.reference_type == "digest":
        return parsed.reference
    header_digest = response.headers.get("docker-content-digest")
    if header_digest:
        return header_digest
    return digest_manifest_bytes(response.content)


def _first_layer_digest(body: bytes) -> str:
    try:
        manifest: Any = json.loads(body)
    except ValueError as exc:
        raise OciResolveError("Manifest response was not valid JSON") from exc

    if not isinstance(manifest, dict):
        raise OciResolveError("Manifest body must be a JSON object")

    artifact_type = manifest.get("artifactType")
    if artifact_type != SKILL_ARTIFACT_TYPE:
        shown = "missing" if artifact_type is None else str(artifact_type)
        raise OciResolveError(f"Unsupported OCI artifact type: {shown}")

    layers = manifest.get("layers")
    if not isinstance(layers, list) or not layers:
        raise OciResolveError("Manifest must include at least one layer")

    first_layer = layers[0]
    if not isinstance(first_layer, dict):
        raise OciResolveError("Manifest layer entry is invalid")

    layer_digest = first_layer.get("digest")
    if not isinstance(layer_digest, str) or not layer_digest.startswith("sha256:"):
        raise OciResolveError("Manifest layer digest is invalid")
    return layer_digest


async def resolve_oci_source(
    source: str,
    *,
    temp_root: str | Path | None = None,
    insecure_http: bool | None = None,
    client: httpx.AsyncClient | None = None,
) -> ResolvedOciSource:
    """Fetch a skill artifact's first layer and unpack it into a scratch directory.

    The artifact must declare the skillet skill artifact type and unpack to
    exactly one directory containing SKILL.md.
    """
    parsed = parse_oci_reference(source)
    cfg = get_config()
    if insecure_http is None:
        insecure_http = cfg.registry.insecure_http

    root = Path(temp_root).expanduser().resolve() if temp_root else Path(tempfile.gettempdir())
    root.mkdir(parents=True, exist_ok=True)
    work_dir = Path(tempfile.mkdtemp(prefix="skillet-oci-", dir=root))

    async with http_client(client) as http:
        manifest_response = await _fetch_manifest(http, parsed, insecure_http)
        layer_digest = _first_layer_digest(manifest_response.content)
        log.debug("Fetching OCI layer", registry=parsed.registry, repository=parsed.repository, digest=layer_digest)
        layer = await download_to_file(
            http,
            f"{registry_base_url(parsed, insecure_http)}/blobs/{layer_digest}",
            work_dir / "layer.tar",
            max_bytes=cfg.limits.max_download_bytes,
            error_cls=OciResolveError,
            label="OCI layer",
        )

    extract_path = work_dir / "extract"
    extract_archive(
        layer.path,
        "tar",
        extract_path,
        max_entries=cfg.limits.max_entries,
        error_cls=OciResolveError,
    )

    skill_dirs = find_skill_directories(extract_path)
    if len(skill_dirs) != 1:
        raise OciResolveError(f"OCI artifact must contain exactly one skill, found {len(skill_dirs)}")

    return ResolvedOciSource(
        parsed=parsed,
        resolved_digest=_resolved_digest(parsed, manifest_response),
        extract_path=extract_path,
        content_path=skill_dirs[0],
    )


async def fetch_oci_digest(
    source: str,
    *,
    insecure_http: bool | None = None,
    client: httpx.AsyncClient | None = None,
) -> str:
    """Return the current manifest digest for a reference without pulling layers."""
    parsed = parse_oci_reference(source)
    if parsed.reference_type == "digest":
        return parsed.reference
    if insecure_http is None:
        insecure_http = get_config().registry.insecure_http

    async with http_client(client) as http:
        response = await _fetch_manifest(http, parsed, insecure_http)
    return _resolved_digest(parsed, response)
