import hashlib
import io
import json
import tarfile
from pathlib import Path

import httpx
import pytest

from skillet.exceptions import OciResolveError
from skillet.resolvers.oci import (
    SKILL_ARTIFACT_TYPE,
    fetch_oci_digest,
    parse_oci_reference,
    registry_base_url,
    resolve_oci_source,
)

LAYER_DIGEST = "sha256:" + "a" * 64
MANIFEST_DIGEST = "sha256:" + "b" * 64


def _layer(files: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as archive:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def _manifest(artifact_type: str | None = SKILL_ARTIFACT_TYPE, layers: list | None = None) -> bytes:
    manifest: dict = {"schemaVersion": 2, "layers": layers if layers is not None else [{"digest": LAYER_DIGEST}]}
    if artifact_type is not None:
        manifest["artifactType"] = artifact_type
    return json.dumps(manifest).encode("utf-8")


def _registry(manifest: bytes, layer: bytes = b"", digest_header: str | None = MANIFEST_DIGEST):
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "/manifests/" in request.url.path:
            headers = {"content-type": "application/vnd.oci.image.manifest.v1+json"}
            if digest_header:
                headers["docker-content-digest"] = digest_header
            return httpx.Response(200, content=manifest, headers=headers)
        if request.url.path.endswith(f"/blobs/{LAYER_DIGEST}"):
            return httpx.Response(200, content=layer)
        return httpx.Response(404)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), requests


def test_parse_oci_reference_tag_and_digest():
    tag = parse_oci_reference("oci://localhost:5000/skills/alpha:1.0")
    assert tag.registry == "localhost:5000"
    assert tag.repository == "skills/alpha"
    assert tag.reference_type == "tag"
    assert tag.reference == "1.0"

    digest = parse_oci_reference(f"oci://ghcr.io/org/alpha@{MANIFEST_DIGEST}")
    assert digest.reference_type == "digest"
    assert digest.reference == MANIFEST_DIGEST


@pytest.mark.parametrize(
    "source",
    ["ghcr.io/org/alpha:1", "oci://ghcr.io", "oci://ghcr.io/org/alpha", "oci://ghcr.io/org/alpha:"],
)
def test_parse_oci_reference_rejects_malformed(source: str):
    with pytest.raises(OciResolveError):
        parse_oci_reference(source)


def test_registry_base_url_uses_http_for_local_or_insecure():
    assert registry_base_url(parse_oci_reference("oci://localhost:5000/a:1")).startswith("http://")
    assert registry_base_url(parse_oci_reference("oci://ghcr.io/a:1")).startswith("https://")
    assert registry_base_url(parse_oci_reference("oci://ghcr.io/a:1"), insecure_http=True).startswith("http://")


@pytest.mark.asyncio
async def test_resolve_oci_source_extracts_single_skill(tmp_path: Path):
    layer = _layer({"alpha/SKILL.md": "---\nname: alpha\ndescription: A\n---\n", "alpha/run.sh": "echo"})
    client, requests = _registry(_manifest(), layer)

    async with client:
        resolved = await resolve_oci_source("oci://ghcr.io/org/alpha:1.0", temp_root=tmp_path, client=client)

    assert resolved.resolved_digest == MANIFEST_DIGEST
    assert resolved.content_path.name == "alpha"
    assert (resolved.content_path / "run.sh").read_text(encoding="utf-8") == "echo"
    assert "application/vnd.oci.image.manifest.v1+json" in requests[0].headers["accept"]
    assert str(requests[0].url) == "https://ghcr.io/v2/org/alpha/manifests/1.0"


@pytest.mark.asyncio
async def test_resolve_oci_source_rejects_wrong_artifact_type_before_layer_fetch(tmp_path: Path):
    client, requests = _registry(_manifest("application/vnd.oci.image.config.v1+json"))

    async with client:
        with pytest.raises(OciResolveError, match="Unsupported OCI artifact type"):
            await resolve_oci_source("oci://ghcr.io/org/alpha:1.0", temp_root=tmp_path, client=client)

    assert len(requests) == 1


@pytest.mark.asyncio
async def test_resolve_oci_source_reports_missing_artifact_type(tmp_path: Path):
    client, _ = _registry(_manifest(artifact_type=None))

    async with client:
        with pytest.raises(OciResolveError, match="Unsupported OCI artifact type: missing"):
            await resolve_oci_source("oci://ghcr.io/org/alpha:1.0", temp_root=tmp_path, client=client)


@pytest.mark.asyncio
async def test_resolve_oci_source_validates_layers(tmp_path: Path):
    client, _ = _registry(_manifest(layers=[]))
    async with client:
        with pytest.raises(OciResolveError, match="at least one layer"):
            await resolve_oci_source("oci://ghcr.io/org/alpha:1.0", temp_root=tmp_path, client=client)

    client, _ = _registry(_manifest(layers=[{"digest": "md5:abc"}]))
    async with client:
        with pytest.raises(OciResolveError, match="layer digest is invalid"):
            await resolve_oci_source("oci://ghcr.io/org/alpha:1.0", temp_root=tmp_path, client=client)


@pytest.mark.asyncio
async def test_resolve_oci_source_rejects_multiple_skills(tmp_path: Path):
    layer = _layer(
        {
            "alpha/SKILL.md": "---\nname: alpha\ndescription: A\n---\n",
            "beta/SKILL.md": "---\nname: beta\ndescription: B\n---\n",
        }
    )
    client, _ = _registry(_manifest(), layer)

    async with client:
        with pytest.raises(OciResolveError, match="exactly one skill, found 2"):
            await resolve_oci_source("oci://ghcr.io/org/alpha:1.0", temp_root=tmp_path, client=client)


@pytest.mark.asyncio
async def test_resolve_oci_source_rejects_layer_traversal(tmp_path: Path):
    client, _ = _registry(_manifest(), _layer({"../evil/SKILL.md": "x"}))

    async with client:
        with pytest.raises(OciResolveError, match="escapes extraction root"):
            await resolve_oci_source("oci://ghcr.io/org/alpha:1.0", temp_root=tmp_path, client=client)


@pytest.mark.asyncio
async def test_fetch_oci_digest_prefers_header_then_manifest_bytes():
    manifest = _manifest()

    client, _ = _registry(manifest)
    async with client:
        assert await fetch_oci_digest("oci://ghcr.io/org/alpha:1.0", client=client) == MANIFEST_DIGEST

    client, _ = _registry(manifest, digest_header=None)
    async with client:
        digest = await fetch_oci_digest("oci://ghcr.io/org/alpha:1.0", client=client)
    assert digest == f"sha256:{hashlib.sha256(manifest).hexdigest()}"


@pytest.mark.asyncio
async def test_fetch_oci_digest_returns_digest_reference_without_network():
    client, requests = _registry(_manifest())

    async with client:
        digest = await fetch_oci_digest(f"oci://ghcr.io/org/alpha@{MANIFEST_DIGEST}", client=client)

    assert digest == MANIFEST_DIGEST
    assert requests == []
