"""Provenance sidecar stored next to each installed skill."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from skillet.logging import get_logger

log = get_logger(__name__)

SOURCE_METADATA_FILENAME = ".skillet-source.json"


@dataclass
class SourceMetadata:
    type: str | None = None
    url: str | None = None
    ref: str | None = None
    digest: str | None = None
    install_method: str | None = None

    def to_json_dict(self) -> dict[str, str]:
        payload = {
            "type": self.type,
            "url": self.url,
            "ref": self.ref,
            "digest": self.digest,
            "installMethod": self.install_method,
        }
        return {key: value for key, value in payload.items() if value is not None}


def get_sidecar_path(skill_dir: Path) -> Path:
    return Path(skill_dir) / SOURCE_METADATA_FILENAME


def _optional_string(value: Any) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    return value


def read_source_metadata(skill_dir: Path) -> SourceMetadata:
    """Read the sidecar leniently: missing, malformed or blank values read as absent."""
    sidecar_path = get_sidecar_path(skill_dir)
    if not sidecar_path.is_file():
        return SourceMetadata()
    try:
        payload = json.loads(sidecar_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        log.debug("Ignoring unreadable provenance sidecar", path=str(sidecar_path), error=str(exc))
        return SourceMetadata()
    if not isinstance(payload, dict):
        return SourceMetadata()

    return SourceMetadata(
        type=_optional_string(payload.get("type")),
        url=_optional_string(payload.get("url")),
        ref=_optional_string(payload.get("ref")),
        digest=_optional_string(payload.get("digest")),
        install_method=_optional_string(payload.get("installMethod")),
    )


def write_source_metadata(skill_dir: Path, metadata: SourceMetadata) -> Path:
    sidecar_path = get_sidecar_path(skill_dir)
    sidecar_path.write_text(
        json.dumps(metadata.to_json_dict(), indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    return sidecar_path
