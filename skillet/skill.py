"""SKILL.md parsing and validation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from skillet.exceptions import SkillParseError

SKILL_FILENAME = "SKILL.md"
FRONTMATTER_DELIMITER = "---"

NAME_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
NAME_MAX_CHARS = 64
DESCRIPTION_MAX_CHARS = 1024
COMPATIBILITY_MAX_CHARS = 500

_RESERVED_BOOL_METADATA_KEYS = frozenset({"internal"})
_LINE_SPLIT = re.compile(r"\r?\n")


@dataclass(frozen=True)
class SkillFrontmatter:
    name: str
    description: str
    license: str | None = None
    compatibility: str | None = None
    allowed_tools: str | None = None
    metadata: dict[str, str | bool] | None = None


@dataclass(frozen=True)
class SkillFile:
    frontmatter: SkillFrontmatter
    body: str

    @property
    def name(self) -> str:
        return self.frontmatter.name

    @property
    def description(self) -> str:
        return self.frontmatter.description

    @property
    def is_internal(self) -> bool:
        metadata = self.frontmatter.metadata or {}
        return metadata.get("internal") is True


def _split_frontmatter(markdown: str) -> tuple[str, str]:
    text = markdown.removeprefix("\ufeff")
    lines = _LINE_SPLIT.split(text)

    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1
    if start >= len(lines) or lines[start].strip() != FRONTMATTER_DELIMITER:
        raise SkillParseError("SKILL.md must start with frontmatter '---' delimiter")

    end = -1
    for index in range(start + 1, len(lines)):
        if lines[index].strip() == FRONTMATTER_DELIMITER:
            end = index
            break
    if end < 0:
        raise SkillParseError("SKILL.md frontmatter must be closed with '---' delimiter")

    return "\n".join(lines[start + 1 : end]), "\n".join(lines[end + 1 :])


def _read_string_field(record: dict[str, Any], key: str, required: bool = False) -> str | None:
    value = record.get(key)
    if value is None:
        if required:
            raise SkillParseError(f"Missing required field: {key}", key)
        return None
    if not isinstance(value, str):
        raise SkillParseError(f"Field {key} must be a string", key)
    if required and not value.strip():
        raise SkillParseError(f"Field {key} must not be empty", key)
    return value


def _read_allowed_tools(record: dict[str, Any]) -> str | None:
    dashed = record.get("allowed-tools")
    camel = record.get("allowedTools")
    if "allowed-tools" in record and "allowedTools" in record and dashed != camel:
        raise SkillParseError("Use only one of allowedTools or allowed-tools", "allowed-tools")

    value = dashed if dashed is not None else camel
    if value is None:
        return None
    if not isinstance(value, str):
        raise SkillParseError("allowed-tools must be a string", "allowed-tools")
    return value


def _normalize_metadata(raw: Any) -> dict[str, str | bool] | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise SkillParseError("metadata must be a mapping", "metadata")

    normalized: dict[str, str | bool] = {}
    for raw_key, value in raw.items():
        key = str(raw_key)
        if key in _RESERVED_BOOL_METADATA_KEYS:
            if not isinstance(value, bool):
                raise SkillParseError(f"metadata.{key} must be a boolean", f"metadata.{key}")
            normalized[key] = value
            continue
        if not isinstance(value, str):
            raise SkillParseError(f"metadata.{key} must be a string", f"metadata.{key}")
        normalized[key] = value
    return normalized


def _validate_name(name: str, expected_name: str | None) -> None:
    if not 1 <= len(name) <= NAME_MAX_CHARS:
        raise SkillParseError(f"name must be 1-{NAME_MAX_CHARS} characters", "name")
    if not NAME_PATTERN.match(name):
        raise SkillParseError(
            "name must be lowercase alphanumeric with optional single hyphens",
            "name",
        )
    if expected_name and name != expected_name:
        raise SkillParseError(f"name must match parent directory ({expected_name})", "name")


def _validate_length(value: str | None, field: str, maximum: int) -> None:
    if value is None:
        return
    if not 1 <= len(value) <= maximum:
        raise SkillParseError(f"{field} must be 1-{maximum} characters", field)


def _derive_expected_name(path: str | Path | None) -> str | None:
    if path is None:
        return None
    parent_name = Path(path).parent.name
    return parent_name or None


def parse_skill_markdown(
    markdown: str,
    *,
    path: str | Path | None = None,
    expected_name: str | None = None,
) -> SkillFile:
    """Parse SKILL.md text into a validated SkillFile.

    ``path`` is the location of the SKILL.md file; when given, the skill name
    must equal the name of its parent directory unless ``expected_name``
    overrides it.

    Raises:
        SkillParseError: on any delimiter, YAML or field validation failure.
    """
    frontmatter_text, body = _split_frontmatter(markdown)
    try:
        data = yaml.safe_load(frontmatter_text)
    except yaml.YAMLError as exc:
        raise SkillParseError(f"Invalid YAML frontmatter: {exc}") from exc

    if not isinstance(data, dict):
        raise SkillParseError("Frontmatter must be a YAML object")

    name = _read_string_field(data, "name", required=True)
    description = _read_string_field(data, "description", required=True)
    license_text = _read_string_field(data, "license")
    compatibility = _read_string_field(data, "compatibility")
    allowed_tools = _read_allowed_tools(data)
    metadata = _normalize_metadata(data.get("metadata"))

    _validate_name(name, expected_name or _derive_expected_name(path))
    _validate_length(description, "description", DESCRIPTION_MAX_CHARS)
    _validate_length(compatibility, "compatibility", COMPATIBILITY_MAX_CHARS)

    return SkillFile(
        frontmatter=SkillFrontmatter(
            name=name,
            description=description,
            license=license_text,
            compatibility=compatibility,
            allowed_tools=allowed_tools,
            metadata=metadata,
        ),
        body=body,
    )


def load_skill_file(skill_md: str | Path) -> SkillFile:
    """Read and parse a SKILL.md file, using its directory as the expected name."""
    path = Path(skill_md)
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise SkillParseError(f"SKILL.md is not valid UTF-8: {exc}") from exc
    return parse_skill_markdown(text, path=path)


def render_skill_markdown(skill: SkillFile) -> str:
    """Serialize a SkillFile back into SKILL.md text."""
    frontmatter = skill.frontmatter
    data: dict[str, Any] = {"name": frontmatter.name, "description": frontmatter.description}
    if frontmatter.license is not None:
        data["license"] = frontmatter.license
    if frontmatter.compatibility is not None:
        data["compatibility"] = frontmatter.compatibility
    if frontmatter.allowed_tools is not None:
        data["allowed-tools"] = frontmatter.allowed_tools
    if frontmatter.metadata is not None:
        data["metadata"] = dict(frontmatter.metadata)

    dumped = yaml.safe_dump(
        data,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=4096,
    )
    return f"{FRONTMATTER_DELIMITER}\n{dumped}{FRONTMATTER_DELIMITER}\n{skill.body}"
