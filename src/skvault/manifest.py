"""SKILL.md parsing and generation.

A SKILL.md file is a ``---`` fenced YAML frontmatter block followed by
an optional markdown body::

    ---
    name: my-skill
    description: What it does
    ---
    # Instructions ...

Parsing yields the frontmatter mapping plus a ``body`` key; generation
is the structural inverse.
"""

from __future__ import annotations

import json
import re
from typing import Any, Union

import yaml

from . import MANIFEST_FILENAME
from .errors import (
    DuplicateManifestError,
    InvalidYamlError,
    MissingManifestError,
    NoFrontmatterError,
    NotAMappingError,
)
from .models import FileEntry, SkillManifest

FRONTMATTER_RE = re.compile(r"\A---\r?\n(.*?)\r?\n---\r?\n?(.*)\Z", re.DOTALL)


def find_manifest(entries: list[FileEntry]) -> FileEntry:
    """Locate SKILL.md among root-relative entries.

    Raises:
        MissingManifestError: If there is no SKILL.md at the package root.
        DuplicateManifestError: If a SKILL.md also appears deeper in the tree.
    """
    found = None
    for entry in entries:
        if entry.path == MANIFEST_FILENAME:
            if found is None:
                found = entry
        elif entry.path.rsplit("/", 1)[-1] == MANIFEST_FILENAME:
            raise DuplicateManifestError(entry.path)
    if found is None:
        raise MissingManifestError()
    return found


def split_frontmatter(text: str) -> tuple[str, str]:
    """Split SKILL.md content into (frontmatter, body) source text.

    The fence must be the very first line of the file.

    Raises:
        NoFrontmatterError: If the content doesn't open with a fenced block.
    """
    match = FRONTMATTER_RE.match(text)
    if match is None:
        raise NoFrontmatterError()
    return match.group(1), match.group(2)


def parse_frontmatter(raw: str) -> dict[str, Any]:
    """Load the frontmatter block as a YAML mapping.

    Raises:
        InvalidYamlError: On a YAML syntax error.
        NotAMappingError: If the document isn't a key/value mapping.
    """
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise InvalidYamlError(str(exc)) from exc
    if not isinstance(data, dict):
        raise NotAMappingError(type(data).__name__)
    return data


def parse_skill_md(text: str) -> dict[str, Any]:
    """Parse SKILL.md content into an (unvalidated) manifest mapping.

    The body is whitespace-trimmed and omitted when empty. ``metadata``
    values are coerced to strings since YAML hands back numbers and
    booleans for unquoted scalars.

    Args:
        text: Full SKILL.md content.

    Returns:
        dict: Frontmatter fields plus ``body`` when present.
    """
    frontmatter_raw, body_raw = split_frontmatter(text)
    spec = dict(parse_frontmatter(frontmatter_raw))

    body = body_raw.strip()
    if body:
        spec["body"] = body
    else:
        spec.pop("body", None)

    metadata = spec.get("metadata")
    if isinstance(metadata, dict):
        spec["metadata"] = {str(k): _stringify(v) for k, v in metadata.items()}
    return spec


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, dict)):
        return json.dumps(value, default=str)
    return str(value)


def generate_skill_md(manifest: Union[SkillManifest, dict[str, Any]]) -> str:
    """Serialize a manifest back into SKILL.md content.

    Every field except ``body`` goes into the frontmatter; the body (if
    any) follows the closing fence.

    Args:
        manifest: A SkillManifest or its plain-dict spec.

    Returns:
        str: SKILL.md text.
    """
    spec = manifest.to_spec() if isinstance(manifest, SkillManifest) else dict(manifest)
    body = spec.pop("body", None)

    frontmatter = yaml.dump(
        spec,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=float("inf"),
    ).strip()
    body_text = body.strip() if isinstance(body, str) else ""
    suffix = f"\n{body_text}\n" if body_text else ""
    return f"---\n{frontmatter}\n---\n{suffix}"
