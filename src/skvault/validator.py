"""Manifest validation against the SKILL.md schema.

Validation never stops at the first problem: every field violation and
the size check are collected so a user can fix everything in one pass.
Unknown frontmatter keys are reported as warnings and dropped.
"""

from __future__ import annotations

import json
import math
from typing import Any

from pydantic import ValidationError

from .config import DEFAULT_MAX_MANIFEST_BYTES
from .errors import SpecValidationError
from .models import KNOWN_FIELDS, SkillManifest, ValidationResult

_REQUIRED_MESSAGES = {
    "name": "Name is required",
    "description": "Description is required",
}


def serialized_size(data: Any) -> int:
    """UTF-8 byte size of the compact JSON form of ``data``."""
    text = json.dumps(data, ensure_ascii=False, separators=(",", ":"), default=str)
    return len(text.encode("utf-8"))


def _messages(exc: ValidationError) -> list[str]:
    messages: list[str] = []
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else ""
        if err["type"] == "missing":
            messages.append(_REQUIRED_MESSAGES.get(field, f"Field '{field}' is required"))
        elif err["type"] == "value_error":
            messages.append(str(err["ctx"]["error"]))
        else:
            messages.append(f"Field '{field}': {err['msg']}")
    return messages


def validate_spec(
    data: Any, max_bytes: int = DEFAULT_MAX_MANIFEST_BYTES
) -> ValidationResult:
    """Validate a manifest mapping.

    Args:
        data: Parsed manifest (frontmatter fields plus optional body).
        max_bytes: Serialized size cap.

    Returns:
        ValidationResult: ``valid`` with the manifest, or every error found.
    """
    if not isinstance(data, dict):
        return ValidationResult(
            valid=False,
            errors=[f"Skill spec must be a mapping, got {type(data).__name__}"],
        )

    errors: list[str] = []
    warnings = [f"Unknown frontmatter field: '{key}'" for key in data if key not in KNOWN_FIELDS]

    manifest = None
    try:
        manifest = SkillManifest.model_validate(data)
    except ValidationError as exc:
        errors.extend(_messages(exc))

    size = serialized_size(manifest.to_spec() if manifest is not None else data)
    if size > max_bytes:
        errors.append(
            f"Skill spec must be at most {max_bytes // 1024} KB "
            f"(current: {math.ceil(size / 1024)} KB)"
        )

    if errors:
        return ValidationResult(valid=False, errors=errors, warnings=warnings, size_bytes=size)
    return ValidationResult(valid=True, warnings=warnings, manifest=manifest, size_bytes=size)


def ensure_valid_spec(data: Any, max_bytes: int = DEFAULT_MAX_MANIFEST_BYTES) -> SkillManifest:
    """Validate and return the manifest, raising with every violation.

    Raises:
        SpecValidationError: Carrying the full list of problems.
    """
    result = validate_spec(data, max_bytes)
    if not result.valid or result.manifest is None:
        raise SpecValidationError(result.errors)
    return result.manifest
