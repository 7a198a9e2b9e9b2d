"""Upload boundary — turn untrusted archive bytes into a SkillPackage.

Pipeline::

    bytes -> extract_archive -> strip_root_prefix -> find_manifest
          -> parse_skill_md -> validate_spec -> name/directory checks

Every stage except spec validation fails fast on its first problem.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .archive import extract_archive, strip_root_prefix
from .config import VaultConfig
from .errors import EmptyArchiveError, NameMismatchError, SizeLimitError, SpecValidationError
from .manifest import find_manifest, parse_skill_md
from .models import FileEntry, SkillManifest, SkillPackage
from .policy import check_directories, enforce_directories
from .validator import ensure_valid_spec, serialized_size, validate_spec

logger = logging.getLogger("skvault.ingest")


def validate_folder(
    entries: list[FileEntry],
    config: Optional[VaultConfig] = None,
    strict: Optional[bool] = None,
) -> SkillPackage:
    """Validate an extracted skill folder.

    Args:
        entries: Entries as they came out of the archive.
        config: Limits and directory allow-list (defaults if omitted).
        strict: Reject non-standard directories instead of warning.
            Defaults to ``config.strict_directories``.

    Returns:
        SkillPackage: Manifest plus root-relative files (SKILL.md included).

    Raises:
        EmptyArchiveError, MissingManifestError, NoFrontmatterError,
        InvalidYamlError, NotAMappingError, SpecValidationError,
        NameMismatchError, DirectoryPolicyError.
    """
    cfg = config or VaultConfig()
    if strict is None:
        strict = cfg.strict_directories
    if not entries:
        raise EmptyArchiveError()

    root, files = strip_root_prefix(entries)
    spec = parse_skill_md(find_manifest(files).content)

    result = validate_spec(spec, cfg.max_manifest_bytes)
    if not result.valid or result.manifest is None:
        raise SpecValidationError(result.errors)
    manifest = result.manifest

    if root and root != manifest.name:
        raise NameMismatchError(root, manifest.name)

    paths = [f.path for f in files]
    warnings = list(result.warnings)
    if strict:
        enforce_directories(paths, cfg.allowed_dirs)
    else:
        for warning in check_directories(paths, cfg.allowed_dirs):
            logger.warning("%s: %s", manifest.name, warning)
            warnings.append(warning)

    logger.info("Validated package %s (%d files)", manifest.name, len(files))
    return SkillPackage(manifest=manifest, files=files, root_dir=root, warnings=warnings)


def ingest_archive(
    data: bytes,
    config: Optional[VaultConfig] = None,
    strict: Optional[bool] = None,
) -> SkillPackage:
    """Extract and validate an uploaded archive.

    Args:
        data: Raw archive bytes.
        config: Limits and directory allow-list.
        strict: See :func:`validate_folder`.

    Returns:
        SkillPackage: The normalized package.
    """
    cfg = config or VaultConfig()
    entries = extract_archive(data, cfg.max_upload_bytes)
    return validate_folder(entries, cfg, strict)


def ingest_spec(data: Any, config: Optional[VaultConfig] = None) -> SkillManifest:
    """Validate a raw JSON-style spec upload (no archive).

    Raises:
        SizeLimitError: If the payload is over the manifest byte cap.
        SpecValidationError: With every field violation.
    """
    cfg = config or VaultConfig()
    size = serialized_size(data)
    if size > cfg.max_manifest_bytes:
        raise SizeLimitError("Payload", size, cfg.max_manifest_bytes)
    return ensure_valid_spec(data, cfg.max_manifest_bytes)
