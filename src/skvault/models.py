"""SKVault data models — the SKILL.md manifest schema and stored records.

A skill package is a SKILL.md manifest (YAML frontmatter plus a markdown
body) and optional supporting files under scripts/, references/ and
assets/. Once stored, a skill is a mutable live record whose every edit
leaves behind an immutable SkillVersion snapshot.
"""

from __future__ import annotations

import enum
import re
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, computed_field, field_validator

NAME_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
NAME_MAX_LENGTH = 64
DESCRIPTION_MAX_LENGTH = 1024
COMPATIBILITY_MAX_LENGTH = 500

# Frontmatter keys the schema knows about; anything else is dropped with a warning.
KNOWN_FIELDS = {
    "name",
    "description",
    "license",
    "compatibility",
    "metadata",
    "allowed-tools",
    "body",
}


class SkillStatus(str, enum.Enum):
    """Lifecycle of a stored skill. RELEASED freezes the history."""

    TEMPLATE = "TEMPLATE"
    RELEASED = "RELEASED"


def _str_or_list(value: Any, label: str) -> Union[str, list[str]]:
    if isinstance(value, str):
        return value
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return value
    raise ValueError(f"{label} must be a string or a list of strings")


class SkillManifest(BaseModel):
    """The validated SKILL.md manifest.

    Fixed known fields plus one explicit string-to-string ``metadata`` map.
    Validators raise with user-facing messages so the aggregated error
    reads well when every problem is listed at once.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = Field(description="Skill identifier (lowercase, hyphen-separated)")
    description: str = Field(description="What the skill does and when to use it")
    license: Optional[str] = None
    compatibility: Optional[Union[str, list[str]]] = None
    metadata: Optional[dict[str, str]] = None
    allowed_tools: Optional[Union[str, list[str]]] = Field(default=None, alias="allowed-tools")
    body: Optional[str] = Field(default=None, description="Markdown after the frontmatter")

    @field_validator("name", mode="before")
    @classmethod
    def validate_name(cls, v: Any) -> str:
        if not isinstance(v, str):
            raise ValueError("Name must be a string")
        if len(v) < 1:
            raise ValueError("Name is required")
        problems = []
        if len(v) > NAME_MAX_LENGTH:
            problems.append(f"Name must be at most {NAME_MAX_LENGTH} characters")
        if not NAME_PATTERN.match(v):
            problems.append(
                "Name must be lowercase alphanumeric with hyphens, no consecutive hyphens, "
                "no leading/trailing hyphens"
            )
        if problems:
            raise ValueError("; ".join(problems))
        return v

    @field_validator("description", mode="before")
    @classmethod
    def validate_description(cls, v: Any) -> str:
        if not isinstance(v, str):
            raise ValueError("Description must be a string")
        if len(v) < 1:
            raise ValueError("Description is required")
        if len(v) > DESCRIPTION_MAX_LENGTH:
            raise ValueError(f"Description must be at most {DESCRIPTION_MAX_LENGTH} characters")
        return v

    @field_validator("license", "body", mode="before")
    @classmethod
    def validate_plain_string(cls, v: Any, info: ValidationInfo) -> Optional[str]:
        if v is not None and not isinstance(v, str):
            raise ValueError(f"{info.field_name.capitalize()} must be a string")
        return v

    @field_validator("compatibility", mode="before")
    @classmethod
    def validate_compatibility(cls, v: Any) -> Optional[Union[str, list[str]]]:
        if v is None:
            return v
        value = _str_or_list(v, "Compatibility")
        text = value if isinstance(value, str) else ", ".join(value)
        if len(text) > COMPATIBILITY_MAX_LENGTH:
            raise ValueError(f"Compatibility must be at most {COMPATIBILITY_MAX_LENGTH} characters")
        return value

    @field_validator("allowed_tools", mode="before")
    @classmethod
    def validate_allowed_tools(cls, v: Any) -> Optional[Union[str, list[str]]]:
        if v is None:
            return v
        return _str_or_list(v, "Allowed-tools")

    @field_validator("metadata", mode="before")
    @classmethod
    def validate_metadata(cls, v: Any) -> Optional[dict[str, str]]:
        if v is None:
            return v
        if not isinstance(v, dict):
            raise ValueError("Metadata must be a mapping of string keys to string values")
        for key, value in v.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise ValueError(f"Metadata value for {key!r} must be a string")
        return v

    def to_spec(self) -> dict[str, Any]:
        """Plain-dict form as stored and serialized (hyphenated keys, no Nones)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class FileEntry(BaseModel):
    """A single text file of a package, relative to the package root."""

    path: str
    content: str


class Tag(BaseModel):
    id: str
    name: str
    is_system: bool = False


class Skill(BaseModel):
    """The mutable live record for a stored skill."""

    id: str
    name: str
    description: str
    status: SkillStatus = SkillStatus.TEMPLATE
    version: int = Field(default=1, ge=1)
    spec: dict[str, Any] = Field(default_factory=dict)
    files: Optional[list[FileEntry]] = None
    owners: list[str] = Field(default_factory=list)
    tags: list[Tag] = Field(default_factory=list)
    forked_from_id: Optional[str] = None
    fork_count: int = 0
    released_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    @property
    def is_released(self) -> bool:
        return self.status == SkillStatus.RELEASED

    def is_owner(self, user_id: str) -> bool:
        return user_id in self.owners


class SkillVersion(BaseModel):
    """Immutable snapshot of a skill as it was before one edit."""

    model_config = ConfigDict(frozen=True)

    skill_id: str
    version: int = Field(ge=1)
    spec: dict[str, Any]
    files: Optional[list[FileEntry]] = None
    edited_by: str
    message: Optional[str] = None
    created_at: datetime


class VersionSummary(BaseModel):
    """A history list row (no file contents)."""

    version: int
    edited_by: str
    message: Optional[str] = None
    created_at: datetime


class VersionPage(BaseModel):
    items: list[VersionSummary]
    page: int
    page_size: int
    total: int

    @computed_field
    @property
    def total_pages(self) -> int:
        return -(-self.total // self.page_size) if self.page_size else 0


class PathDiff(BaseModel):
    """One path of a version comparison; ``None`` means absent on that side."""

    path: str
    before: Optional[str] = None
    after: Optional[str] = None

    @property
    def status(self) -> str:
        if self.before is None:
            return "added"
        if self.after is None:
            return "removed"
        if self.before != self.after:
            return "modified"
        return "unchanged"


class VersionDiff(BaseModel):
    skill_id: str
    from_version: int
    to_version: int
    entries: list[PathDiff] = Field(default_factory=list)

    @property
    def changed(self) -> list[PathDiff]:
        return [e for e in self.entries if e.status != "unchanged"]


class ValidationResult(BaseModel):
    """Outcome of validating a manifest: every error, every warning."""

    valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    manifest: Optional[SkillManifest] = None
    size_bytes: int = 0


class SkillPackage(BaseModel):
    """A normalized, validated upload ready to be stored."""

    manifest: SkillManifest
    files: list[FileEntry]
    root_dir: Optional[str] = Field(default=None, description="Stripped top-level folder, if any")
    warnings: list[str] = Field(default_factory=list)


class EditRequest(BaseModel):
    """Fields an editor may change. Only explicitly provided fields apply."""

    name: Optional[str] = None
    description: Optional[str] = None
    spec: Optional[dict[str, Any]] = None
    files: Optional[list[FileEntry]] = None
    tags: Optional[list[str]] = None
    edit_message: Optional[str] = Field(default=None, alias="editMessage")

    model_config = ConfigDict(populate_by_name=True)

    def provided(self, field: str) -> bool:
        return field in self.model_fields_set
