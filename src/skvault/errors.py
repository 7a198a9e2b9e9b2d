"""SKVault exceptions.

Every failure carries a short ``code`` (the category a caller can switch
on) and an optional human-readable ``detail``. Validation failures put
the full aggregated message in ``detail`` so every problem can be fixed
in one pass.
"""

from __future__ import annotations

from typing import Optional


class VaultError(Exception):
    """Base exception for all vault errors.

    Attributes:
        message: Human-readable error message.
        code: Short error category.
        detail: Optional extra detail for display.
    """

    code = "vault_error"

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        self.message = message
        self.detail = detail
        super().__init__(message)

    def to_dict(self) -> dict:
        """Structured form used by the CLI and MCP surfaces."""
        return {"error": self.code, "details": self.detail or self.message}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


# ── Archive ───────────────────────────────────────────────────────────


class ArchiveError(VaultError):
    """The uploaded bytes could not be turned into file entries."""

    code = "invalid_archive"


class SizeLimitError(ArchiveError):
    """Input exceeds a configured byte ceiling.

    Attributes:
        size: Measured size in bytes.
        limit: Configured ceiling in bytes.
    """

    code = "size_limit"

    def __init__(self, what: str, size: int, limit: int) -> None:
        self.what = what
        self.size = size
        self.limit = limit
        super().__init__(f"{what} exceeds {_human(limit)} limit (got {size} bytes)")

    def __reduce__(self) -> tuple:
        return (type(self), (self.what, self.size, self.limit))


class InvalidArchiveError(ArchiveError):
    code = "invalid_archive"


class EmptyArchiveError(ArchiveError):
    code = "empty_archive"

    def __init__(self, message: str = "Zip archive is empty") -> None:
        super().__init__(message)


class UnsafePathError(ArchiveError):
    """An entry path escapes the package root (absolute or ``..``)."""

    code = "unsafe_path"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Archive contains an unsafe path entry: {path!r}")

    def __reduce__(self) -> tuple:
        return (type(self), (self.path,))


# ── Manifest ──────────────────────────────────────────────────────────


class ManifestError(VaultError):
    """SKILL.md is missing or structurally unreadable."""

    code = "invalid_manifest"


class MissingManifestError(ManifestError):
    code = "missing_manifest"

    def __init__(self, message: str = "Zip must contain a SKILL.md file at the skill root") -> None:
        super().__init__(message)


class DuplicateManifestError(ManifestError):
    code = "duplicate_manifest"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"SKILL.md may only appear at the skill root (found {path!r})")

    def __reduce__(self) -> tuple:
        return (type(self), (self.path,))


class NoFrontmatterError(ManifestError):
    code = "no_frontmatter"

    def __init__(
        self, message: str = "SKILL.md must contain YAML frontmatter between --- delimiters"
    ) -> None:
        super().__init__(message)


class InvalidYamlError(ManifestError):
    code = "invalid_yaml"

    def __init__(self, detail: Optional[str] = None) -> None:
        super().__init__("Invalid YAML in SKILL.md frontmatter", detail)


class NotAMappingError(ManifestError):
    code = "not_a_mapping"

    def __init__(self, got: str = "") -> None:
        suffix = f", got {got}" if got else ""
        super().__init__(f"SKILL.md frontmatter must be a YAML mapping{suffix}")


# ── Validation ────────────────────────────────────────────────────────


class SpecValidationError(VaultError):
    """One or more manifest fields failed validation.

    Attributes:
        errors: Every violation found, in field order.
    """

    code = "invalid_spec"

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        joined = "; ".join(self.errors)
        super().__init__(joined, joined)

    def __reduce__(self) -> tuple:
        return (type(self), (self.errors,))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(errors={self.errors!r})"


class NameMismatchError(VaultError):
    code = "name_mismatch"

    def __init__(self, directory: str, name: str) -> None:
        self.directory = directory
        self.name = name
        super().__init__(f'Directory name "{directory}" must match skill name "{name}"')

    def __reduce__(self) -> tuple:
        return (type(self), (self.directory, self.name))


class DirectoryPolicyError(VaultError):
    code = "unsupported_directory"

    def __init__(self, directory: str, allowed: list[str]) -> None:
        self.directory = directory
        self.allowed = list(allowed)
        listing = ", ".join(f"{d}/" for d in self.allowed)
        super().__init__(f'Unsupported directory "{directory}". Allowed: {listing}')

    def __reduce__(self) -> tuple:
        return (type(self), (self.directory, self.allowed))


# ── Store ─────────────────────────────────────────────────────────────


class ImmutableSkillError(VaultError):
    code = "immutable_skill"

    def __init__(self, message: str = "Cannot edit a released skill") -> None:
        super().__init__(message)


class AuthorizationError(VaultError):
    code = "forbidden"

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class NotFoundError(VaultError):
    code = "not_found"


class NotReleasedError(VaultError):
    code = "not_released"

    def __init__(self, message: str = "Can only fork released skills") -> None:
        super().__init__(message)


def _human(n: int) -> str:
    if n % (1024 * 1024) == 0:
        return f"{n // (1024 * 1024)} MB"
    if n % 1024 == 0:
        return f"{n // 1024} KB"
    return f"{n} bytes"
