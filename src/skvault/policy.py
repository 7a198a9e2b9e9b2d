"""Top-level directory policy for skill packages.

A package may hold files at its root and under a small set of standard
directories. The library reports anything else as advisory warnings;
the upload boundary turns the first offender into a hard failure.
"""

from __future__ import annotations

from typing import Iterable, Optional

from . import MANIFEST_FILENAME
from .config import DEFAULT_ALLOWED_DIRS
from .errors import DirectoryPolicyError


def offending_directories(
    paths: Iterable[str], allowed: Optional[Iterable[str]] = None
) -> list[str]:
    """Distinct non-standard top-level directory names, in first-seen order."""
    allowed_set = set(DEFAULT_ALLOWED_DIRS if allowed is None else allowed)
    seen: list[str] = []
    for path in paths:
        if path == MANIFEST_FILENAME:
            continue
        parts = path.split("/")
        if len(parts) > 1 and parts[0] not in allowed_set and parts[0] not in seen:
            seen.append(parts[0])
    return seen


def _allowed_listing(allowed: Optional[Iterable[str]]) -> list[str]:
    return list(DEFAULT_ALLOWED_DIRS if allowed is None else allowed)


def check_directories(
    paths: Iterable[str], allowed: Optional[Iterable[str]] = None
) -> list[str]:
    """One warning per distinct non-standard top-level directory.

    Args:
        paths: Package-root-relative file paths.
        allowed: Permitted top-level directory names.

    Returns:
        list[str]: Warning messages, in order of first appearance.
    """
    listing = ", ".join(f"{d}/" for d in _allowed_listing(allowed))
    return [
        f'Non-standard directory "{name}". Allowed by spec: {listing}'
        for name in offending_directories(paths, allowed)
    ]


def enforce_directories(paths: Iterable[str], allowed: Optional[Iterable[str]] = None) -> None:
    """Fail on the first non-standard top-level directory.

    Raises:
        DirectoryPolicyError: Naming the offending directory.
    """
    offenders = offending_directories(paths, allowed)
    if offenders:
        raise DirectoryPolicyError(offenders[0], _allowed_listing(allowed))
