"""Version history reads and path-aligned diffs.

History is read-only: listing snapshots page by page, fetching one by
its exact number, and lining up two versions' files path by path. The
live record counts as the newest version, so the current state can be
compared against any snapshot.
"""

from __future__ import annotations

from typing import Optional, Union

from .config import VaultConfig
from .errors import NotFoundError
from .models import PathDiff, SkillVersion, VersionDiff, VersionPage
from .store import VersionStore

# SQLite INTEGER is a signed 64-bit value
MAX_VERSION = 2**63 - 1

# Highest page number served
MAX_PAGE = 100


def _to_int(value: Union[int, str, None], default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def list_history(
    store: VersionStore,
    skill_id: str,
    page: Union[int, str, None] = 1,
    page_size: Union[int, str, None] = None,
    config: Optional[VaultConfig] = None,
) -> VersionPage:
    """One page of snapshot summaries, highest version first.

    ``page`` is clamped to ``[1, MAX_PAGE]`` and ``page_size`` to
    ``[1, config.max_page_size]``; unparseable values fall back to defaults.

    Raises:
        NotFoundError: If the skill doesn't exist.
    """
    cfg = config or VaultConfig()
    store.get_skill(skill_id)

    page_n = min(max(1, _to_int(page, 1)), MAX_PAGE)
    size = min(max(1, _to_int(page_size, cfg.default_page_size)), cfg.max_page_size)

    items = store.list_versions(skill_id, offset=(page_n - 1) * size, limit=size)
    return VersionPage(
        items=items, page=page_n, page_size=size, total=store.count_versions(skill_id)
    )


def parse_version(raw: Union[int, str]) -> int:
    """Parse a version number from user input.

    Raises:
        NotFoundError: For non-numeric, non-positive or out-of-range input.
    """
    if isinstance(raw, bool):
        raise NotFoundError(f"Invalid version number: {raw!r}")
    try:
        version = int(str(raw).strip())
    except ValueError as exc:
        raise NotFoundError(f"Invalid version number: {raw!r}") from exc
    if version < 1 or version > MAX_VERSION:
        raise NotFoundError(f"Invalid version number: {raw!r}")
    return version


def get_history_entry(store: VersionStore, skill_id: str, raw_version: Union[int, str]) -> SkillVersion:
    """Full snapshot (spec, files, message, editor, timestamp) by exact number.

    Raises:
        NotFoundError: For unknown skills, bad input, or out-of-range versions.
    """
    return store.get_version(skill_id, parse_version(raw_version))


def diff_versions(
    store: VersionStore,
    skill_id: str,
    version_a: Union[int, str],
    version_b: Union[int, str],
) -> VersionDiff:
    """Line up the files of two versions by path.

    Every path present in either version yields one entry with its
    content on each side, or ``None`` where the path is absent. No
    line-level diff is computed.

    Raises:
        NotFoundError: If the skill or either version doesn't exist.
    """
    a = parse_version(version_a)
    b = parse_version(version_b)
    files_a, files_b = store.files_at(skill_id, a, b)

    before = {f.path: f.content for f in files_a}
    after = {f.path: f.content for f in files_b}

    entries = [
        PathDiff(path=path, before=before.get(path), after=after.get(path))
        for path in sorted(set(before) | set(after))
    ]
    return VersionDiff(skill_id=skill_id, from_version=a, to_version=b, entries=entries)
