"""SKVault archives — unpack uploads into file entries and pack exports.

Uploads are zip files (tarballs are accepted too). Extraction is a pure
in-memory transform: nothing is written to disk, every entry path is
checked before it is trusted as relative, and junk entries left behind
by desktop archivers are dropped.
"""

from __future__ import annotations

import io
import logging
import tarfile
import zipfile
import zlib
from typing import Iterator, Optional

from . import MANIFEST_FILENAME
from .config import DEFAULT_MAX_UPLOAD_BYTES
from .errors import EmptyArchiveError, InvalidArchiveError, SizeLimitError, UnsafePathError
from .manifest import generate_skill_md
from .models import FileEntry, SkillManifest

logger = logging.getLogger("skvault.archive")

JUNK_NAMES = {".DS_Store", "Thumbs.db", "desktop.ini"}
JUNK_PREFIX = "__MACOSX/"


def is_junk(path: str) -> bool:
    """Whether an entry is archiver noise rather than package content."""
    if path.startswith(JUNK_PREFIX):
        return True
    return any(seg.startswith("._") or seg in JUNK_NAMES for seg in path.split("/"))


def safe_relative_path(name: str) -> str:
    """Normalize an entry name to a clean relative POSIX path.

    Backslashes become slashes, empty and ``.`` segments are dropped.

    Raises:
        UnsafePathError: If the name is absolute, carries a drive letter,
            or has a ``..`` segment.
    """
    normalized = name.replace("\\", "/")
    if normalized.startswith("/") or (len(normalized) > 1 and normalized[1] == ":"):
        raise UnsafePathError(name)
    parts = [p for p in normalized.split("/") if p not in ("", ".")]
    if any(p == ".." for p in parts):
        raise UnsafePathError(name)
    return "/".join(parts)


def extract_archive(data: bytes, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> list[FileEntry]:
    """Unpack archive bytes into ``{path, content}`` entries.

    Args:
        data: Raw upload bytes (zip, or tar / tar.gz).
        max_bytes: Reject uploads larger than this before decoding.

    Returns:
        list[FileEntry]: Text entries in archive order.

    Raises:
        SizeLimitError: If ``data`` is over ``max_bytes``.
        InvalidArchiveError: If the bytes are not a readable archive.
        UnsafePathError: If any entry escapes the package root.
        EmptyArchiveError: If no file entries remain after filtering.
    """
    if len(data) > max_bytes:
        raise SizeLimitError("Archive", len(data), max_bytes)

    if zipfile.is_zipfile(io.BytesIO(data)):
        raw = list(_iter_zip(data))
    else:
        raw = list(_iter_tar(data))

    entries: list[FileEntry] = []
    skipped = 0
    for name, payload in raw:
        path = safe_relative_path(name)
        if not path or is_junk(path):
            skipped += 1
            continue
        entries.append(FileEntry(path=path, content=_decode(path, payload)))

    if skipped:
        logger.debug("Skipped %d archiver entries", skipped)
    if not entries:
        raise EmptyArchiveError()

    logger.debug("Extracted %d entries", len(entries))
    return entries


def _iter_zip(data: bytes) -> Iterator[tuple[str, bytes]]:
    try:
        with zipfile.ZipFile(io.BytesIO(data), "r") as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                # name is checked before the payload is decompressed
                safe_relative_path(info.filename)
                yield info.filename, zf.read(info)
    except (
        zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, NotImplementedError, zlib.error
    ) as exc:
        raise InvalidArchiveError("Invalid archive file", str(exc)) from exc


def _iter_tar(data: bytes) -> Iterator[tuple[str, bytes]]:
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:*") as tar:
            for member in tar.getmembers():
                if member.isdir():
                    continue
                if not member.isfile():
                    # Links and device nodes have no place in a text package
                    raise UnsafePathError(member.name)
                safe_relative_path(member.name)
                fh = tar.extractfile(member)
                yield member.name, fh.read() if fh is not None else b""
    except (tarfile.TarError, EOFError, OSError, zlib.error) as exc:
        raise InvalidArchiveError("Invalid archive file", str(exc)) from exc


def _decode(path: str, payload: bytes) -> str:
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError:
        logger.debug("Entry %s is not valid UTF-8; replacing undecodable bytes", path)
        return payload.decode("utf-8", errors="replace")


# ── Root prefix ───────────────────────────────────────────────────────


def detect_root_prefix(entries: list[FileEntry]) -> str:
    """Return the single top-level directory shared by every entry, or "".

    Only the first entry proposes a candidate; it is accepted when every
    entry lives under ``candidate/``. Mixed top levels are never stripped.
    """
    if not entries:
        return ""
    first = entries[0].path
    if "/" not in first:
        return ""
    candidate = first.split("/", 1)[0]
    prefix = candidate + "/"
    if all(e.path.startswith(prefix) for e in entries):
        return candidate
    return ""


def strip_root_prefix(entries: list[FileEntry]) -> tuple[Optional[str], list[FileEntry]]:
    """Strip the shared top-level directory, if any.

    Returns:
        tuple: (detected root name or None, entries relative to the package root).
    """
    root = detect_root_prefix(entries)
    if not root:
        return None, list(entries)

    cut = len(root) + 1
    logger.debug("Stripping root directory %r", root)
    return root, [FileEntry(path=e.path[cut:], content=e.content) for e in entries]


# ── Export ────────────────────────────────────────────────────────────


def build_archive(manifest: SkillManifest, files: Optional[list[FileEntry]] = None) -> bytes:
    """Pack a skill into a zip with one top-level folder named after it.

    SKILL.md is regenerated from ``manifest``; any stored SKILL.md entry
    is ignored in favour of it.

    Args:
        manifest: The current manifest.
        files: Supporting files relative to the package root.

    Returns:
        bytes: The zip archive.
    """
    root = manifest.name
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(f"{root}/{MANIFEST_FILENAME}", generate_skill_md(manifest))
        for entry in sorted(files or [], key=lambda e: e.path.lower()):
            if entry.path == MANIFEST_FILENAME:
                continue
            zf.writestr(f"{root}/{safe_relative_path(entry.path)}", entry.content)
    return buf.getvalue()
