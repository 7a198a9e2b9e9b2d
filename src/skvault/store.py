"""SKVault VersionStore — SQLite-backed skills with append-only history.

Every edit runs as one transaction:

    1. load the live skill row (NotFound / released checks)
    2. snapshot its current spec + files as SkillVersion N (N = live version)
    3. apply the changed fields and bump the live version to N + 1
    4. replace the tag set wholesale if tags were given

Writers take SQLite's write lock up front (``BEGIN IMMEDIATE``) so
concurrent edits to the same skill serialize and version numbers are
never reused or skipped. Readers run inside a deferred transaction, so a
multi-statement read sees one committed state, never part of an edit.

Database Schema:
- skills, skill_versions (PK skill_id+version), skill_owners, tags, skill_tags
- JSON text columns for spec and files
- ISO-8601 UTC timestamps
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from .errors import ImmutableSkillError, NotFoundError, NotReleasedError
from .models import (
    EditRequest,
    FileEntry,
    Skill,
    SkillStatus,
    SkillVersion,
    Tag,
    VersionSummary,
)

logger = logging.getLogger("skvault.store")

DEFAULT_MAX_TAGS = 10

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS skills (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'TEMPLATE',  -- TEMPLATE | RELEASED
    version INTEGER NOT NULL DEFAULT 1 CHECK (version >= 1),
    spec_json TEXT NOT NULL,
    files_json TEXT,
    forked_from_id TEXT REFERENCES skills(id) ON DELETE SET NULL,
    fork_count INTEGER NOT NULL DEFAULT 0,
    released_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS skill_versions (
    skill_id TEXT NOT NULL REFERENCES skills(id) ON DELETE CASCADE,
    version INTEGER NOT NULL CHECK (version >= 1),
    spec_json TEXT NOT NULL,
    files_json TEXT,
    edited_by TEXT NOT NULL,
    message TEXT,
    created_at TEXT NOT NULL,
    PRIMARY KEY (skill_id, version)
);

CREATE TRIGGER IF NOT EXISTS skill_versions_immutable
BEFORE UPDATE ON skill_versions
BEGIN
    SELECT RAISE(ABORT, 'skill versions are immutable');
END;

CREATE TABLE IF NOT EXISTS skill_owners (
    skill_id TEXT NOT NULL REFERENCES skills(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    assigned_at TEXT NOT NULL,
    PRIMARY KEY (skill_id, user_id)
);

CREATE TABLE IF NOT EXISTS tags (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL UNIQUE,
    is_system INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS skill_tags (
    skill_id TEXT NOT NULL REFERENCES skills(id) ON DELETE CASCADE,
    tag_id TEXT NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    position INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (skill_id, tag_id)
);

CREATE INDEX IF NOT EXISTS idx_skills_status ON skills(status);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dump_files(files: Optional[list[Union[FileEntry, dict]]]) -> Optional[str]:
    if files is None:
        return None
    rows = [f.model_dump() if isinstance(f, FileEntry) else dict(f) for f in files]
    return json.dumps(rows, ensure_ascii=False)


def _load_files(raw: Optional[str]) -> Optional[list[FileEntry]]:
    if raw is None:
        return None
    return [FileEntry.model_validate(f) for f in json.loads(raw)]


class VersionStore:
    """Transactional skill store.

    This class enforces data invariants only. Callers must have
    authorized the actor (owner or admin) before calling a mutator.

    Args:
        db_path: SQLite database file.
        max_tags: Cap on tags kept per skill.
    """

    def __init__(self, db_path: Union[str, Path], max_tags: int = DEFAULT_MAX_TAGS) -> None:
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.max_tags = max_tags
        self.init_db()

    # ── connections ───────────────────────────────────────────────────

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are opened explicitly below
        conn = sqlite3.connect(str(self.db_path), timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        conn.execute("PRAGMA busy_timeout=30000")
        return conn

    def init_db(self) -> None:
        """Create the schema and switch the database to WAL mode."""
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            logger.error("Failed to initialize database: %s", e)
            raise
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """One atomic unit: commit on success, roll back on any exception."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        """Read transaction: every statement sees the same WAL snapshot."""
        conn = self._connect()
        try:
            conn.execute("BEGIN")
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    # ── mutations ─────────────────────────────────────────────────────

    def create_skill(
        self,
        name: str,
        description: str,
        spec: dict[str, Any],
        owner_id: str,
        files: Optional[list[Union[FileEntry, dict]]] = None,
        tags: Optional[list[str]] = None,
    ) -> Skill:
        """Create a TEMPLATE skill at version 1 with its first owner.

        Returns:
            Skill: The new live record.
        """
        skill_id = uuid.uuid4().hex
        now = _now()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO skills (
                    id, name, description, status, version,
                    spec_json, files_json, created_at, updated_at
                ) VALUES (?, ?, ?, ?, 1, ?, ?, ?, ?)
                """,
                (
                    skill_id,
                    name,
                    description,
                    SkillStatus.TEMPLATE.value,
                    json.dumps(spec, ensure_ascii=False),
                    _dump_files(files),
                    now,
                    now,
                ),
            )
            conn.execute(
                "INSERT INTO skill_owners (skill_id, user_id, assigned_at) VALUES (?, ?, ?)",
                (skill_id, owner_id, now),
            )
            if tags:
                self._replace_tags(conn, skill_id, tags)
            skill = self._load_skill(conn, skill_id)

        logger.info("Created skill %s (%s)", skill_id, name)
        return skill

    def apply_edit(
        self,
        skill_id: str,
        actor_id: str,
        changes: Union[EditRequest, dict[str, Any]],
        edit_message: Optional[str] = None,
    ) -> Skill:
        """Snapshot the current state, then apply ``changes``, atomically.

        Only fields present in ``changes`` are written; omitted fields
        keep their value. ``tags``, when present, replaces the tag set.

        Args:
            skill_id: Skill to edit.
            actor_id: Editor recorded on the snapshot.
            changes: Fields to change.
            edit_message: Optional note stored on the snapshot.

        Returns:
            Skill: The updated live record.

        Raises:
            NotFoundError: If the skill doesn't exist.
            ImmutableSkillError: If the skill is released.
        """
        if not isinstance(changes, EditRequest):
            changes = EditRequest.model_validate(changes)
        message = edit_message if edit_message is not None else changes.edit_message
        now = _now()

        with self._transaction() as conn:
            row = self._skill_row(conn, skill_id)
            if row["status"] == SkillStatus.RELEASED.value:
                raise ImmutableSkillError()

            conn.execute(
                """
                INSERT INTO skill_versions (
                    skill_id, version, spec_json, files_json,
                    edited_by, message, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    skill_id,
                    row["version"],
                    row["spec_json"],
                    row["files_json"],
                    actor_id,
                    message,
                    now,
                ),
            )
            self._update_live(conn, skill_id, changes, now)
            if changes.provided("tags") and changes.tags is not None:
                conn.execute("DELETE FROM skill_tags WHERE skill_id = ?", (skill_id,))
                self._replace_tags(conn, skill_id, changes.tags)
            skill = self._load_skill(conn, skill_id)

        logger.info(
            "Skill %s edited by %s: v%d snapshotted, now v%d",
            skill_id, actor_id, row["version"], skill.version,
        )
        return skill

    def _update_live(
        self, conn: sqlite3.Connection, skill_id: str, changes: EditRequest, now: str
    ) -> None:
        assignments = ["version = version + 1", "updated_at = ?"]
        params: list[Any] = [now]
        if changes.provided("name") and changes.name is not None:
            assignments.append("name = ?")
            params.append(changes.name)
        if changes.provided("description") and changes.description is not None:
            assignments.append("description = ?")
            params.append(changes.description)
        if changes.provided("spec") and changes.spec is not None:
            assignments.append("spec_json = ?")
            params.append(json.dumps(changes.spec, ensure_ascii=False))
        if changes.provided("files"):
            assignments.append("files_json = ?")
            params.append(_dump_files(changes.files))
        params.append(skill_id)
        conn.execute(f"UPDATE skills SET {', '.join(assignments)} WHERE id = ?", params)

    def _replace_tags(self, conn: sqlite3.Connection, skill_id: str, identifiers: list[str]) -> None:
        """Attach tags by id or name, creating unknown names, up to max_tags.

        Existing tags keep priority over newly created ones when trimming.
        """
        wanted: list[str] = []
        for ident in identifiers:
            ident = ident.strip()
            if ident and ident not in wanted:
                wanted.append(ident)

        matched: list[str] = []
        unmatched: list[str] = []
        for ident in wanted:
            row = conn.execute(
                "SELECT id FROM tags WHERE id = ? OR name = ? ORDER BY id = ? DESC LIMIT 1",
                (ident, ident, ident),
            ).fetchone()
            if row is None:
                unmatched.append(ident)
            elif row["id"] not in matched:
                matched.append(row["id"])

        created: list[str] = []
        for name in unmatched[: max(0, self.max_tags - len(matched))]:
            tag_id = uuid.uuid4().hex
            conn.execute(
                "INSERT INTO tags (id, name, is_system) VALUES (?, ?, 0)", (tag_id, name)
            )
            created.append(tag_id)
            logger.info("Created tag %r", name)

        for position, tag_id in enumerate((matched + created)[: self.max_tags]):
            conn.execute(
                "INSERT INTO skill_tags (skill_id, tag_id, position) VALUES (?, ?, ?)",
                (skill_id, tag_id, position),
            )

    def release(self, skill_id: str) -> Skill:
        """Freeze a skill. One-way: released skills take no further edits.

        Raises:
            NotFoundError: If the skill doesn't exist.
            ImmutableSkillError: If it is already released.
        """
        now = _now()
        with self._transaction() as conn:
            row = self._skill_row(conn, skill_id)
            if row["status"] == SkillStatus.RELEASED.value:
                raise ImmutableSkillError("Skill is already released")
            conn.execute(
                "UPDATE skills SET status = ?, released_at = ?, updated_at = ? WHERE id = ?",
                (SkillStatus.RELEASED.value, now, now, skill_id),
            )
            skill = self._load_skill(conn, skill_id)

        logger.info("Released skill %s at v%d", skill_id, skill.version)
        return skill

    def fork_skill(self, skill_id: str, owner_id: str) -> Skill:
        """Copy a released skill into a new TEMPLATE skill owned by ``owner_id``.

        Raises:
            NotFoundError: If the parent doesn't exist.
            NotReleasedError: If the parent isn't released.
        """
        fork_id = uuid.uuid4().hex
        now = _now()
        with self._transaction() as conn:
            parent = self._skill_row(conn, skill_id)
            if parent["status"] != SkillStatus.RELEASED.value:
                raise NotReleasedError()
            conn.execute(
                """
                INSERT INTO skills (
                    id, name, description, status, version, spec_json, files_json,
                    forked_from_id, created_at, updated_at
                ) VALUES (?, ?, ?, ?, 1, ?, ?, ?, ?, ?)
                """,
                (
                    fork_id,
                    f"{parent['name']}-fork",
                    parent["description"],
                    SkillStatus.TEMPLATE.value,
                    parent["spec_json"],
                    parent["files_json"],
                    skill_id,
                    now,
                    now,
                ),
            )
            conn.execute(
                "UPDATE skills SET fork_count = fork_count + 1 WHERE id = ?", (skill_id,)
            )
            conn.execute(
                "INSERT INTO skill_owners (skill_id, user_id, assigned_at) VALUES (?, ?, ?)",
                (fork_id, owner_id, now),
            )
            conn.execute(
                """
                INSERT INTO skill_tags (skill_id, tag_id, position)
                SELECT ?, tag_id, position FROM skill_tags WHERE skill_id = ?
                """,
                (fork_id, skill_id),
            )
            fork = self._load_skill(conn, fork_id)

        logger.info("Forked skill %s -> %s", skill_id, fork_id)
        return fork

    # ── reads ─────────────────────────────────────────────────────────

    def get_skill(self, skill_id: str) -> Skill:
        """Current live record.

        Raises:
            NotFoundError: If the skill doesn't exist.
        """
        with self._reader() as conn:
            return self._load_skill(conn, skill_id)

    def list_skills(self, status: Optional[SkillStatus] = None) -> list[Skill]:
        """All skills, newest first, optionally filtered by status."""
        with self._reader() as conn:
            if status is None:
                rows = conn.execute("SELECT id FROM skills ORDER BY created_at DESC").fetchall()
            else:
                rows = conn.execute(
                    "SELECT id FROM skills WHERE status = ? ORDER BY created_at DESC",
                    (status.value,),
                ).fetchall()
            return [self._load_skill(conn, r["id"]) for r in rows]

    def count_versions(self, skill_id: str) -> int:
        with self._reader() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM skill_versions WHERE skill_id = ?", (skill_id,)
            ).fetchone()
            return int(row["n"])

    def list_versions(self, skill_id: str, offset: int = 0, limit: int = 20) -> list[VersionSummary]:
        """Snapshot summaries, highest version first."""
        with self._reader() as conn:
            rows = conn.execute(
                """
                SELECT version, edited_by, message, created_at
                FROM skill_versions WHERE skill_id = ?
                ORDER BY version DESC LIMIT ? OFFSET ?
                """,
                (skill_id, limit, offset),
            ).fetchall()
        return [VersionSummary.model_validate(dict(r)) for r in rows]

    def get_version(self, skill_id: str, version: int) -> SkillVersion:
        """One stored snapshot by exact version number.

        Raises:
            NotFoundError: If no such snapshot exists.
        """
        with self._reader() as conn:
            row = self._version_row(conn, skill_id, version)
        return SkillVersion(
            skill_id=row["skill_id"],
            version=row["version"],
            spec=json.loads(row["spec_json"]),
            files=_load_files(row["files_json"]),
            edited_by=row["edited_by"],
            message=row["message"],
            created_at=row["created_at"],
        )

    def files_at(self, skill_id: str, *versions: int) -> list[list[FileEntry]]:
        """Files of each requested version, read from one snapshot.

        The live version number resolves to the live record's files.

        Raises:
            NotFoundError: If the skill or any version doesn't exist.
        """
        with self._reader() as conn:
            live = self._skill_row(conn, skill_id)
            result = []
            for version in versions:
                if version == live["version"]:
                    raw = live["files_json"]
                else:
                    raw = self._version_row(conn, skill_id, version)["files_json"]
                result.append(_load_files(raw) or [])
        return result

    def list_tags(self, skill_id: str) -> list[Tag]:
        with self._reader() as conn:
            return self._tags_for(conn, skill_id)

    # ── row helpers ───────────────────────────────────────────────────

    def _skill_row(self, conn: sqlite3.Connection, skill_id: str) -> sqlite3.Row:
        row = conn.execute("SELECT * FROM skills WHERE id = ?", (skill_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"Skill not found: {skill_id}")
        return row

    def _version_row(self, conn: sqlite3.Connection, skill_id: str, version: int) -> sqlite3.Row:
        row = conn.execute(
            "SELECT * FROM skill_versions WHERE skill_id = ? AND version = ?",
            (skill_id, version),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Version not found: {skill_id} v{version}")
        return row

    def _tags_for(self, conn: sqlite3.Connection, skill_id: str) -> list[Tag]:
        rows = conn.execute(
            """
            SELECT t.id, t.name, t.is_system FROM skill_tags st
            JOIN tags t ON t.id = st.tag_id
            WHERE st.skill_id = ? ORDER BY st.position
            """,
            (skill_id,),
        ).fetchall()
        return [Tag(id=r["id"], name=r["name"], is_system=bool(r["is_system"])) for r in rows]

    def _load_skill(self, conn: sqlite3.Connection, skill_id: str) -> Skill:
        row = self._skill_row(conn, skill_id)
        owners = [
            r["user_id"]
            for r in conn.execute(
                "SELECT user_id FROM skill_owners WHERE skill_id = ? ORDER BY assigned_at",
                (skill_id,),
            ).fetchall()
        ]
        return Skill(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            status=SkillStatus(row["status"]),
            version=row["version"],
            spec=json.loads(row["spec_json"]),
            files=_load_files(row["files_json"]),
            owners=owners,
            tags=self._tags_for(conn, skill_id),
            forked_from_id=row["forked_from_id"],
            fork_count=row["fork_count"],
            released_at=row["released_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
