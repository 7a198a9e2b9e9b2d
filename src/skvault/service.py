"""SkillService — the mutation boundary in front of VersionStore.

Callers hand over who is acting and whether they are an admin; the
service checks ownership, refuses edits to released skills with a
stable message, validates any new spec, and then delegates to the
store's transactional edit.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from .archive import build_archive
from .config import VaultConfig
from .errors import AuthorizationError, ImmutableSkillError
from .ingest import ingest_archive
from .manifest import generate_skill_md
from .models import EditRequest, Skill, SkillManifest, SkillPackage
from .store import VersionStore
from .validator import ensure_valid_spec

logger = logging.getLogger("skvault.service")


class SkillService:
    """Create, edit, release, fork and export stored skills.

    Args:
        store: The backing VersionStore.
        config: Ingestion limits (defaults if omitted).
    """

    def __init__(self, store: VersionStore, config: Optional[VaultConfig] = None) -> None:
        self.store = store
        self.config = config or VaultConfig()

    @classmethod
    def from_config(cls, config: VaultConfig) -> "SkillService":
        return cls(VersionStore(config.database, max_tags=config.max_tags), config)

    # ── creation ──────────────────────────────────────────────────────

    def create_from_package(
        self, package: SkillPackage, owner_id: str, tags: Optional[list[str]] = None
    ) -> Skill:
        m = package.manifest
        return self.store.create_skill(
            name=m.name,
            description=m.description,
            spec=m.to_spec(),
            owner_id=owner_id,
            files=package.files,
            tags=tags,
        )

    def create_from_archive(
        self, data: bytes, owner_id: str, tags: Optional[list[str]] = None
    ) -> Skill:
        """Ingest an uploaded archive and store it as a new skill."""
        package = ingest_archive(data, self.config)
        return self.create_from_package(package, owner_id, tags)

    # ── edits ─────────────────────────────────────────────────────────

    def _authorize(self, skill: Skill, actor_id: str, is_admin: bool) -> None:
        if not is_admin and not skill.is_owner(actor_id):
            raise AuthorizationError()

    def edit(
        self,
        skill_id: str,
        actor_id: str,
        request: Union[EditRequest, dict[str, Any]],
        is_admin: bool = False,
    ) -> Skill:
        """Apply an edit on behalf of an owner or admin.

        Raises:
            NotFoundError: If the skill doesn't exist.
            ImmutableSkillError: If the skill is released.
            AuthorizationError: If the actor is neither owner nor admin.
            SpecValidationError: If a new spec is invalid.
        """
        if not isinstance(request, EditRequest):
            request = EditRequest.model_validate(request)

        skill = self.store.get_skill(skill_id)
        if skill.is_released:
            raise ImmutableSkillError("Cannot edit a released skill")
        self._authorize(skill, actor_id, is_admin)

        if request.provided("spec") and request.spec is not None:
            manifest = ensure_valid_spec(request.spec, self.config.max_manifest_bytes)
            request = request.model_copy(update={"spec": manifest.to_spec()})

        return self.store.apply_edit(skill_id, actor_id, request)

    def edit_from_archive(
        self,
        skill_id: str,
        actor_id: str,
        data: bytes,
        edit_message: Optional[str] = None,
        tags: Optional[list[str]] = None,
        is_admin: bool = False,
    ) -> Skill:
        """Replace a skill's spec and files with a newly uploaded package."""
        package = ingest_archive(data, self.config)
        fields: dict[str, Any] = {
            "spec": package.manifest.to_spec(),
            "files": package.files,
            "edit_message": edit_message,
        }
        if tags is not None:
            fields["tags"] = tags
        return self.edit(skill_id, actor_id, EditRequest(**fields), is_admin=is_admin)

    def release(self, skill_id: str, actor_id: str, is_admin: bool = False) -> Skill:
        skill = self.store.get_skill(skill_id)
        if skill.is_released:
            raise ImmutableSkillError("Skill is already released")
        self._authorize(skill, actor_id, is_admin)
        return self.store.release(skill_id)

    def fork(self, skill_id: str, actor_id: str) -> Skill:
        return self.store.fork_skill(skill_id, actor_id)

    # ── export ────────────────────────────────────────────────────────

    def export_skill_md(self, skill_id: str) -> str:
        """Current manifest as SKILL.md text."""
        return generate_skill_md(self.store.get_skill(skill_id).spec)

    def export_archive(self, skill_id: str) -> tuple[str, bytes]:
        """Current skill as ``(<name>.zip, bytes)``."""
        skill = self.store.get_skill(skill_id)
        manifest = SkillManifest.model_validate(skill.spec)
        logger.info("Exporting skill %s as %s.zip", skill_id, manifest.name)
        return f"{manifest.name}.zip", build_archive(manifest, skill.files)
