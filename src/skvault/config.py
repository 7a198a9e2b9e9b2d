"""SKVault configuration.

Resolution order: ``SKVAULT_HOME`` env var (or explicit ``home``) picks the
vault directory, ``<home>/config.yaml`` overrides defaults, and anything
not set falls back to the values below.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field

from . import VAULT_HOME

logger = logging.getLogger("skvault.config")

CONFIG_FILENAME = "config.yaml"
DB_FILENAME = "vault.sqlite"

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
DEFAULT_MAX_MANIFEST_BYTES = 512 * 1024
DEFAULT_ALLOWED_DIRS = ["scripts", "references", "assets"]


def _default_home() -> Path:
    """Resolve the default vault home, respecting SKVAULT_HOME env var."""
    env = os.environ.get("SKVAULT_HOME")
    if env:
        return Path(env)
    return Path(VAULT_HOME).expanduser()


class VaultConfig(BaseModel):
    """Runtime settings for ingestion, storage and history paging."""

    home: Path = Field(default_factory=_default_home, description="Vault root directory")
    db_path: Optional[Path] = Field(default=None, description="SQLite database file")
    max_upload_bytes: int = Field(
        default=DEFAULT_MAX_UPLOAD_BYTES, gt=0, description="Archive byte cap (pre-decode)"
    )
    max_manifest_bytes: int = Field(
        default=DEFAULT_MAX_MANIFEST_BYTES, gt=0, description="Serialized manifest byte cap"
    )
    allowed_dirs: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_DIRS),
        description="Top-level directories a package may contain",
    )
    strict_directories: bool = Field(
        default=True, description="Reject non-standard directories instead of warning"
    )
    max_tags: int = Field(default=10, gt=0, description="Tags kept per skill")
    default_page_size: int = Field(default=20, gt=0)
    max_page_size: int = Field(default=100, gt=0)

    model_config = {"extra": "ignore"}

    @property
    def database(self) -> Path:
        """Effective database path."""
        return self.db_path or (self.home / DB_FILENAME)


def load_config(home: Optional[Path] = None) -> VaultConfig:
    """Build a VaultConfig from the vault home and its optional config.yaml.

    Args:
        home: Vault directory (default: SKVAULT_HOME or ~/.skvault).

    Returns:
        VaultConfig: Resolved configuration.

    Raises:
        ValueError: If config.yaml is not a YAML mapping.
    """
    root = (home or _default_home()).expanduser()
    path = root / CONFIG_FILENAME

    overrides: dict = {}
    if path.exists():
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ValueError(f"{path} must be a YAML mapping, got {type(raw).__name__}")
        overrides = raw
        logger.debug("Loaded config overrides from %s", path)

    overrides["home"] = root
    return VaultConfig.model_validate(overrides)
