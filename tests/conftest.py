"""Shared fixtures: in-memory archives and a throwaway vault."""

from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import Callable

import pytest

from skvault.config import VaultConfig
from skvault.service import SkillService
from skvault.store import VersionStore

SKILL_MD = """\
---
name: pdf-tools
description: Extract text and tables from PDF files
license: MIT
---
# PDF tools

Use scripts/extract.py for text.
"""


def build_zip(files: dict[str, str]) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return buf.getvalue()


@pytest.fixture
def make_zip() -> Callable[[dict[str, str]], bytes]:
    return build_zip


@pytest.fixture
def skill_zip() -> bytes:
    """A well-formed package wrapped in a folder named after the skill."""
    return build_zip({
        "pdf-tools/SKILL.md": SKILL_MD,
        "pdf-tools/scripts/extract.py": "print('extract')\n",
        "pdf-tools/references/FORMS.md": "# Forms\n",
    })


@pytest.fixture
def config(tmp_path: Path) -> VaultConfig:
    return VaultConfig(home=tmp_path)


@pytest.fixture
def store(config: VaultConfig) -> VersionStore:
    return VersionStore(config.database, max_tags=config.max_tags)


@pytest.fixture
def service(store: VersionStore, config: VaultConfig) -> SkillService:
    return SkillService(store, config)


@pytest.fixture
def skill_md() -> str:
    return SKILL_MD
