"""Tests for the upload pipeline: archive bytes to a validated package."""

from __future__ import annotations

import pytest

from skvault.config import VaultConfig
from skvault.errors import (
    DirectoryPolicyError,
    EmptyArchiveError,
    MissingManifestError,
    NameMismatchError,
    SizeLimitError,
    SpecValidationError,
)
from skvault.ingest import ingest_archive, ingest_spec, validate_folder
from skvault.models import FileEntry


class TestIngestArchive:
    """End-to-end archive ingestion."""

    def test_wrapped_package(self, skill_zip):
        package = ingest_archive(skill_zip)
        assert package.root_dir == "pdf-tools"
        assert package.manifest.name == "pdf-tools"
        assert package.manifest.license == "MIT"
        assert package.manifest.body.startswith("# PDF tools")
        assert sorted(f.path for f in package.files) == [
            "SKILL.md",
            "references/FORMS.md",
            "scripts/extract.py",
        ]
        assert package.warnings == []

    def test_flat_package(self, make_zip, skill_md):
        package = ingest_archive(make_zip({"SKILL.md": skill_md}))
        assert package.root_dir is None
        assert package.manifest.name == "pdf-tools"
        assert [f.path for f in package.files] == ["SKILL.md"]

    def test_minimal_flat_manifest(self, make_zip):
        data = make_zip({"SKILL.md": "---\nname: my-skill\ndescription: A valid skill\n---\n"})
        package = ingest_archive(data)
        assert package.manifest.name == "my-skill"
        assert package.manifest.body is None
        assert [f.path for f in package.files] == ["SKILL.md"]

    def test_same_bytes_same_result(self, skill_zip):
        assert ingest_archive(skill_zip) == ingest_archive(skill_zip)

    def test_macos_junk_ignored(self, make_zip, skill_md):
        data = make_zip({
            "pdf-tools/SKILL.md": skill_md,
            "__MACOSX/pdf-tools/._SKILL.md": "junk",
            "pdf-tools/.DS_Store": "junk",
        })
        package = ingest_archive(data)
        assert package.root_dir == "pdf-tools"
        assert [f.path for f in package.files] == ["SKILL.md"]

    def test_folder_name_must_match(self, make_zip, skill_md):
        data = make_zip({"wrong-name/SKILL.md": skill_md})
        with pytest.raises(NameMismatchError) as exc_info:
            ingest_archive(data)
        assert "wrong-name" in exc_info.value.message
        assert "pdf-tools" in exc_info.value.message

    def test_missing_manifest(self, make_zip):
        with pytest.raises(MissingManifestError):
            ingest_archive(make_zip({"pdf-tools/README.md": "# hi"}))

    def test_invalid_spec_lists_every_problem(self, make_zip):
        data = make_zip({"SKILL.md": "---\nname: Bad_Name\ndescription: ''\n---\n"})
        with pytest.raises(SpecValidationError) as exc_info:
            ingest_archive(data)
        assert len(exc_info.value.errors) == 2
        assert "; " in exc_info.value.message

    def test_strict_rejects_unknown_directory(self, make_zip, skill_md):
        data = make_zip({"SKILL.md": skill_md, "baddir/file.txt": "x"})
        with pytest.raises(DirectoryPolicyError, match="baddir"):
            ingest_archive(data)

    def test_warn_only_reports_unknown_directory(self, make_zip, skill_md):
        data = make_zip({"SKILL.md": skill_md, "baddir/file.txt": "x"})
        package = ingest_archive(data, strict=False)
        assert len(package.warnings) == 1
        assert "baddir" in package.warnings[0]

    def test_config_controls_default_mode(self, make_zip, skill_md, tmp_path):
        cfg = VaultConfig(home=tmp_path, strict_directories=False)
        data = make_zip({"SKILL.md": skill_md, "baddir/file.txt": "x"})
        assert ingest_archive(data, cfg).warnings

    def test_upload_limit_from_config(self, skill_zip, tmp_path):
        cfg = VaultConfig(home=tmp_path, max_upload_bytes=16)
        with pytest.raises(SizeLimitError):
            ingest_archive(skill_zip, cfg)


class TestValidateFolder:
    def test_empty(self):
        with pytest.raises(EmptyArchiveError):
            validate_folder([])

    def test_entries_without_archive(self, skill_md):
        package = validate_folder([
            FileEntry(path="pdf-tools/SKILL.md", content=skill_md),
            FileEntry(path="pdf-tools/assets/logo.svg", content="<svg/>"),
        ])
        assert package.root_dir == "pdf-tools"
        assert {f.path for f in package.files} == {"SKILL.md", "assets/logo.svg"}


class TestIngestSpec:
    def test_valid(self):
        manifest = ingest_spec({"name": "ok", "description": "Fine"})
        assert manifest.name == "ok"

    def test_payload_cap(self, tmp_path):
        cfg = VaultConfig(home=tmp_path, max_manifest_bytes=1024)
        with pytest.raises(SizeLimitError, match="Payload"):
            ingest_spec({"name": "ok", "description": "x" * 2000}, cfg)

    def test_invalid(self):
        with pytest.raises(SpecValidationError, match="Name is required"):
            ingest_spec({"description": "x"})
