"""Tests for manifest validation and the directory policy."""

from __future__ import annotations

import pytest

from skvault.errors import DirectoryPolicyError, SpecValidationError
from skvault.policy import check_directories, enforce_directories
from skvault.validator import ensure_valid_spec, serialized_size, validate_spec


class TestValidateSpec:
    """Field rules are aggregated, never fail-fast."""

    def test_minimal_valid(self):
        result = validate_spec({"name": "pdf-tools", "description": "Reads PDFs"})
        assert result.valid
        assert result.errors == []
        assert result.manifest.name == "pdf-tools"

    def test_all_errors_reported(self):
        result = validate_spec({"name": "Bad--Name", "description": ""})
        assert not result.valid
        assert len(result.errors) == 2
        assert any(e.startswith("Name must be lowercase") for e in result.errors)
        assert "Description is required" in result.errors

    def test_missing_fields(self):
        result = validate_spec({})
        assert result.errors == ["Name is required", "Description is required"]

    @pytest.mark.parametrize("name", ["-lead", "trail-", "dou--ble", "UPPER", "spa ce"])
    def test_bad_names(self, name):
        assert not validate_spec({"name": name, "description": "x"}).valid

    def test_name_length(self):
        result = validate_spec({"name": "a" * 65, "description": "x"})
        assert result.errors == ["Name must be at most 64 characters"]
        assert validate_spec({"name": "a" * 64, "description": "x"}).valid

    def test_name_reports_every_failed_check(self):
        result = validate_spec({"name": "A" * 65, "description": "x"})
        [message] = result.errors
        assert "at most 64 characters" in message
        assert "lowercase alphanumeric" in message

    def test_description_length(self):
        result = validate_spec({"name": "ok", "description": "d" * 1025})
        assert result.errors == ["Description must be at most 1024 characters"]

    def test_compatibility_list_measured_joined(self):
        items = ["x" * 248, "y" * 248]  # 498 chars incl. ", "
        assert validate_spec({"name": "ok", "description": "x", "compatibility": items}).valid
        items.append("z")
        result = validate_spec({"name": "ok", "description": "x", "compatibility": items})
        assert result.errors == ["Compatibility must be at most 500 characters"]

    def test_metadata_must_be_strings(self):
        result = validate_spec({"name": "ok", "description": "x", "metadata": {"n": 1}})
        assert not result.valid
        assert "Metadata value for 'n' must be a string" in result.errors

    def test_unknown_keys_warn(self):
        result = validate_spec({"name": "ok", "description": "x", "version": "1.0"})
        assert result.valid
        assert result.warnings == ["Unknown frontmatter field: 'version'"]
        assert "version" not in result.manifest.to_spec()

    def test_non_mapping(self):
        result = validate_spec(["name"])
        assert not result.valid
        assert "mapping" in result.errors[0]

    def test_size_cap(self):
        result = validate_spec(
            {"name": "ok", "description": "x", "body": "b" * 2048}, max_bytes=1024
        )
        assert not result.valid
        assert result.errors[-1].startswith("Skill spec must be at most 1 KB (current: 3 KB)")

    def test_size_error_alongside_field_errors(self):
        result = validate_spec({"name": "", "description": "x", "body": "b" * 2048}, max_bytes=1024)
        assert result.errors[0] == "Name is required"
        assert "Skill spec must be at most" in result.errors[1]

    def test_serialized_size_counts_utf8(self):
        assert serialized_size({"a": "é"}) == len('{"a":"é"}'.encode("utf-8"))


class TestEnsureValidSpec:
    def test_joined_message(self):
        with pytest.raises(SpecValidationError) as exc_info:
            ensure_valid_spec({"name": "", "description": ""})
        err = exc_info.value
        assert err.errors == ["Name is required", "Description is required"]
        assert err.message == "Name is required; Description is required"
        assert err.to_dict() == {"error": "invalid_spec", "details": err.message}


class TestDirectoryPolicy:
    def test_standard_dirs_pass(self):
        paths = ["SKILL.md", "scripts/a.py", "references/b.md", "assets/c.txt", "README.md"]
        assert check_directories(paths) == []
        enforce_directories(paths)

    def test_one_warning_per_directory(self):
        warnings = check_directories(["SKILL.md", "baddir/a.txt", "baddir/b.txt", "other/c"])
        assert len(warnings) == 2
        assert warnings[0] == (
            'Non-standard directory "baddir". Allowed by spec: scripts/, references/, assets/'
        )
        assert '"other"' in warnings[1]

    def test_enforce_names_offender(self):
        with pytest.raises(DirectoryPolicyError, match='Unsupported directory "baddir"'):
            enforce_directories(["SKILL.md", "baddir/file.txt"])

    def test_custom_allow_list(self):
        assert check_directories(["docs/a.md"], allowed=["docs"]) == []
