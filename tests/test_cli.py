"""Tests for the skvault CLI commands."""

from __future__ import annotations

import zipfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from skvault.cli import main
from skvault.config import load_config
from skvault.service import SkillService


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def home(tmp_path):
    return tmp_path / ".skvault"


@pytest.fixture
def archive(tmp_path, skill_zip) -> Path:
    path = tmp_path / "pdf-tools.zip"
    path.write_bytes(skill_zip)
    return path


def _service(home: Path) -> SkillService:
    return SkillService.from_config(load_config(home))


def _import(runner, home, archive, *extra) -> str:
    result = runner.invoke(
        main, ["import", str(archive), "--owner", "alice", *extra],
        env={"SKVAULT_HOME": str(home)},
    )
    assert result.exit_code == 0, result.output
    [skill] = _service(home).store.list_skills()
    return skill.id


class TestValidateCommand:
    def test_valid_archive(self, runner, home, archive):
        result = runner.invoke(main, ["validate", str(archive)], env={"SKVAULT_HOME": str(home)})
        assert result.exit_code == 0
        assert "Valid" in result.output
        assert "pdf-tools" in result.output
        assert "scripts/extract.py" in result.output

    def test_bad_directory_strict(self, runner, home, tmp_path, make_zip, skill_md):
        path = tmp_path / "bad.zip"
        path.write_bytes(make_zip({"SKILL.md": skill_md, "baddir/file.txt": "x"}))
        result = runner.invoke(main, ["validate", str(path)], env={"SKVAULT_HOME": str(home)})
        assert result.exit_code == 1
        assert "baddir" in result.output

    def test_bad_directory_warn_only(self, runner, home, tmp_path, make_zip, skill_md):
        path = tmp_path / "bad.zip"
        path.write_bytes(make_zip({"SKILL.md": skill_md, "baddir/file.txt": "x"}))
        result = runner.invoke(
            main, ["validate", str(path), "--warn-only"], env={"SKVAULT_HOME": str(home)}
        )
        assert result.exit_code == 0
        assert "Warning" in result.output

    def test_not_an_archive(self, runner, home, tmp_path):
        path = tmp_path / "junk.zip"
        path.write_bytes(b"nope")
        result = runner.invoke(main, ["validate", str(path)], env={"SKVAULT_HOME": str(home)})
        assert result.exit_code == 1
        assert "invalid_archive" in result.output


class TestImportAndList:
    def test_import(self, runner, home, archive):
        skill_id = _import(runner, home, archive, "--tag", "pdf")
        skill = _service(home).store.get_skill(skill_id)
        assert skill.owners == ["alice"]
        assert [t.name for t in skill.tags] == ["pdf"]

    def test_list(self, runner, home, archive):
        _import(runner, home, archive)
        result = runner.invoke(main, ["list"], env={"SKVAULT_HOME": str(home)})
        assert result.exit_code == 0
        assert "pdf-tools" in result.output

    def test_list_empty(self, runner, home):
        result = runner.invoke(main, ["list"], env={"SKVAULT_HOME": str(home)})
        assert result.exit_code == 0
        assert "No skills stored" in result.output


class TestEditCommands:
    def test_edit_creates_version(self, runner, home, archive):
        skill_id = _import(runner, home, archive)
        result = runner.invoke(
            main,
            ["edit", skill_id, "--actor", "alice", "--description", "Sharper", "-m", "wording"],
            env={"SKVAULT_HOME": str(home)},
        )
        assert result.exit_code == 0, result.output
        assert "v2" in result.output

        snap = _service(home).store.get_version(skill_id, 1)
        assert snap.message == "wording"

    def test_edit_with_archive(self, runner, home, archive, tmp_path, make_zip):
        skill_id = _import(runner, home, archive)
        new = tmp_path / "new.zip"
        new.write_bytes(make_zip({"SKILL.md": "---\nname: pdf-tools\ndescription: v2\n---\n"}))
        result = runner.invoke(
            main,
            ["edit", skill_id, "--actor", "alice", "--archive", str(new)],
            env={"SKVAULT_HOME": str(home)},
        )
        assert result.exit_code == 0, result.output
        skill = _service(home).store.get_skill(skill_id)
        assert skill.spec["description"] == "v2"
        assert [f.path for f in skill.files] == ["SKILL.md"]

    def test_edit_forbidden(self, runner, home, archive):
        skill_id = _import(runner, home, archive)
        result = runner.invoke(
            main, ["edit", skill_id, "--actor", "mallory", "--name", "x"],
            env={"SKVAULT_HOME": str(home)},
        )
        assert result.exit_code == 1
        assert "forbidden" in result.output

    def test_edit_after_release(self, runner, home, archive):
        skill_id = _import(runner, home, archive)
        result = runner.invoke(
            main, ["release", skill_id, "--actor", "alice"], env={"SKVAULT_HOME": str(home)}
        )
        assert result.exit_code == 0
        assert "Released" in result.output

        result = runner.invoke(
            main, ["edit", skill_id, "--actor", "alice", "--name", "x"],
            env={"SKVAULT_HOME": str(home)},
        )
        assert result.exit_code == 1
        assert "Cannot edit a released skill" in result.output

    def test_fork(self, runner, home, archive):
        skill_id = _import(runner, home, archive)
        runner.invoke(main, ["release", skill_id, "--actor", "alice"], env={"SKVAULT_HOME": str(home)})
        result = runner.invoke(
            main, ["fork", skill_id, "--actor", "bob"], env={"SKVAULT_HOME": str(home)}
        )
        assert result.exit_code == 0
        assert "pdf-tools-fork" in result.output


@pytest.fixture
def edited_id(runner, home, archive, make_zip) -> str:
    """A stored skill with one snapshot (v1) and a rewritten live v2."""
    skill_id = _import(runner, home, archive)
    _service(home).edit_from_archive(
        skill_id,
        "alice",
        make_zip({
            "SKILL.md": "---\nname: pdf-tools\ndescription: v2\n---\n",
            "scripts/extract.py": "new\n",
        }),
        edit_message="rewrite",
    )
    return skill_id


class TestHistoryCommands:
    def test_history(self, runner, home, edited_id):
        skill_id = edited_id
        result = runner.invoke(main, ["history", skill_id], env={"SKVAULT_HOME": str(home)})
        assert result.exit_code == 0
        assert "v1" in result.output
        assert "rewrite" in result.output

    def test_history_unknown_skill(self, runner, home):
        result = runner.invoke(main, ["history", "missing"], env={"SKVAULT_HOME": str(home)})
        assert result.exit_code == 1
        assert "not_found" in result.output

    def test_show(self, runner, home, edited_id):
        skill_id = edited_id
        result = runner.invoke(main, ["show", skill_id, "1"], env={"SKVAULT_HOME": str(home)})
        assert result.exit_code == 0
        assert "name: pdf-tools" in result.output
        assert "references/FORMS.md" in result.output

    def test_show_out_of_range(self, runner, home, edited_id):
        skill_id = edited_id
        result = runner.invoke(main, ["show", skill_id, "99"], env={"SKVAULT_HOME": str(home)})
        assert result.exit_code == 1

    def test_diff(self, runner, home, edited_id):
        skill_id = edited_id
        result = runner.invoke(
            main, ["diff", skill_id, "1", "2", "--patch"], env={"SKVAULT_HOME": str(home)}
        )
        assert result.exit_code == 0, result.output
        assert "removed" in result.output
        assert "modified" in result.output
        assert "+new" in result.output


class TestExportCommand:
    def test_export_zip(self, runner, home, archive, tmp_path):
        skill_id = _import(runner, home, archive)
        out = tmp_path / "out"
        result = runner.invoke(
            main, ["export", skill_id, "-o", str(out)], env={"SKVAULT_HOME": str(home)}
        )
        assert result.exit_code == 0
        with zipfile.ZipFile(out / "pdf-tools.zip") as zf:
            assert "pdf-tools/SKILL.md" in zf.namelist()

    def test_export_md(self, runner, home, archive):
        skill_id = _import(runner, home, archive)
        result = runner.invoke(
            main, ["export", skill_id, "--md"], env={"SKVAULT_HOME": str(home)}
        )
        assert result.exit_code == 0
        assert result.output.startswith("---\nname: pdf-tools\n")
