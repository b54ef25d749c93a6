"""Tests for firefly.services.filesystem module."""

from __future__ import annotations

from pathlib import Path

from firefly.core.result import Err, Ok
from firefly.services.filesystem import BACKUP_SUFFIX, FileSystemService


class TestResolve:
    def test_inside_root(self, tmp_path: Path) -> None:
        fs = FileSystemService(tmp_path)
        assert fs.resolve("docs/CHANGELOG.md") == Ok(tmp_path.resolve() / "docs" / "CHANGELOG.md")
        assert fs.resolve(".") == Ok(tmp_path.resolve())

    def test_escape_rejected(self, tmp_path: Path) -> None:
        result = FileSystemService(tmp_path / "repo").resolve("../secrets.txt")
        assert isinstance(result, Err)
        assert result.error.kind == "validation"

    def test_absolute_outside_rejected(self, tmp_path: Path) -> None:
        result = FileSystemService(tmp_path / "repo").resolve(tmp_path / "other")
        assert isinstance(result, Err)


class TestReadWrite:
    def test_round_trip(self, tmp_path: Path) -> None:
        fs = FileSystemService(tmp_path)
        assert isinstance(fs.write_text("VERSION", "1.2.0\n"), Ok)
        assert fs.exists("VERSION")
        assert fs.read_text("VERSION") == Ok("1.2.0\n")

    def test_read_missing(self, tmp_path: Path) -> None:
        result = FileSystemService(tmp_path).read_text("nope.txt")
        assert isinstance(result, Err)
        assert result.error.kind == "not_found"

    def test_exists_outside_root_is_false(self, tmp_path: Path) -> None:
        (tmp_path / "outside.txt").write_text("x", encoding="utf-8")
        (tmp_path / "repo").mkdir()
        assert not FileSystemService(tmp_path / "repo").exists("../outside.txt")

    def test_write_outside_root_rejected(self, tmp_path: Path) -> None:
        (tmp_path / "repo").mkdir()
        result = FileSystemService(tmp_path / "repo").write_text("../evil.txt", "x")
        assert isinstance(result, Err)
        assert not (tmp_path / "evil.txt").exists()


class TestBackupRestore:
    def test_backup_then_restore(self, tmp_path: Path) -> None:
        fs = FileSystemService(tmp_path)
        fs.write_text("package.json", '{"version": "1.0.0"}')

        backup = fs.backup("package.json")
        assert isinstance(backup, Ok)
        assert backup.value.name == "package.json" + BACKUP_SUFFIX

        fs.write_text("package.json", '{"version": "1.1.0"}')
        assert isinstance(fs.restore("package.json"), Ok)

        assert fs.read_text("package.json") == Ok('{"version": "1.0.0"}')
        assert not backup.value.exists()

    def test_backup_missing_file(self, tmp_path: Path) -> None:
        result = FileSystemService(tmp_path).backup("nope")
        assert isinstance(result, Err)
        assert result.error.kind == "not_found"

    def test_restore_without_backup(self, tmp_path: Path) -> None:
        result = FileSystemService(tmp_path).restore("package.json")
        assert isinstance(result, Err)
        assert result.error.message == "No backup for package.json"
