"""Tests for firefly.platform.files module."""

from __future__ import annotations

from pathlib import Path

from firefly.platform.files import atomic_write_text


def test_writes_new_file_and_parents(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "dir" / "CHANGELOG.md"
    atomic_write_text(target, "## 1.0.0\n")
    assert target.read_text(encoding="utf-8") == "## 1.0.0\n"


def test_replaces_existing_content(tmp_path: Path) -> None:
    target = tmp_path / "VERSION"
    target.write_text("1.0.0", encoding="utf-8")
    atomic_write_text(target, "1.1.0")
    assert target.read_text(encoding="utf-8") == "1.1.0"


def test_leaves_no_temp_files(tmp_path: Path) -> None:
    atomic_write_text(tmp_path / "a.txt", "x")
    assert sorted(p.name for p in tmp_path.iterdir()) == ["a.txt"]


def test_preserves_newlines(tmp_path: Path) -> None:
    target = tmp_path / "crlf.txt"
    atomic_write_text(target, "a\r\nb\n")
    assert target.read_bytes() == b"a\r\nb\n"
