"""Base-path scoped file access for tasks.

Paths are given relative to the project root and may not escape it. Writes
are atomic; ``backup``/``restore`` give undo operations something to restore
from.
"""

from __future__ import annotations

import shutil
from pathlib import Path

from firefly.core.errors import FireflyError, failed_error, not_found_error, validation_error
from firefly.core.result import Err, Ok, Result
from firefly.platform.files import atomic_write_text

__all__ = ["BACKUP_SUFFIX", "FileSystemService"]

BACKUP_SUFFIX = ".firefly-backup"
_SOURCE = "fs"


class FileSystemService:
    def __init__(self, base_path: Path) -> None:
        self.base_path = base_path.resolve()

    def resolve(self, relative: str | Path) -> Result[Path, FireflyError]:
        candidate = (self.base_path / relative).resolve()
        if candidate != self.base_path and self.base_path not in candidate.parents:
            return Err(
                validation_error(f"Path escapes project root: {relative}", source=_SOURCE)
            )
        return Ok(candidate)

    def exists(self, relative: str | Path) -> bool:
        resolved = self.resolve(relative)
        return isinstance(resolved, Ok) and resolved.value.exists()

    def read_text(self, relative: str | Path) -> Result[str, FireflyError]:
        resolved = self.resolve(relative)
        if isinstance(resolved, Err):
            return resolved
        try:
            return Ok(resolved.value.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return Err(not_found_error(f"File not found: {relative}", source=_SOURCE))
        except (OSError, UnicodeDecodeError) as e:
            return Err(failed_error(f"Cannot read {relative}: {e}", source=_SOURCE))

    def write_text(self, relative: str | Path, content: str) -> Result[Path, FireflyError]:
        resolved = self.resolve(relative)
        if isinstance(resolved, Err):
            return resolved
        try:
            atomic_write_text(resolved.value, content)
        except OSError as e:
            return Err(failed_error(f"Cannot write {relative}: {e}", source=_SOURCE))
        return Ok(resolved.value)

    def backup(self, relative: str | Path) -> Result[Path, FireflyError]:
        """Copy a file next to itself with ``BACKUP_SUFFIX``."""
        resolved = self.resolve(relative)
        if isinstance(resolved, Err):
            return resolved
        source = resolved.value
        if not source.is_file():
            return Err(not_found_error(f"Nothing to back up: {relative}", source=_SOURCE))
        target = source.with_name(source.name + BACKUP_SUFFIX)
        try:
            shutil.copy2(source, target)
        except OSError as e:
            return Err(failed_error(f"Cannot back up {relative}: {e}", source=_SOURCE))
        return Ok(target)

    def restore(self, relative: str | Path) -> Result[Path, FireflyError]:
        """Move the backup made by ``backup`` back in place."""
        resolved = self.resolve(relative)
        if isinstance(resolved, Err):
            return resolved
        target = resolved.value
        backup = target.with_name(target.name + BACKUP_SUFFIX)
        if not backup.is_file():
            return Err(not_found_error(f"No backup for {relative}", source=_SOURCE))
        try:
            backup.replace(target)
        except OSError as e:
            return Err(failed_error(f"Cannot restore {relative}: {e}", source=_SOURCE))
        return Ok(target)
