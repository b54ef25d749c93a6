"""GitHub releases through the ``gh`` CLI."""

from __future__ import annotations

import shutil

from firefly.core.errors import FireflyError, failed_error, not_found_error
from firefly.core.result import Err, Ok, Result
from firefly.platform.process import run as run_process

from .git import GitService

__all__ = ["GitHubReleaseService"]

_GH_TIMEOUT_SECONDS = 2 * 60.0


class GitHubReleaseService:
    """Creates and deletes releases for the repository ``git`` points at."""

    def __init__(self, git: GitService) -> None:
        self.git = git

    @staticmethod
    def available() -> bool:
        return shutil.which("gh") is not None

    def create_release(
        self,
        tag: str,
        *,
        title: str | None = None,
        notes: str = "",
        draft: bool = False,
        prerelease: bool = False,
    ) -> Result[str, FireflyError]:
        """Create a release for ``tag``; returns the release URL."""
        if not self.git.has_tag(tag):
            return Err(not_found_error(f"Tag {tag} does not exist", source="gh"))

        args = ["release", "create", tag, "--title", title or tag, "--notes", notes]
        if draft:
            args.append("--draft")
        if prerelease:
            args.append("--prerelease")
        return self._gh(*args).map(str.strip)

    def delete_release(self, tag: str, *, cleanup_tag: bool = False) -> Result[None, FireflyError]:
        args = ["release", "delete", tag, "--yes"]
        if cleanup_tag:
            args.append("--cleanup-tag")
        return self._gh(*args).map(lambda _: None)

    def _gh(self, *args: str) -> Result[str, FireflyError]:
        result = run_process(["gh", *args], cwd=self.git.path, timeout=_GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return Err(
                failed_error(
                    f"gh {' '.join(args[:2])} failed: {result.error.detail()}",
                    source="gh",
                    hint="Run `gh auth status` to check the GitHub CLI login",
                )
            )
        return Ok(result.value)
