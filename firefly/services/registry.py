"""Default service definitions: ``fs``, ``git`` and ``gh``."""

from __future__ import annotations

from firefly.core.errors import FireflyError, failed_error
from firefly.core.result import Err, Ok, Result
from firefly.orchestration.services import ServiceDefinition, ServiceFactoryContext

from .filesystem import FileSystemService
from .gh import GitHubReleaseService
from .git import GitService

__all__ = ["default_service_definitions"]


def _fs(ctx: ServiceFactoryContext) -> Result[object, FireflyError]:
    if not ctx.base_path.is_dir():
        return Err(failed_error(f"Base path is not a directory: {ctx.base_path}", source="fs"))
    return Ok(FileSystemService(ctx.base_path))


def _git(ctx: ServiceFactoryContext) -> Result[object, FireflyError]:
    git = GitService(ctx.base_path)
    if not git.is_repository():
        return Err(
            failed_error(
                f"Not a git repository: {ctx.base_path}",
                source="git",
                hint="Run firefly from the repository root or set engine.base_path",
            )
        )
    return Ok(git)


def _gh(ctx: ServiceFactoryContext) -> Result[object, FireflyError]:
    if not GitHubReleaseService.available():
        return Err(
            failed_error(
                "GitHub CLI (gh) not found", source="gh", hint="Install it from https://cli.github.com"
            )
        )
    git = ctx.get_service("git")
    if isinstance(git, Err):
        return git
    assert isinstance(git.value, GitService)
    return Ok(GitHubReleaseService(git.value))


def default_service_definitions() -> dict[str, ServiceDefinition]:
    return {
        "fs": ServiceDefinition(_fs, description="Project files (atomic writes, backups)"),
        "git": ServiceDefinition(_git, description="Git repository operations"),
        "gh": ServiceDefinition(_gh, dependencies=("git",), description="GitHub releases"),
    }
