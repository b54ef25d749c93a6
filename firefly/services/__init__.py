"""Collaborator services handed to tasks through the service locator."""

from .filesystem import FileSystemService
from .gh import GitHubReleaseService
from .git import GitService, GitStatus
from .registry import default_service_definitions

__all__ = [
    "FileSystemService",
    "GitHubReleaseService",
    "GitService",
    "GitStatus",
    "default_service_definitions",
]
