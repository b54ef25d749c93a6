"""Git operations used by release tasks.

Every command goes through ``firefly.platform.process.run`` with a deadline
(longer for network commands) and comes back as a Result carrying a
``FireflyError`` of kind ``failed``.

Usage:
    git = GitService(Path("."))
    match git.status():
        case Ok(status):
            print(status.branch, status.is_clean)
        case Err(e):
            print(e.message)
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path

from firefly.core.errors import FireflyError, failed_error
from firefly.core.result import Err, Ok, Result
from firefly.platform.process import run as run_process

__all__ = ["GitService", "GitStatus", "StatusEntry"]

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0
_NETWORK_COMMANDS = frozenset({"fetch", "pull", "push", "clone"})


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """One ``git status --porcelain`` line: two-letter code and path."""

    xy: str
    path: str

    @property
    def is_untracked(self) -> bool:
        return self.xy == "??"

    @property
    def is_staged(self) -> bool:
        return not self.is_untracked and self.xy[0] != " "


@dataclass(frozen=True, slots=True)
class GitStatus:
    branch: str
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    entries: tuple[StatusEntry, ...] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return not self.entries

    @property
    def staged(self) -> list[StatusEntry]:
        return [e for e in self.entries if e.is_staged]


class GitService:
    def __init__(self, path: Path) -> None:
        self.path = path

    def is_repository(self) -> bool:
        return (self.path / ".git").exists()

    def status(self) -> Result[GitStatus, FireflyError]:
        result = self._git("status", "--porcelain=v1", "-b")
        if isinstance(result, Err):
            return result
        return Ok(_parse_status(result.value))

    def current_branch(self) -> Result[str, FireflyError]:
        result = self._git("rev-parse", "--abbrev-ref", "HEAD")
        if isinstance(result, Err):
            return result
        branch = result.value.strip()
        if branch == "HEAD":
            return Err(failed_error("HEAD is detached", source="git"))
        return Ok(branch)

    def add(self, *paths: str) -> Result[None, FireflyError]:
        result = self._git("add", "--", *(paths or (".",)))
        return result.map(lambda _: None)

    def commit(self, message: str) -> Result[str, FireflyError]:
        """Commit staged changes; returns the new commit hash."""
        result = self._git("commit", "-m", message)
        if isinstance(result, Err):
            return result
        head = self._git("rev-parse", "HEAD")
        return head.map(str.strip)

    def tag(self, name: str, message: str | None = None) -> Result[None, FireflyError]:
        args = ["tag", "-a", name, "-m", message] if message else ["tag", name]
        return self._git(*args).map(lambda _: None)

    def delete_tag(self, name: str) -> Result[None, FireflyError]:
        return self._git("tag", "-d", name).map(lambda _: None)

    def has_tag(self, name: str) -> bool:
        return isinstance(self._git("rev-parse", "--verify", "--quiet", f"refs/tags/{name}"), Ok)

    def reset_soft(self, ref: str = "HEAD~1") -> Result[None, FireflyError]:
        return self._git("reset", "--soft", ref).map(lambda _: None)

    def push(
        self, remote: str = "origin", ref: str | None = None, *, tags: bool = False
    ) -> Result[None, FireflyError]:
        args = ["push", remote]
        if ref:
            args.append(ref)
        if tags:
            args.append("--follow-tags")
        return self._git(*args).map(lambda _: None)

    def delete_remote_tag(self, name: str, remote: str = "origin") -> Result[None, FireflyError]:
        return self._git("push", remote, f":refs/tags/{name}").map(lambda _: None)

    def _git(self, *args: str) -> Result[str, FireflyError]:
        command = args[0] if args else ""
        timeout = (
            _GIT_NETWORK_TIMEOUT_SECONDS if command in _NETWORK_COMMANDS else _GIT_TIMEOUT_SECONDS
        )
        result = run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)
        if isinstance(result, Err):
            e = result.error
            return Err(failed_error(f"git {command} failed: {e.detail()}", source="git"))
        return Ok(result.value)


def _parse_status(output: str) -> GitStatus:
    lines = [ln for ln in output.splitlines() if ln.strip()]
    if not lines:
        return GitStatus(branch="")

    head = lines[0].strip()
    if head.startswith("##"):
        head = head[2:].lstrip()
    branch_part = head.split(" [", 1)[0].strip()
    if "..." in branch_part:
        branch, upstream = (s.strip() for s in branch_part.split("...", 1))
    else:
        branch, upstream = branch_part, None

    ahead = behind = 0
    bracket = re.search(r"\[([^\]]+)\]", head)
    if bracket:
        if m := re.search(r"ahead\s+(\d+)", bracket.group(1)):
            ahead = int(m.group(1))
        if m := re.search(r"behind\s+(\d+)", bracket.group(1)):
            behind = int(m.group(1))

    entries = tuple(StatusEntry(xy=ln[:2], path=ln[3:]) for ln in lines[1:] if len(ln) >= 4)
    return GitStatus(branch=branch, upstream=upstream, ahead=ahead, behind=behind, entries=entries)
