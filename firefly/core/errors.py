"""Error payloads and CLI exit codes.

``FireflyError`` is the single error shape that flows through every Result in
the engine. Its ``kind`` is one of a small, stable taxonomy so callers can
branch without importing implementation details:

- validation: malformed options, duplicate ids, missing dependencies, cycles,
  invalid feature names or flag rules
- not_found: absent context key, unknown service, missing compensation
- conflict: feature flag conflicts, duplicate registration
- failed: a task's execute/undo reported failure
- invalid: an operation the target does not support (undo on a task without one)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Literal

__all__ = [
    "ErrorCode",
    "ErrorKind",
    "FireflyError",
    "conflict_error",
    "exit_code_for",
    "failed_error",
    "invalid_error",
    "not_found_error",
    "validation_error",
    "with_context",
]

ErrorKind = Literal["validation", "not_found", "conflict", "failed", "invalid"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable.
    - 0: Success
    - 1: User error (bad input, invalid task set or options)
    - 2: Environment error (missing config, missing producer module)
    - 3: Workflow error (a task failed)
    - 4: Rollback error (a task failed and rollback did not complete)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    WORKFLOW_ERROR = 3
    ROLLBACK_ERROR = 4

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK

    @property
    def is_error(self) -> bool:
        return self != ErrorCode.OK


@dataclass(frozen=True, slots=True)
class FireflyError:
    """Canonical error payload.

    Attributes:
        kind: Error category (see module docstring).
        message: Human readable description.
        details: Individual problems when several were collected at once.
        source: Component that produced the error.
        hint: Optional remediation text for the user.
        cause: Underlying error this one wraps, if any.
    """

    kind: ErrorKind
    message: str
    details: tuple[str, ...] = ()
    source: str | None = None
    hint: str | None = None
    cause: FireflyError | None = None

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message

    def __str__(self) -> str:
        return f"[{self.kind}] {self.message}"


def validation_error(
    message: str, *, details: tuple[str, ...] = (), source: str | None = None
) -> FireflyError:
    return FireflyError(kind="validation", message=message, details=details, source=source)


def not_found_error(message: str, *, source: str | None = None) -> FireflyError:
    return FireflyError(kind="not_found", message=message, source=source)


def conflict_error(message: str, *, source: str | None = None) -> FireflyError:
    return FireflyError(kind="conflict", message=message, source=source)


def failed_error(
    message: str, *, source: str | None = None, hint: str | None = None
) -> FireflyError:
    return FireflyError(kind="failed", message=message, source=source, hint=hint)


def invalid_error(message: str, *, source: str | None = None) -> FireflyError:
    return FireflyError(kind="invalid", message=message, source=source)


def with_context(error: FireflyError, message: str) -> FireflyError:
    """Prefix an error message, keeping kind and details.

    The original error is kept as ``cause`` so nothing is lost.

    Example:
        with_context(failed_error("exit 128"), "Task execution failed: push")
        # message == "Task execution failed: push: exit 128"
    """
    return replace(error, message=f"{message}: {error.message}", cause=error)


def exit_code_for(error: FireflyError) -> int:
    """Map an error kind to a process exit code."""
    match error.kind:
        case "validation" | "conflict" | "invalid":
            return int(ErrorCode.USER_ERROR)
        case "not_found":
            return int(ErrorCode.ENV_ERROR)
        case "failed":
            return int(ErrorCode.WORKFLOW_ERROR)
