"""The task contract.

A ``Task`` is one frozen record. ``execute`` is the only required operation;
every other capability (undo, runtime skip predicates, dynamic routing,
lifecycle hooks) is an optional callable field, and the engine checks for its
presence instead of relying on subclasses.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from firefly.core.errors import FireflyError, failed_error
from firefly.core.result import Err, Ok, Result

from .context import ExecutionContext

__all__ = [
    "ErrorHook",
    "ExecuteFn",
    "Hook",
    "NextTasksFn",
    "ShouldExecuteFn",
    "ShouldSkipFn",
    "SkipCondition",
    "Task",
    "UndoFn",
    "call_guarded",
]


@dataclass(frozen=True, slots=True)
class SkipCondition:
    """Outcome of a runtime skip predicate.

    ``skip_to_tasks`` names the tasks to route to when the task is skipped;
    when empty, routing falls back to the task's structural dependents.
    """

    should_skip: bool
    reason: str | None = None
    skip_to_tasks: tuple[str, ...] = ()

    @classmethod
    def run(cls) -> SkipCondition:
        return cls(should_skip=False)

    @classmethod
    def skip(cls, reason: str | None = None, skip_to: Iterable[str] = ()) -> SkipCondition:
        return cls(should_skip=True, reason=reason, skip_to_tasks=tuple(skip_to))


type ExecuteFn = Callable[[ExecutionContext], Result[ExecutionContext, FireflyError]]
type UndoFn = Callable[[ExecutionContext], Result[None, FireflyError]]
type ShouldExecuteFn = Callable[[ExecutionContext], Result[bool, FireflyError]]
type ShouldSkipFn = Callable[[ExecutionContext], Result[SkipCondition, FireflyError]]
type NextTasksFn = Callable[[ExecutionContext], Result[list[str], FireflyError]]
type Hook = Callable[[ExecutionContext], Result[None, FireflyError]]
type ErrorHook = Callable[[FireflyError, ExecutionContext], Result[None, FireflyError]]


def call_guarded[T](
    fn: Callable[..., Result[T, FireflyError]], where: str, *args: object
) -> Result[T, FireflyError]:
    """Call task-supplied code, turning an escaped exception into a ``failed`` error.

    A return value that is neither Ok nor Err is a failure too.
    """
    try:
        result = fn(*args)
    except Exception as exc:  # noqa: BLE001
        return Err(failed_error(f"{where} raised {type(exc).__name__}: {exc}", source="task"))
    if not isinstance(result, Ok | Err):
        return Err(
            failed_error(
                f"{where} returned {type(result).__name__}, expected Result", source="task"
            )
        )
    return result


@dataclass(frozen=True, slots=True)
class Task:
    """A dependency-aware unit of work.

    Attributes:
        id: Unique id within a run.
        execute: Consumes a context, returns the context to thread forward.
        name: Display name (defaults to ``id``).
        description: Shown in graph output; missing ones produce a warning.
        dependencies: Task ids that must be executed or skipped first.
        required_features: Feature names that must all be enabled.
        entry_point: When False, a dependency-free task is only reached
            through dynamic routing, never seeded at start.
        undo: Reverses ``execute``'s side effects.
        can_undo: Overrides whether ``undo`` may be called right now.
        should_execute: Returning Ok(False) skips the task.
        should_skip: Returning a skipping condition skips the task, optionally
            routing to ``skip_to_tasks``.
        get_next_tasks: Successor ids chosen at runtime; a non-empty list
            replaces structural fan-out.
        is_enabled: Custom feature gate over the enabled feature names.
    """

    id: str
    execute: ExecuteFn
    name: str = ""
    description: str | None = None
    dependencies: tuple[str, ...] = ()
    required_features: tuple[str, ...] = ()
    entry_point: bool = True

    undo: UndoFn | None = field(default=None, repr=False)
    can_undo: Callable[[], bool] | None = field(default=None, repr=False)
    should_execute: ShouldExecuteFn | None = field(default=None, repr=False)
    should_skip: ShouldSkipFn | None = field(default=None, repr=False)
    get_next_tasks: NextTasksFn | None = field(default=None, repr=False)
    is_enabled: Callable[[frozenset[str]], bool] | None = field(default=None, repr=False)

    before_execute: Hook | None = field(default=None, repr=False)
    after_execute: Hook | None = field(default=None, repr=False)
    on_error: ErrorHook | None = field(default=None, repr=False)
    before_rollback: Hook | None = field(default=None, repr=False)
    after_rollback: Hook | None = field(default=None, repr=False)
    on_rollback_error: ErrorHook | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", self.id)
        if not isinstance(self.dependencies, tuple):
            object.__setattr__(self, "dependencies", tuple(self.dependencies))
        if not isinstance(self.required_features, tuple):
            object.__setattr__(self, "required_features", tuple(self.required_features))

    def supports_undo(self) -> Result[bool, FireflyError]:
        """Err when ``can_undo`` raises."""
        if self.undo is None:
            return Ok(False)
        can_undo = self.can_undo
        if can_undo is None:
            return Ok(True)
        return call_guarded(lambda: Ok(bool(can_undo())), f"{self.id}.can_undo")

    def features_satisfied(self, enabled: frozenset[str]) -> Result[bool, FireflyError]:
        """Err when the custom ``is_enabled`` gate raises."""
        if not all(f in enabled for f in self.required_features):
            return Ok(False)
        is_enabled = self.is_enabled
        if is_enabled is None:
            return Ok(True)
        return call_guarded(lambda: Ok(bool(is_enabled(enabled))), f"{self.id}.is_enabled")

    def missing_features(self, enabled: frozenset[str]) -> tuple[str, ...]:
        return tuple(f for f in self.required_features if f not in enabled)
