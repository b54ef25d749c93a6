"""Fluent construction of ``Task`` records."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Self

from firefly.core.errors import FireflyError, invalid_error
from firefly.core.result import Err, Ok, Result

from .skip import SkipPredicate, to_skip_condition, to_skip_condition_with_jump
from .task import (
    ErrorHook,
    ExecuteFn,
    Hook,
    NextTasksFn,
    ShouldExecuteFn,
    ShouldSkipFn,
    Task,
    UndoFn,
)

__all__ = ["TaskBuilder"]


class TaskBuilder:
    """Collects task parts; ``build()`` checks them and returns a Task.

    Example:
        task = (
            TaskBuilder.create("tag")
            .description("Create the release tag")
            .depends_on("commit")
            .execute(create_tag)
            .with_undo(delete_tag)
            .build()
            .unwrap()
        )
    """

    def __init__(self, task_id: str) -> None:
        self._id = task_id
        self._name: str | None = None
        self._description: str | None = None
        self._dependencies: list[str] = []
        self._features: list[str] = []
        self._entry_point = True
        self._execute: ExecuteFn | None = None
        self._undo: UndoFn | None = None
        self._can_undo: Callable[[], bool] | None = None
        self._should_skip: ShouldSkipFn | None = None
        self._should_execute: ShouldExecuteFn | None = None
        self._next_tasks: NextTasksFn | None = None
        self._hooks: dict[str, Hook | ErrorHook] = {}

    @classmethod
    def create(cls, task_id: str) -> Self:
        return cls(task_id)

    def name(self, name: str) -> Self:
        self._name = name
        return self

    def description(self, description: str) -> Self:
        self._description = description
        return self

    def depends_on(self, task_id: str) -> Self:
        self._dependencies.append(task_id)
        return self

    def depends_on_all(self, *task_ids: str) -> Self:
        self._dependencies.extend(task_ids)
        return self

    def requires_features(self, *features: str) -> Self:
        self._features.extend(features)
        return self

    def not_entry_point(self) -> Self:
        self._entry_point = False
        return self

    def skip_when(self, predicate: SkipPredicate) -> Self:
        self._should_skip = to_skip_condition(predicate, "Skip condition met")
        return self

    def skip_when_with_reason(self, predicate: SkipPredicate, reason: str) -> Self:
        self._should_skip = to_skip_condition(predicate, reason)
        return self

    def skip_when_and_jump_to(
        self, predicate: SkipPredicate, skip_to_tasks: Iterable[str], reason: str | None = None
    ) -> Self:
        self._should_skip = to_skip_condition_with_jump(predicate, skip_to_tasks, reason)
        return self

    def should_skip(self, fn: ShouldSkipFn) -> Self:
        self._should_skip = fn
        return self

    def should_execute(self, fn: ShouldExecuteFn) -> Self:
        self._should_execute = fn
        return self

    def next_tasks(self, fn: NextTasksFn) -> Self:
        self._next_tasks = fn
        return self

    def execute(self, fn: ExecuteFn) -> Self:
        self._execute = fn
        return self

    def with_undo(self, fn: UndoFn, *, can_undo: Callable[[], bool] | None = None) -> Self:
        self._undo = fn
        self._can_undo = can_undo
        return self

    def before_execute(self, hook: Hook) -> Self:
        self._hooks["before_execute"] = hook
        return self

    def after_execute(self, hook: Hook) -> Self:
        self._hooks["after_execute"] = hook
        return self

    def on_error(self, hook: ErrorHook) -> Self:
        self._hooks["on_error"] = hook
        return self

    def before_rollback(self, hook: Hook) -> Self:
        self._hooks["before_rollback"] = hook
        return self

    def after_rollback(self, hook: Hook) -> Self:
        self._hooks["after_rollback"] = hook
        return self

    def on_rollback_error(self, hook: ErrorHook) -> Self:
        self._hooks["on_rollback_error"] = hook
        return self

    def build(self) -> Result[Task, FireflyError]:
        if self._execute is None:
            return Err(
                invalid_error(
                    f'Task "{self._id}" must have an execute function', source="TaskBuilder.build"
                )
            )
        if not self._description:
            return Err(
                invalid_error(
                    f'Task "{self._id}" must have a description', source="TaskBuilder.build"
                )
            )

        return Ok(
            Task(
                id=self._id,
                execute=self._execute,
                name=self._name or self._id,
                description=self._description,
                dependencies=tuple(dict.fromkeys(self._dependencies)),
                required_features=tuple(dict.fromkeys(self._features)),
                entry_point=self._entry_point,
                undo=self._undo,
                can_undo=self._can_undo,
                should_execute=self._should_execute,
                should_skip=self._should_skip,
                get_next_tasks=self._next_tasks,
                **self._hooks,  # type: ignore[arg-type]
            )
        )
