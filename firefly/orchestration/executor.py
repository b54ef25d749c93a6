"""Runs one task (or its undo) with lifecycle hooks."""

from __future__ import annotations

from firefly.core.errors import FireflyError, invalid_error, with_context
from firefly.core.result import Err, Ok, Result
from firefly.output.console import ConsoleProtocol, NullConsole

from .context import ExecutionContext
from .task import ErrorHook, Hook, Task, call_guarded

__all__ = ["TaskExecutor", "call_guarded"]


class TaskExecutor:
    """Call order: ``before_execute``, ``execute``, ``after_execute``.

    Any failure along the way is passed to ``on_error`` and returned as Err
    prefixed with the task name. An exception escaping task code becomes a
    ``failed`` error so the caller can still roll back.
    """

    def __init__(self, console: ConsoleProtocol | None = None) -> None:
        self._console = console or NullConsole()

    def execute_task(
        self, task: Task, ctx: ExecutionContext
    ) -> Result[ExecutionContext, FireflyError]:
        self._console.debug(f"TaskExecutor: executing {task.id}")

        before = self._hook(task.before_execute, f"{task.id}.before_execute", ctx)
        if isinstance(before, Err):
            return self._fail(task, before.error, ctx)

        result = call_guarded(task.execute, f"{task.id}.execute", ctx)
        if isinstance(result, Err):
            return self._fail(task, result.error, ctx)
        next_ctx = result.value

        after = self._hook(task.after_execute, f"{task.id}.after_execute", next_ctx)
        if isinstance(after, Err):
            return self._fail(task, after.error, next_ctx)

        self._console.debug(f"TaskExecutor: {task.id} succeeded")
        return Ok(next_ctx)

    def undo_task(
        self, task: Task, ctx: ExecutionContext, *, hooks: bool = False
    ) -> Result[None, FireflyError]:
        """Undo ``task``; with ``hooks`` the rollback hooks run around it."""
        undoable = task.supports_undo()
        if isinstance(undoable, Err):
            return self._rollback_fail(task, undoable.error, ctx, hooks)
        if task.undo is None or not undoable.value:
            return Err(invalid_error(f"Task {task.id} does not support undo", source="executor"))

        self._console.debug(f"TaskExecutor: undoing {task.id}")

        if hooks:
            before = self._hook(task.before_rollback, f"{task.id}.before_rollback", ctx)
            if isinstance(before, Err):
                return self._rollback_fail(task, before.error, ctx, hooks)

        result = call_guarded(task.undo, f"{task.id}.undo", ctx)
        if isinstance(result, Err):
            return self._rollback_fail(task, result.error, ctx, hooks)

        if hooks:
            after = self._hook(task.after_rollback, f"{task.id}.after_rollback", ctx)
            if isinstance(after, Err):
                return self._rollback_fail(task, after.error, ctx, hooks)

        return Ok(None)

    def _hook(self, hook: Hook | None, where: str, ctx: ExecutionContext) -> Result[None, FireflyError]:
        if hook is None:
            return Ok(None)
        return call_guarded(hook, where, ctx)

    def _fail(
        self, task: Task, error: FireflyError, ctx: ExecutionContext
    ) -> Result[ExecutionContext, FireflyError]:
        self._console.debug(f"TaskExecutor: {task.id} failed: {error.message}")
        self._notify(task.on_error, error, ctx, f"{task.id}.on_error")
        return Err(with_context(error, f"Task execution failed: {task.name}"))

    def _rollback_fail(
        self, task: Task, error: FireflyError, ctx: ExecutionContext, hooks: bool
    ) -> Result[None, FireflyError]:
        if hooks:
            self._notify(task.on_rollback_error, error, ctx, f"{task.id}.on_rollback_error")
        return Err(with_context(error, f"Failed to rollback task {task.name}"))

    def _notify(
        self, hook: ErrorHook | None, error: FireflyError, ctx: ExecutionContext, where: str
    ) -> None:
        if hook is None:
            return
        outcome = call_guarded(hook, where, error, ctx)
        if isinstance(outcome, Err):
            self._console.warning(f"{where} failed: {outcome.error.message}")
