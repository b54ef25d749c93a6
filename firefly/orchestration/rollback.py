"""Rollback bookkeeping and undo strategies.

Every successfully executed task is pushed on a stack. On failure the stack
is walked last-in-first-out:

- reverse: call each task's ``undo``
- compensation: run the registered compensation for the task id instead of
  ``undo``, falling back to ``undo`` when none is registered
- custom: like reverse, with the task's rollback hooks around each undo
- none: do nothing and report success

Tasks that cannot be undone are passed over and appear in neither result
list. A ``can_undo`` that raises counts as a failed entry. By default the walk
stops at the first failure; with ``continue_on_error`` it attempts every
entry. The stack is consumed once a rollback has run.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Literal

from firefly.core.errors import FireflyError, validation_error, with_context
from firefly.core.result import Err, Ok, Result
from firefly.output.console import ConsoleProtocol, NullConsole

from .context import ExecutionContext
from .executor import TaskExecutor, call_guarded
from .task import Task

__all__ = [
    "ROLLBACK_STRATEGIES",
    "CompensationTask",
    "RollbackConfig",
    "RollbackEntry",
    "RollbackManager",
    "RollbackResult",
    "RollbackStrategy",
]

RollbackStrategy = Literal["reverse", "compensation", "custom", "none"]
ROLLBACK_STRATEGIES: tuple[RollbackStrategy, ...] = ("reverse", "compensation", "custom", "none")

_SOURCE = "rollback"


@dataclass(frozen=True, slots=True)
class RollbackEntry:
    task_id: str
    task_name: str
    task: Task
    execution_time: datetime
    compensation_id: str | None = None


@dataclass(frozen=True, slots=True)
class CompensationTask:
    """Corrective action run instead of a task's own undo."""

    id: str
    name: str
    execute: Callable[[ExecutionContext], Result[None, FireflyError]]


@dataclass(frozen=True, slots=True)
class RollbackConfig:
    strategy: RollbackStrategy = "reverse"
    continue_on_error: bool = False


@dataclass(frozen=True, slots=True)
class RollbackResult:
    """What a rollback did. Lists hold task ids in the order they were processed."""

    success: bool
    strategy: str
    rolled_back_tasks: tuple[str, ...] = ()
    failed_tasks: tuple[str, ...] = ()
    errors: tuple[FireflyError, ...] = ()
    duration_ms: float = 0.0


class RollbackManager:
    """Rollback stack for a single run; not meant to be shared between runs."""

    def __init__(
        self,
        config: RollbackConfig | None = None,
        *,
        executor: TaskExecutor | None = None,
        console: ConsoleProtocol | None = None,
    ) -> None:
        self._config = config or RollbackConfig()
        self._console = console or NullConsole()
        self._executor = executor or TaskExecutor(self._console)
        self._stack: list[RollbackEntry] = []
        self._compensations: dict[str, CompensationTask] = {}

    @property
    def config(self) -> RollbackConfig:
        return self._config

    def with_config(self, **changes: object) -> RollbackManager:
        """New manager with updated config and a copy of the current state."""
        manager = RollbackManager(
            replace(self._config, **changes),  # type: ignore[arg-type]
            executor=self._executor,
            console=self._console,
        )
        manager._stack = list(self._stack)
        manager._compensations = dict(self._compensations)
        return manager

    @property
    def stack(self) -> tuple[RollbackEntry, ...]:
        return tuple(self._stack)

    @property
    def task_count(self) -> int:
        return len(self._stack)

    def has_tasks(self) -> bool:
        return bool(self._stack)

    def add_task(self, task: Task) -> None:
        compensation = self._compensations.get(task.id)
        self._stack.append(
            RollbackEntry(
                task_id=task.id,
                task_name=task.name,
                task=task,
                execution_time=datetime.now(UTC),
                compensation_id=compensation.id if compensation else None,
            )
        )
        self._console.debug(f"RollbackManager: recorded {task.id}")

    def register_compensation(
        self, task_id: str, compensation: CompensationTask
    ) -> Result[None, FireflyError]:
        if not task_id:
            return Err(validation_error("Compensation needs a task id", source=_SOURCE))
        if not compensation.id or not compensation.name:
            return Err(
                validation_error("CompensationTask must have id and name", source=_SOURCE)
            )

        self._compensations[task_id] = compensation
        for index in range(len(self._stack) - 1, -1, -1):
            if self._stack[index].task_id == task_id:
                self._stack[index] = replace(self._stack[index], compensation_id=compensation.id)
                break
        return Ok(None)

    def clear(self) -> None:
        self._stack.clear()
        self._compensations.clear()

    def execute_rollback(
        self,
        strategy: str | None = None,
        context: ExecutionContext | None = None,
    ) -> Result[RollbackResult, FireflyError]:
        effective = strategy or self._config.strategy
        if effective not in ROLLBACK_STRATEGIES:
            return Err(validation_error(f"Unknown rollback strategy: {effective}", source=_SOURCE))

        if effective == "none":
            return Ok(RollbackResult(success=True, strategy=effective))
        if not self._stack:
            self._console.debug("RollbackManager: nothing to roll back")
            return Ok(RollbackResult(success=True, strategy=effective))

        ctx = context or ExecutionContext.create()
        started = time.perf_counter()
        self._console.info(f"Rolling back {len(self._stack)} task(s) ({effective})")

        rolled_back: list[str] = []
        failed: list[str] = []
        errors: list[FireflyError] = []

        for entry in reversed(self._stack):
            undoable = self._undoable(effective, entry)
            if isinstance(undoable, Ok) and not undoable.value:
                self._console.debug(f"RollbackManager: {entry.task_id} cannot be undone, skipping")
                continue

            outcome = (
                self._undo_entry(effective, entry, ctx)
                if isinstance(undoable, Ok)
                else Err(with_context(undoable.error, f"Failed to rollback task {entry.task_name}"))
            )
            if isinstance(outcome, Ok):
                rolled_back.append(entry.task_id)
                continue

            failed.append(entry.task_id)
            errors.append(outcome.error)
            self._console.error(outcome.error.message)
            if not self._config.continue_on_error:
                break

        self._stack.clear()
        return Ok(
            RollbackResult(
                success=not failed,
                strategy=effective,
                rolled_back_tasks=tuple(rolled_back),
                failed_tasks=tuple(failed),
                errors=tuple(errors),
                duration_ms=(time.perf_counter() - started) * 1000,
            )
        )

    def _has_compensation(self, strategy: str, entry: RollbackEntry) -> bool:
        return strategy == "compensation" and entry.task_id in self._compensations

    def _undoable(self, strategy: str, entry: RollbackEntry) -> Result[bool, FireflyError]:
        if self._has_compensation(strategy, entry):
            return Ok(True)
        return entry.task.supports_undo()

    def _undo_entry(
        self, strategy: str, entry: RollbackEntry, ctx: ExecutionContext
    ) -> Result[None, FireflyError]:
        match strategy:
            case "compensation" if entry.task_id in self._compensations:
                compensation = self._compensations[entry.task_id]
                self._console.debug(f"RollbackManager: running compensation {compensation.name}")
                result = call_guarded(compensation.execute, f"compensation {compensation.id}", ctx)
                if isinstance(result, Err):
                    return Err(
                        with_context(
                            result.error, f"Failed to execute compensation {compensation.name}"
                        )
                    )
                return result
            case "custom":
                return self._executor.undo_task(entry.task, ctx, hooks=True)
            case _:
                return self._executor.undo_task(entry.task, ctx)
