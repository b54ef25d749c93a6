"""Queue-driven walk over the task set.

The queue holds eligible task ids and starts with the dependency-free entry
points. Each step takes the first queued task whose dependencies have all
been visited (executed or skipped) and then:

1. skips it when its required features are not enabled
2. skips it when ``should_skip``/``should_execute`` say so
3. otherwise executes it and records it for rollback

After a task is visited, its successors are enqueued. A non-empty list from
``get_next_tasks`` (or a skip condition's ``skip_to_tasks``) is used as is.
Otherwise every structural dependent whose dependencies are now all visited
is enqueued. Dependents of a branch that was not chosen never become
eligible and appear in no result list.

The first failure is recorded, triggers rollback (unless the strategy is
``none``) and ends the run. A predicate that returns Err counts as a failure
of its task.
"""

from __future__ import annotations

import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType

from firefly.core.errors import FireflyError, not_found_error, with_context
from firefly.core.result import Err, Ok, Result
from firefly.output.console import ConsoleProtocol, NullConsole, Style

from .context import ExecutionContext
from .executor import TaskExecutor, call_guarded
from .features import FeatureManager
from .graph import TaskGraph
from .options import OrchestratorOptions
from .result import WorkflowResult
from .rollback import RollbackManager, RollbackResult
from .task import SkipCondition, Task

__all__ = ["ExecutionStrategy"]


@dataclass(slots=True)
class _RunState:
    ctx: ExecutionContext
    queue: list[str]
    visited: set[str] = field(default_factory=set)
    executed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skip_reasons: dict[str, str] = field(default_factory=dict)
    error: FireflyError | None = None
    rollback: RollbackResult | None = None
    rollback_executed: bool = False
    compensation_executed: bool = False


class ExecutionStrategy:
    def __init__(
        self,
        options: OrchestratorOptions,
        feature_manager: FeatureManager,
        rollback_manager: RollbackManager,
        *,
        executor: TaskExecutor | None = None,
        console: ConsoleProtocol | None = None,
    ) -> None:
        self._options = options
        self._features = feature_manager
        self._rollback = rollback_manager
        self._console = console or NullConsole()
        self._executor = executor or TaskExecutor(self._console)

    def execute(self, tasks: Sequence[Task], context: ExecutionContext) -> WorkflowResult:
        """Run ``tasks`` (already validated and ordered) starting from ``context``."""
        start_time = datetime.now(UTC)
        started = time.perf_counter()

        graph = TaskGraph(tasks)
        enabled = self._features.enabled_features()
        state = _RunState(
            ctx=context,
            queue=[t.id for t in tasks if not t.dependencies and t.entry_point],
        )
        self._console.debug(f"ExecutionStrategy: {len(tasks)} task(s), seeded {state.queue}")

        while state.queue and not state.failed:
            task = self._next_ready(state, graph)
            if task is None:
                self._console.debug(
                    f"ExecutionStrategy: no queued task is ready ({', '.join(state.queue)}), stopping"
                )
                break
            state.queue.remove(task.id)
            self._step(task, graph, enabled, state)

        return WorkflowResult(
            success=not state.failed,
            execution_id=context.execution_id,
            workflow_name=self._options.name,
            start_time=start_time,
            end_time=datetime.now(UTC),
            execution_time_ms=(time.perf_counter() - started) * 1000,
            executed_tasks=tuple(state.executed),
            failed_tasks=tuple(state.failed),
            skipped_tasks=tuple(state.skipped),
            skip_reasons=MappingProxyType(dict(state.skip_reasons)),
            error=state.error,
            rollback_executed=state.rollback_executed,
            compensation_executed=state.compensation_executed,
            rollback=state.rollback,
            context=state.ctx,
        )

    # --- one task ---------------------------------------------------------

    def _step(
        self, task: Task, graph: TaskGraph, enabled: frozenset[str], state: _RunState
    ) -> None:
        gate = task.features_satisfied(enabled)
        if isinstance(gate, Err):
            self._fail(task, gate.error, state)
            return
        if not gate.value:
            missing = task.missing_features(enabled)
            reason = (
                f"missing required features: {', '.join(missing)}"
                if missing
                else "disabled by feature gate"
            )
            self._skip(task, reason, self._ready_dependents(task.id, graph, state), state)
            return

        decision = self._skip_decision(task, state.ctx)
        if isinstance(decision, Err):
            self._fail(task, decision.error, state)
            return
        if decision.value.should_skip:
            targets = decision.value.skip_to_tasks
            unknown = [t for t in targets if t not in graph]
            if unknown:
                self._fail(task, _unknown_targets(task, unknown), state)
                return
            reason = decision.value.reason or "condition not met"
            self._skip(
                task, reason, targets or self._ready_dependents(task.id, graph, state), state
            )
            return

        self._console.print(f"{task.name}", Style.BOLD)
        result = self._executor.execute_task(task, state.ctx)
        if isinstance(result, Err):
            self._fail(task, result.error, state)
            return

        state.ctx = result.value
        self._rollback.add_task(task)

        routed = self._dynamic_next(task, state.ctx, graph)
        if isinstance(routed, Err):
            self._fail(task, routed.error, state)
            return

        state.visited.add(task.id)
        state.executed.append(task.id)
        self._console.success(task.name)

        if routed.value:
            self._console.debug(f"ExecutionStrategy: {task.id} routed to {routed.value}")
            self._enqueue(routed.value, state)
        else:
            self._enqueue(self._ready_dependents(task.id, graph, state), state)

    def _skip_decision(
        self, task: Task, ctx: ExecutionContext
    ) -> Result[SkipCondition, FireflyError]:
        if task.should_skip is not None:
            condition = call_guarded(task.should_skip, f"{task.id}.should_skip", ctx)
            if isinstance(condition, Err) or condition.value.should_skip:
                return condition

        if task.should_execute is not None:
            proceed = call_guarded(task.should_execute, f"{task.id}.should_execute", ctx)
            if isinstance(proceed, Err):
                return proceed
            if not proceed.value:
                return Ok(SkipCondition.skip("should_execute returned false"))

        return Ok(SkipCondition.run())

    def _dynamic_next(
        self, task: Task, ctx: ExecutionContext, graph: TaskGraph
    ) -> Result[list[str], FireflyError]:
        if task.get_next_tasks is None:
            return Ok([])
        routed = call_guarded(task.get_next_tasks, f"{task.id}.get_next_tasks", ctx)
        if isinstance(routed, Err):
            return routed
        unknown = [t for t in routed.value if t not in graph]
        if unknown:
            return Err(_unknown_targets(task, unknown))
        return Ok(list(routed.value))

    # --- bookkeeping ------------------------------------------------------

    def _skip(self, task: Task, reason: str, successors: Iterable[str], state: _RunState) -> None:
        self._console.print(f"{task.name}: skipped ({reason})", Style.DIM)
        state.visited.add(task.id)
        state.skipped.append(task.id)
        state.skip_reasons[task.id] = reason
        self._enqueue(successors, state)

    def _fail(self, task: Task, error: FireflyError, state: _RunState) -> None:
        state.failed.append(task.id)
        state.error = error
        self._console.error(f"{task.name}: {error.message}")

        strategy = self._options.rollback_strategy
        if strategy == "none":
            return

        outcome = self._rollback.execute_rollback(strategy, state.ctx)
        if isinstance(outcome, Err):
            self._console.error(f"Rollback could not run: {outcome.error.message}")
            return

        state.rollback = outcome.value
        state.rollback_executed = outcome.value.success
        state.compensation_executed = strategy == "compensation" and outcome.value.success
        if outcome.value.success:
            self._console.info("Rollback completed")
        else:
            self._console.warning(
                f"Rollback incomplete: {', '.join(outcome.value.failed_tasks)} could not be undone"
            )

    @staticmethod
    def _next_ready(state: _RunState, graph: TaskGraph) -> Task | None:
        for task_id in state.queue:
            task = graph.get(task_id)
            if task is not None and all(d in state.visited for d in task.dependencies):
                return task
        return None

    @staticmethod
    def _ready_dependents(task_id: str, graph: TaskGraph, state: _RunState) -> list[str]:
        ready: list[str] = []
        for dependent in graph.dependents_of(task_id):
            task = graph.get(dependent)
            if task is None or dependent in state.visited:
                continue
            if all(d == task_id or d in state.visited for d in task.dependencies):
                ready.append(dependent)
        return ready

    @staticmethod
    def _enqueue(task_ids: Iterable[str], state: _RunState) -> None:
        for task_id in task_ids:
            if task_id not in state.visited and task_id not in state.queue:
                state.queue.append(task_id)


def _unknown_targets(task: Task, unknown: list[str]) -> FireflyError:
    return with_context(
        not_found_error(f"unknown task(s): {', '.join(unknown)}", source="strategy"),
        f"Task {task.id} routed to tasks that are not part of this run",
    )
