"""Facade over validation, ordering and execution.

Lifecycle: ``created -> validated -> running -> completed | failed``.
``TaskOrchestrator.from_tasks`` performs validation (options, feature rules,
the task graph) and only hands out an orchestrator when everything checks
out, so a rejected task set never runs a single task. ``run_tasks`` folds both
validation and execution failures into one ``WorkflowResult``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime
from enum import StrEnum

from firefly.core.errors import FireflyError, invalid_error, with_context
from firefly.core.result import Err, Ok, Result
from firefly.output.console import ConsoleProtocol, NullConsole

from .context import ExecutionContext, new_execution_id
from .executor import TaskExecutor
from .features import FeatureManager
from .graph import TaskRegistry, check_task_set, topological_order
from .options import OrchestratorOptions, validate_options
from .result import WorkflowResult
from .rollback import RollbackConfig, RollbackManager
from .services import ResolvedServices
from .strategy import ExecutionStrategy
from .task import Task

__all__ = ["OrchestratorState", "TaskOrchestrator", "failed_result", "run_tasks"]


class OrchestratorState(StrEnum):
    CREATED = "created"
    VALIDATED = "validated"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskOrchestrator:
    """Runs one validated task set once."""

    def __init__(
        self,
        tasks: Sequence[Task],
        options: OrchestratorOptions,
        feature_manager: FeatureManager,
        *,
        context: ExecutionContext | None = None,
        services: ResolvedServices | None = None,
        console: ConsoleProtocol | None = None,
    ) -> None:
        self._tasks = tuple(tasks)
        self._options = options
        self._features = feature_manager
        self._console = console or NullConsole()
        self._state = OrchestratorState.CREATED
        self._execution_id = (
            options.execution_id or (context.execution_id if context else None) or new_execution_id()
        )
        self._context = self._initial_context(context, services)

    @classmethod
    def from_tasks(
        cls,
        tasks: Sequence[Task],
        options: OrchestratorOptions | None = None,
        *,
        context: ExecutionContext | None = None,
        services: ResolvedServices | None = None,
        console: ConsoleProtocol | None = None,
    ) -> Result[TaskOrchestrator, FireflyError]:
        options = options or OrchestratorOptions()
        console = console or NullConsole()

        checked = validate_options(options)
        if isinstance(checked, Err):
            return Err(with_context(checked.error, "Invalid orchestrator options"))

        features = FeatureManager.from_options(
            options.enabled_features, options.feature_flags, options.feature_definitions
        )
        if isinstance(features, Err):
            return Err(with_context(features.error, "Invalid feature configuration"))

        graph_ok = check_task_set(tasks)
        if isinstance(graph_ok, Err):
            for detail in graph_ok.error.details:
                console.debug(f"TaskOrchestrator: {detail}")
            return Err(with_context(graph_ok.error, "Task configuration validation failed"))

        orchestrator = cls(
            tasks, options, features.value, context=context, services=services, console=console
        )
        orchestrator._state = OrchestratorState.VALIDATED
        console.debug(f"TaskOrchestrator: validated {len(tasks)} task(s)")
        return Ok(orchestrator)

    @classmethod
    def from_registry(
        cls,
        registry: TaskRegistry,
        options: OrchestratorOptions | None = None,
        *,
        context: ExecutionContext | None = None,
        services: ResolvedServices | None = None,
        console: ConsoleProtocol | None = None,
    ) -> Result[TaskOrchestrator, FireflyError]:
        return cls.from_tasks(
            registry.tasks(), options, context=context, services=services, console=console
        )

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def execution_id(self) -> str:
        return self._execution_id

    @property
    def options(self) -> OrchestratorOptions:
        return self._options

    @property
    def feature_manager(self) -> FeatureManager:
        return self._features

    def run(self) -> WorkflowResult:
        if self._state is not OrchestratorState.VALIDATED:
            return failed_result(
                invalid_error(
                    f"Orchestrator cannot run from state '{self._state}'", source="orchestrator"
                ),
                self._options,
                execution_id=self._execution_id,
            )

        self._state = OrchestratorState.RUNNING
        self._console.debug(f"TaskOrchestrator: starting run {self._execution_id}")
        if self._options.dry_run:
            self._console.warning("Dry run: tasks are asked not to make changes")

        ordered = topological_order(self._tasks)
        if isinstance(ordered, Err):
            self._state = OrchestratorState.FAILED
            return failed_result(
                with_context(ordered.error, "Dependency resolution failed"),
                self._options,
                execution_id=self._execution_id,
            )

        enabled = self._features.enabled_features()
        gated = [t.id for t in ordered.value if t.features_satisfied(enabled) != Ok(True)]
        if gated:
            self._console.debug(f"TaskOrchestrator: feature-gated task(s): {', '.join(gated)}")

        rollback = RollbackManager(
            RollbackConfig(
                strategy=self._options.rollback_strategy,
                continue_on_error=self._options.continue_on_error,
            ),
            console=self._console,
        )
        strategy = ExecutionStrategy(
            self._options,
            self._features,
            rollback,
            executor=TaskExecutor(self._console),
            console=self._console,
        )

        result = strategy.execute(ordered.value, self._context)
        rollback.clear()

        self._state = OrchestratorState.COMPLETED if result.success else OrchestratorState.FAILED
        if result.success:
            self._console.success(result.summary())
        else:
            self._console.error(result.summary())
        return result

    def _initial_context(
        self, context: ExecutionContext | None, services: ResolvedServices | None
    ) -> ExecutionContext:
        if context is None:
            return ExecutionContext.create(
                execution_id=self._execution_id,
                services=services,
                dry_run=self._options.dry_run,
            )
        return replace(
            context,
            execution_id=self._execution_id,
            dry_run=context.dry_run or self._options.dry_run,
            services=services if services is not None else context.services,
        )


def failed_result(
    error: FireflyError,
    options: OrchestratorOptions,
    *,
    execution_id: str | None = None,
) -> WorkflowResult:
    """A result for a run that stopped before any task executed."""
    now = datetime.now(UTC)
    return WorkflowResult(
        success=False,
        execution_id=execution_id or options.execution_id or new_execution_id(),
        workflow_name=options.name,
        start_time=now,
        end_time=now,
        execution_time_ms=0.0,
        error=error,
    )


def run_tasks(
    tasks: Sequence[Task],
    options: OrchestratorOptions | None = None,
    *,
    context: ExecutionContext | None = None,
    services: ResolvedServices | None = None,
    console: ConsoleProtocol | None = None,
) -> WorkflowResult:
    """Validate and run ``tasks``; every outcome comes back as a WorkflowResult."""
    options = options or OrchestratorOptions()
    built = TaskOrchestrator.from_tasks(
        tasks, options, context=context, services=services, console=console
    )
    if isinstance(built, Err):
        if console is not None:
            console.error(built.error.message)
        return failed_result(built.error, options)
    return built.value.run()
