"""Tests for firefly.orchestration.orchestrator, options and result modules."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from types import MappingProxyType

import pytest

from firefly.core.config import EngineConfig, EngineSettings, FeatureConfig
from firefly.core.errors import ErrorCode, failed_error, not_found_error
from firefly.core.result import Err, Ok
from firefly.orchestration.context import ExecutionContext
from firefly.orchestration.features import FeatureFlag
from firefly.orchestration.graph import TaskRegistry
from firefly.orchestration.options import OrchestratorOptions, options_from_config, validate_options
from firefly.orchestration.orchestrator import (
    OrchestratorState,
    TaskOrchestrator,
    failed_result,
    run_tasks,
)
from firefly.orchestration.result import WorkflowResult
from firefly.orchestration.rollback import RollbackResult
from firefly.orchestration.services import ServiceDefinition, ServiceLocator
from firefly.orchestration.task import Task
from firefly.output.console import MockConsole

from ._support import passthrough, recording, undo_recording


def _task(log: list[str], task_id: str, *deps: str, fail: bool = False) -> Task:
    return Task(
        task_id,
        execute=recording(log, task_id, fail=fail),
        undo=undo_recording(log, task_id),
        dependencies=deps,
        description=f"{task_id} step",
    )


class TestOptions:
    def test_defaults_are_valid(self) -> None:
        options = OrchestratorOptions()
        assert validate_options(options) == Ok(options)

    @pytest.mark.parametrize(
        "options",
        [
            OrchestratorOptions(execution_id="  "),
            OrchestratorOptions(name=""),
            OrchestratorOptions(rollback_strategy="sideways"),  # type: ignore[arg-type]
            OrchestratorOptions(enabled_features=("bad name",)),
            OrchestratorOptions(feature_flags=MappingProxyType({"": True})),
            OrchestratorOptions(feature_definitions=(FeatureFlag("bad/name"),)),
        ],
    )
    def test_invalid(self, options: OrchestratorOptions) -> None:
        result = validate_options(options)
        assert isinstance(result, Err)
        assert result.error.kind == "validation"

    def test_several_problems(self) -> None:
        result = validate_options(OrchestratorOptions(name="", execution_id=""))
        assert isinstance(result, Err)
        assert result.error.message == "Invalid orchestrator options"
        assert len(result.error.details) == 2

    def test_from_config(self) -> None:
        config = EngineConfig(
            engine=EngineSettings(name="release", rollback_strategy="compensation", dry_run=True),
            features=(FeatureConfig("changelog", enabled=True),),
        )
        options = options_from_config(config, execution_id="abc", dry_run=None)

        assert options.name == "release"
        assert options.rollback_strategy == "compensation"
        assert options.dry_run is True
        assert options.execution_id == "abc"
        assert [f.name for f in options.feature_definitions] == ["changelog"]

    def test_from_default_config(self) -> None:
        options = options_from_config(EngineConfig())
        assert options.name == "workflow"
        assert options.rollback_strategy == "reverse"


class TestFromTasks:
    def test_validated_state(self) -> None:
        result = TaskOrchestrator.from_tasks([_task([], "a")])
        assert isinstance(result, Ok)
        assert result.value.state is OrchestratorState.VALIDATED

    def test_invalid_options(self) -> None:
        result = TaskOrchestrator.from_tasks([], OrchestratorOptions(name=""))
        assert isinstance(result, Err)
        assert result.error.message.startswith("Invalid orchestrator options: ")

    def test_invalid_features(self) -> None:
        options = OrchestratorOptions(
            enabled_features=("github-release",),
            feature_definitions=(FeatureFlag("github-release", dependencies=("changelog",)),),
        )
        result = TaskOrchestrator.from_tasks([_task([], "a")], options)
        assert isinstance(result, Err)
        assert result.error.message.startswith("Invalid feature configuration: ")

    def test_invalid_graph_runs_nothing(self) -> None:
        log: list[str] = []
        result = TaskOrchestrator.from_tasks([_task(log, "a", "b"), _task(log, "b", "a")])

        assert isinstance(result, Err)
        assert result.error.kind == "validation"
        assert "Task configuration validation failed" in result.error.message
        assert log == []

    def test_from_registry(self) -> None:
        registry = TaskRegistry()
        registry.register_all([_task([], "b", "a"), _task([], "a")])
        result = TaskOrchestrator.from_registry(registry)
        assert isinstance(result, Ok)


class TestRun:
    def test_successful_run(self) -> None:
        log: list[str] = []
        console = MockConsole()
        orchestrator = TaskOrchestrator.from_tasks(
            [_task(log, "b", "a"), _task(log, "a")],
            OrchestratorOptions(execution_id="run-7", name="release"),
            console=console,
        ).unwrap()
        assert orchestrator is not None

        result = orchestrator.run()

        assert result.success
        assert result.execution_id == "run-7"
        assert result.workflow_name == "release"
        assert result.executed_tasks == ("a", "b")
        assert log == ["a", "b"]
        assert orchestrator.state is OrchestratorState.COMPLETED
        assert result.exit_code() == 0
        assert console.has_success()

    def test_failed_run(self) -> None:
        log: list[str] = []
        orchestrator = TaskOrchestrator.from_tasks(
            [_task(log, "a"), _task(log, "b", "a", fail=True)]
        ).unwrap()
        assert orchestrator is not None

        result = orchestrator.run()

        assert not result.success
        assert result.rollback_executed
        assert orchestrator.state is OrchestratorState.FAILED
        assert result.exit_code() == int(ErrorCode.WORKFLOW_ERROR)

    def test_runs_only_once(self) -> None:
        orchestrator = TaskOrchestrator.from_tasks([_task([], "a")]).unwrap()
        assert orchestrator is not None
        orchestrator.run()

        second = orchestrator.run()

        assert not second.success
        assert second.error is not None
        assert second.error.kind == "invalid"
        assert second.execution_id == orchestrator.execution_id

    def test_dry_run_reaches_context(self) -> None:
        seen: list[bool] = []

        def check(ctx: ExecutionContext):  # noqa: ANN202
            seen.append(ctx.dry_run)
            return Ok(ctx)

        console = MockConsole()
        run_tasks(
            [Task("a", execute=check, description="d")],
            OrchestratorOptions(dry_run=True),
            console=console,
        )

        assert seen == [True]
        assert console.find("Dry run")

    def test_context_data_and_id(self) -> None:
        ctx = ExecutionContext.create({"repo": "."}, execution_id="given", data={"v": "1.0.0"})
        seen: list[object] = []

        def check(c: ExecutionContext):  # noqa: ANN202
            seen.append((c.execution_id, c.get_or("v"), c.config.get("repo")))
            return Ok(c)

        result = run_tasks([Task("a", execute=check)], context=ctx)

        assert result.execution_id == "given"
        assert seen == [("given", "1.0.0", ".")]

    def test_services_reach_tasks(self, tmp_path: Path) -> None:
        locator = ServiceLocator(
            {"answer": ServiceDefinition(lambda c: Ok(42))}, tmp_path
        )

        def check(c: ExecutionContext):  # noqa: ANN202
            assert c.services is not None
            return Ok(c.fork("answer", c.services.instance("answer").unwrap()))

        result = run_tasks([Task("a", execute=check)], services=locator.resolve_all())

        assert result.context is not None
        assert result.context.get("answer") == Ok(42)

    def test_gated_tasks_are_traced(self) -> None:
        console = MockConsole()
        run_tasks(
            [Task("a", execute=passthrough, required_features=("beta",))],
            console=console,
        )
        assert console.find("feature-gated task(s): a")

    def test_raising_gate_becomes_failed_result(self) -> None:
        def gate(enabled: frozenset[str]) -> bool:
            raise RuntimeError("flag service down")

        result = run_tasks([Task("a", execute=passthrough, is_enabled=gate)])

        assert isinstance(result, WorkflowResult)
        assert not result.success
        assert result.failed_tasks == ("a",)
        assert result.exit_code() == int(ErrorCode.WORKFLOW_ERROR)


class TestRunTasks:
    def test_validation_failure_becomes_result(self) -> None:
        console = MockConsole()
        result = run_tasks(
            [Task("a", execute=passthrough, dependencies=("ghost",))],
            OrchestratorOptions(execution_id="x"),
            console=console,
        )

        assert not result.success
        assert result.execution_id == "x"
        assert result.executed_tasks == ()
        assert result.exit_code() == int(ErrorCode.USER_ERROR)
        assert console.has_error()

    def test_empty_task_set(self) -> None:
        result = run_tasks([])
        assert result.success
        assert result.executed_tasks == ()


class TestWorkflowResult:
    def _result(self, **kwargs: object) -> WorkflowResult:
        now = datetime.now(UTC)
        values: dict[str, object] = {
            "success": False,
            "execution_id": "id",
            "workflow_name": "release",
            "start_time": now,
            "end_time": now,
            "execution_time_ms": 12.4,
        }
        values.update(kwargs)
        return WorkflowResult(**values)  # type: ignore[arg-type]

    def test_exit_codes(self) -> None:
        assert self._result(success=True).exit_code() == 0
        assert self._result(error=failed_error("x")).exit_code() == 3
        assert self._result(error=not_found_error("x")).exit_code() == 2
        assert self._result().exit_code() == 3
        failed_rollback = RollbackResult(success=False, strategy="reverse", failed_tasks=("a",))
        assert self._result(error=failed_error("x"), rollback=failed_rollback).exit_code() == 4

    def test_summary(self) -> None:
        result = self._result(success=True, executed_tasks=("a", "b"), skipped_tasks=("c",))
        assert result.summary() == "release succeeded in 12ms: 2 executed, 1 skipped, 0 failed"

    def test_failed_result_helper(self) -> None:
        result = failed_result(failed_error("x"), OrchestratorOptions(name="wf"))
        assert not result.success
        assert result.workflow_name == "wf"
        assert result.execution_id
