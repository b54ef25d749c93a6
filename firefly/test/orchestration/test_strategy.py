"""Tests for firefly.orchestration.strategy module."""

from __future__ import annotations

from firefly.core.errors import FireflyError, failed_error
from firefly.core.result import Err, Ok, Result
from firefly.orchestration.context import ExecutionContext
from firefly.orchestration.features import FeatureManager
from firefly.orchestration.graph import topological_order
from firefly.orchestration.options import OrchestratorOptions
from firefly.orchestration.result import WorkflowResult
from firefly.orchestration.rollback import RollbackConfig, RollbackManager
from firefly.orchestration.strategy import ExecutionStrategy
from firefly.orchestration.task import SkipCondition, Task
from firefly.output.console import MockConsole

from ._support import recording, undo_recording


def run(
    tasks: list[Task],
    *,
    strategy: str = "reverse",
    features: tuple[str, ...] = (),
    console: MockConsole | None = None,
) -> WorkflowResult:
    options = OrchestratorOptions(rollback_strategy=strategy)  # type: ignore[arg-type]
    manager = FeatureManager.from_options(features).unwrap()
    assert manager is not None
    rollback = RollbackManager(RollbackConfig(strategy=strategy))  # type: ignore[arg-type]
    ordered = topological_order(tasks).unwrap()
    assert ordered is not None
    return ExecutionStrategy(options, manager, rollback, console=console).execute(
        ordered, ExecutionContext.create(execution_id="run-1")
    )


def task(log: list[str], task_id: str, *deps: str, fail: bool = False, **kwargs: object) -> Task:
    return Task(
        task_id,
        execute=recording(log, task_id, fail=fail),
        undo=undo_recording(log, task_id),
        dependencies=deps,
        **kwargs,  # type: ignore[arg-type]
    )


class TestOrdering:
    def test_dependencies_run_first(self) -> None:
        log: list[str] = []
        result = run([task(log, "a"), task(log, "b", "a"), task(log, "c", "a")])

        assert result.success
        assert result.executed_tasks[0] == "a"
        assert set(result.executed_tasks) == {"a", "b", "c"}
        assert result.failed_tasks == ()
        assert result.execution_id == "run-1"

    def test_join_waits_for_all_dependencies(self) -> None:
        log: list[str] = []
        tasks = [task(log, "a"), task(log, "b", "a"), task(log, "c"), task(log, "d", "b", "c")]
        result = run(tasks)

        assert result.success
        assert log.index("d") > log.index("b")
        assert log.index("d") > log.index("c")

    def test_context_threads_forward(self) -> None:
        seen: list[bool] = []

        def check(ctx: ExecutionContext) -> Result[ExecutionContext, FireflyError]:
            seen.append(ctx.has("a"))
            return Ok(ctx)

        result = run([task([], "a"), Task("b", execute=check, dependencies=("a",))])

        assert seen == [True]
        assert result.context is not None
        assert result.context.has("a")

    def test_non_entry_point_is_not_seeded(self) -> None:
        log: list[str] = []
        result = run([task(log, "a"), task(log, "orphan", entry_point=False)])
        assert result.executed_tasks == ("a",)
        assert "orphan" not in result.skipped_tasks


class TestFailureAndRollback:
    def test_failure_rolls_back_executed_tasks(self) -> None:
        log: list[str] = []
        result = run([task(log, "a"), task(log, "b", "a", fail=True)])

        assert not result.success
        assert result.executed_tasks == ("a",)
        assert result.failed_tasks == ("b",)
        assert result.rollback_executed is True
        assert result.rollback is not None
        assert result.rollback.rolled_back_tasks == ("a",)
        assert log == ["a", "b", "undo:a"]
        assert result.error is not None
        assert result.error.message == "Task execution failed: b: b exploded"

    def test_run_stops_after_first_failure(self) -> None:
        log: list[str] = []
        result = run([task(log, "a", fail=True), task(log, "b")])
        assert result.failed_tasks == ("a",)
        assert "b" not in log

    def test_strategy_none_skips_rollback(self) -> None:
        log: list[str] = []
        result = run([task(log, "a"), task(log, "b", "a", fail=True)], strategy="none")

        assert not result.success
        assert result.rollback_executed is False
        assert result.rollback is None
        assert "undo:a" not in log

    def test_incomplete_rollback(self) -> None:
        log: list[str] = []
        broken = Task(
            "a",
            execute=recording(log, "a"),
            undo=undo_recording(log, "a", fail=True),
        )
        result = run([broken, task(log, "b", "a", fail=True)])

        assert result.rollback is not None
        assert not result.rollback.success
        assert result.rollback_executed is False
        assert result.exit_code() == 4

    def test_compensation_flag(self) -> None:
        log: list[str] = []
        result = run([task(log, "a"), task(log, "b", "a", fail=True)], strategy="compensation")
        assert result.rollback_executed
        assert result.compensation_executed

    def test_raising_task_is_rolled_back(self) -> None:
        log: list[str] = []

        def explode(ctx: ExecutionContext) -> Result[ExecutionContext, FireflyError]:
            raise RuntimeError("boom")

        result = run([task(log, "a"), Task("b", execute=explode, dependencies=("a",))])

        assert result.failed_tasks == ("b",)
        assert log == ["a", "undo:a"]


    def test_raising_can_undo_keeps_task_error(self) -> None:
        log: list[str] = []

        def can_undo() -> bool:
            raise RuntimeError("lock held")

        result = run([task(log, "a", can_undo=can_undo), task(log, "b", "a", fail=True)])

        assert result.failed_tasks == ("b",)
        assert result.error is not None
        assert result.error.message == "Task execution failed: b: b exploded"
        assert result.rollback is not None
        assert result.rollback.failed_tasks == ("a",)
        assert result.exit_code() == 4
        assert log == ["a", "b"]

    def test_execute_returning_non_result_fails(self) -> None:
        log: list[str] = []
        broken = Task("b", execute=lambda ctx: None, dependencies=("a",))  # type: ignore[arg-type, return-value]

        result = run([task(log, "a"), broken])

        assert result.failed_tasks == ("b",)
        assert result.executed_tasks == ("a",)
        assert result.error is not None
        assert result.error.kind == "failed"
        assert (
            result.error.message
            == "Task execution failed: b: b.execute returned NoneType, expected Result"
        )
        assert log == ["a", "undo:a"]

class TestSkipping:
    def test_should_skip_enqueues_dependents(self) -> None:
        log: list[str] = []
        skipper = task(log, "b", "a", should_skip=lambda ctx: Ok(SkipCondition.skip("nothing to do")))
        result = run([task(log, "a"), skipper, task(log, "c", "b")])

        assert result.success
        assert result.executed_tasks == ("a", "c")
        assert result.skipped_tasks == ("b",)
        assert result.skip_reasons == {"b": "nothing to do"}

    def test_should_execute_false(self) -> None:
        log: list[str] = []
        result = run([task(log, "a", should_execute=lambda ctx: Ok(False))])
        assert result.skipped_tasks == ("a",)
        assert result.skip_reasons["a"] == "should_execute returned false"
        assert log == []

    def test_should_skip_checked_before_should_execute(self) -> None:
        calls: list[str] = []

        def should_execute(ctx: ExecutionContext) -> Result[bool, FireflyError]:
            calls.append("should_execute")
            return Ok(True)

        result = run(
            [
                task(
                    [],
                    "a",
                    should_skip=lambda ctx: Ok(SkipCondition.skip("first")),
                    should_execute=should_execute,
                )
            ]
        )
        assert result.skip_reasons["a"] == "first"
        assert calls == []

    def test_skip_to_jumps_over_branch(self) -> None:
        log: list[str] = []
        tasks = [
            task(log, "a", should_skip=lambda ctx: Ok(SkipCondition.skip("jump", skip_to=["d"]))),
            task(log, "b", "a"),
            task(log, "c", "b"),
            task(log, "d", "a"),
        ]
        result = run(tasks)

        assert result.success
        assert result.executed_tasks == ("d",)
        assert result.skipped_tasks == ("a",)
        assert "b" not in log and "c" not in log

    def test_skip_to_unknown_task_fails(self) -> None:
        tasks = [task([], "a", should_skip=lambda ctx: Ok(SkipCondition.skip("x", skip_to=["ghost"])))]
        result = run(tasks)
        assert result.failed_tasks == ("a",)
        assert result.error is not None
        assert result.error.kind == "not_found"

    def test_predicate_error_fails_task(self) -> None:
        log: list[str] = []
        tasks = [
            task(log, "a"),
            task(log, "b", "a", should_execute=lambda ctx: Err(failed_error("cannot decide"))),
        ]
        result = run(tasks)

        assert result.failed_tasks == ("b",)
        assert result.executed_tasks == ("a",)
        assert log == ["a", "undo:a"]


class TestFeatureGating:
    def test_missing_feature_skips_and_continues(self) -> None:
        log: list[str] = []
        tasks = [
            task(log, "a"),
            task(log, "publish", "a", required_features=("github-release",)),
            task(log, "notify", "publish"),
        ]
        result = run(tasks)

        assert result.success
        assert result.executed_tasks == ("a", "notify")
        assert result.skipped_tasks == ("publish",)
        assert result.skip_reasons["publish"] == "missing required features: github-release"

    def test_enabled_feature_runs(self) -> None:
        log: list[str] = []
        tasks = [task(log, "publish", required_features=("github-release",))]
        result = run(tasks, features=("github-release",))
        assert result.executed_tasks == ("publish",)

    def test_custom_gate(self) -> None:
        result = run([task([], "a", is_enabled=lambda enabled: False)])
        assert result.skip_reasons["a"] == "disabled by feature gate"

    def test_raising_gate_fails_task(self) -> None:
        log: list[str] = []

        def gate(enabled: frozenset[str]) -> bool:
            raise RuntimeError("flag service down")

        result = run([task(log, "a"), task(log, "b", "a", is_enabled=gate)])

        assert result.failed_tasks == ("b",)
        assert result.skipped_tasks == ()
        assert result.error is not None
        assert result.error.message == "b.is_enabled raised RuntimeError: flag service down"
        assert log == ["a", "undo:a"]


class TestDynamicRouting:
    def test_next_tasks_replace_structural_fan_out(self) -> None:
        log: list[str] = []
        tasks = [
            task(log, "a", get_next_tasks=lambda ctx: Ok(["c"])),
            task(log, "b", "a"),
            task(log, "c", "a"),
        ]
        result = run(tasks)

        assert result.success
        assert result.executed_tasks == ("a", "c")
        assert "b" not in result.executed_tasks
        assert "b" not in result.skipped_tasks
        assert "b" not in result.failed_tasks

    def test_routing_to_non_entry_point(self) -> None:
        log: list[str] = []
        tasks = [
            task(log, "check", get_next_tasks=lambda ctx: Ok(["hotfix"])),
            task(log, "hotfix", entry_point=False),
        ]
        result = run(tasks)
        assert result.executed_tasks == ("check", "hotfix")

    def test_empty_routing_falls_back_to_dependents(self) -> None:
        log: list[str] = []
        tasks = [task(log, "a", get_next_tasks=lambda ctx: Ok([])), task(log, "b", "a")]
        assert run(tasks).executed_tasks == ("a", "b")

    def test_unknown_route_fails_and_rolls_back_task(self) -> None:
        log: list[str] = []
        result = run([task(log, "a", get_next_tasks=lambda ctx: Ok(["ghost"]))])

        assert result.failed_tasks == ("a",)
        assert result.executed_tasks == ()
        assert log == ["a", "undo:a"]

    def test_routing_error_fails_task(self) -> None:
        result = run([task([], "a", get_next_tasks=lambda ctx: Err(failed_error("no route")))])
        assert result.failed_tasks == ("a",)
        assert result.error is not None
        assert result.error.message == "no route"


def test_console_reports_progress() -> None:
    console = MockConsole()
    skipper = task([], "b", "a", should_skip=lambda ctx: Ok(SkipCondition.skip("later")))
    run([task([], "a"), skipper], console=console)

    assert console.find("OK a")
    assert console.find("b: skipped (later)")
