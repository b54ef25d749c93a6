"""Tests for the task record, skip predicates and TaskBuilder."""

from __future__ import annotations

import pytest

from firefly.core.errors import FireflyError
from firefly.core.result import Err, Ok, Result
from firefly.orchestration import skip
from firefly.orchestration.builder import TaskBuilder
from firefly.orchestration.context import ExecutionContext
from firefly.orchestration.task import SkipCondition, Task

from ._support import passthrough


def _unwrap_skip(fn, ctx: ExecutionContext) -> SkipCondition:  # noqa: ANN001
    result = fn(ctx)
    assert isinstance(result, Ok)
    return result.value


class TestSkipCondition:
    def test_run(self) -> None:
        assert SkipCondition.run() == SkipCondition(should_skip=False)

    def test_skip_with_targets(self) -> None:
        cond = SkipCondition.skip("not needed", skip_to=["publish"])
        assert cond.should_skip
        assert cond.reason == "not needed"
        assert cond.skip_to_tasks == ("publish",)


class TestTask:
    def test_name_defaults_to_id(self) -> None:
        assert Task("tag", execute=passthrough).name == "tag"
        assert Task("tag", execute=passthrough, name="Create tag").name == "Create tag"

    def test_sequences_become_tuples(self) -> None:
        task = Task("t", execute=passthrough, dependencies=["a", "b"], required_features=["x"])  # type: ignore[arg-type]
        assert task.dependencies == ("a", "b")
        assert task.required_features == ("x",)

    def test_supports_undo(self) -> None:
        undo = lambda ctx: Ok(None)  # noqa: E731
        assert Task("t", execute=passthrough).supports_undo() == Ok(False)
        assert Task("t", execute=passthrough, undo=undo).supports_undo() == Ok(True)
        task = Task("t", execute=passthrough, undo=undo, can_undo=lambda: False)
        assert task.supports_undo() == Ok(False)

    def test_raising_can_undo_is_an_error(self) -> None:
        def can_undo() -> bool:
            raise RuntimeError("remote unreachable")

        task = Task("t", execute=passthrough, undo=lambda ctx: Ok(None), can_undo=can_undo)
        result = task.supports_undo()
        assert isinstance(result, Err)
        assert result.error.kind == "failed"
        assert result.error.message == "t.can_undo raised RuntimeError: remote unreachable"

    def test_features_satisfied(self) -> None:
        task = Task("t", execute=passthrough, required_features=("a", "b"))
        assert task.features_satisfied(frozenset({"a", "b", "c"})) == Ok(True)
        assert task.features_satisfied(frozenset({"a"})) == Ok(False)
        assert task.missing_features(frozenset({"a"})) == ("b",)

    def test_custom_feature_gate(self) -> None:
        task = Task("t", execute=passthrough, is_enabled=lambda enabled: "beta" in enabled)
        assert task.features_satisfied(frozenset({"beta"})) == Ok(True)
        assert task.features_satisfied(frozenset()) == Ok(False)

    def test_raising_feature_gate_is_an_error(self) -> None:
        def gate(enabled: frozenset[str]) -> bool:
            raise KeyError("beta")

        result = Task("t", execute=passthrough, is_enabled=gate).features_satisfied(frozenset())
        assert isinstance(result, Err)
        assert result.error.message.startswith("t.is_enabled raised KeyError")

    def test_frozen(self) -> None:
        task = Task("t", execute=passthrough)
        with pytest.raises(AttributeError):
            task.id = "u"  # type: ignore[misc]


class TestSkipPredicates:
    def test_from_config_and_data(self) -> None:
        ctx = ExecutionContext.create({"skip_push": True}, data={"offline": False})
        assert skip.from_config("skip_push")(ctx)
        assert not skip.from_config("missing")(ctx)
        assert not skip.from_data("offline")(ctx)
        assert skip.from_data("offline")(ctx.fork("offline", True))

    def test_combinators(self, ctx: ExecutionContext) -> None:
        yes, no = skip.always(True), skip.never()
        assert skip.all_of(yes, yes)(ctx)
        assert not skip.all_of(yes, no)(ctx)
        assert skip.any_of(no, yes)(ctx)
        assert not skip.any_of(no, no)(ctx)
        assert skip.not_(no)(ctx)
        assert not skip.always(False)(ctx)

    def test_empty_combinators_never_skip(self, ctx: ExecutionContext) -> None:
        assert not skip.all_of()(ctx)
        assert not skip.any_of()(ctx)

    def test_any_of_short_circuits(self, ctx: ExecutionContext) -> None:
        calls: list[str] = []

        def tracked(ctx: ExecutionContext) -> bool:
            calls.append("x")
            return True

        assert skip.any_of(skip.always(True), tracked)(ctx)
        assert calls == []

    def test_memoize_once_per_context(self, ctx: ExecutionContext) -> None:
        calls: list[int] = []

        def expensive(c: ExecutionContext) -> bool:
            calls.append(1)
            return True

        pred = skip.memoize(expensive)
        assert pred(ctx) and pred(ctx)
        assert len(calls) == 1
        pred(ctx.fork("k", 1))
        assert len(calls) == 2

    def test_to_skip_condition(self, ctx: ExecutionContext) -> None:
        cond = _unwrap_skip(skip.to_skip_condition(skip.always(True), "dry"), ctx)
        assert cond == SkipCondition(should_skip=True, reason="dry")

    def test_to_skip_condition_with_jump(self, ctx: ExecutionContext) -> None:
        cond = _unwrap_skip(skip.to_skip_condition_with_jump(skip.always(True), ["d"]), ctx)
        assert cond.skip_to_tasks == ("d",)
        assert cond.reason == "Skip condition met"

    def test_when_helpers(self, ctx: ExecutionContext) -> None:
        yes, no = skip.always(True), skip.never()
        assert _unwrap_skip(skip.when(yes, "r"), ctx).should_skip
        assert _unwrap_skip(skip.when_any([no, yes], "r"), ctx).should_skip
        assert not _unwrap_skip(skip.when_all([no, yes], "r"), ctx).should_skip


class TestTaskBuilder:
    def test_full_build(self, ctx: ExecutionContext) -> None:
        def undo(c: ExecutionContext) -> Result[None, FireflyError]:
            return Ok(None)

        result = (
            TaskBuilder.create("tag")
            .name("Create tag")
            .description("Create the release tag")
            .depends_on("commit")
            .depends_on_all("bump", "commit")
            .requires_features("tagging")
            .not_entry_point()
            .execute(passthrough)
            .with_undo(undo, can_undo=lambda: True)
            .skip_when_with_reason(skip.from_config("no_tag"), "tagging disabled")
            .build()
        )

        assert isinstance(result, Ok)
        task = result.value
        assert task.id == "tag"
        assert task.name == "Create tag"
        assert task.dependencies == ("commit", "bump")
        assert task.required_features == ("tagging",)
        assert task.entry_point is False
        assert task.supports_undo() == Ok(True)
        assert task.should_skip is not None
        cond = _unwrap_skip(task.should_skip, ctx)
        assert cond.should_skip is False
        assert cond.reason == "tagging disabled"

    def test_missing_execute(self) -> None:
        result = TaskBuilder.create("x").description("d").build()
        assert isinstance(result, Err)
        assert result.error.kind == "invalid"
        assert result.error.message == 'Task "x" must have an execute function'

    def test_missing_description(self) -> None:
        result = TaskBuilder.create("x").execute(passthrough).build()
        assert isinstance(result, Err)
        assert result.error.message == 'Task "x" must have a description'

    def test_skip_when_and_jump(self, ctx: ExecutionContext) -> None:
        task = (
            TaskBuilder.create("a")
            .description("a")
            .execute(passthrough)
            .skip_when_and_jump_to(skip.always(True), ["d"], "jump")
            .build()
            .unwrap()
        )
        assert task is not None and task.should_skip is not None
        cond = _unwrap_skip(task.should_skip, ctx)
        assert cond == SkipCondition(should_skip=True, reason="jump", skip_to_tasks=("d",))

    def test_hooks_are_attached(self) -> None:
        hook = lambda ctx: Ok(None)  # noqa: E731
        error_hook = lambda err, ctx: Ok(None)  # noqa: E731
        task = (
            TaskBuilder.create("a")
            .description("a")
            .execute(passthrough)
            .before_execute(hook)
            .after_execute(hook)
            .on_error(error_hook)
            .before_rollback(hook)
            .after_rollback(hook)
            .on_rollback_error(error_hook)
            .build()
            .unwrap()
        )
        assert task is not None
        assert task.before_execute is hook
        assert task.on_rollback_error is error_hook
