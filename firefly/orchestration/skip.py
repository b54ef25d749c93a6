"""Skip predicates and their combinators.

A predicate is a plain ``ctx -> bool`` returning True when the task should
be skipped. Combine predicates here, then turn them into a task's
``should_skip`` with ``to_skip_condition`` (or ``when``).

Example:
    skip_push = any_of(from_config("skip_push"), from_data("offline"))
    task = Task("push", execute=push, should_skip=when(skip_push, "push disabled"))
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from weakref import WeakKeyDictionary

from firefly.core.errors import FireflyError
from firefly.core.result import Ok, Result

from .context import ExecutionContext
from .task import ShouldSkipFn, SkipCondition

__all__ = [
    "SkipPredicate",
    "all_of",
    "always",
    "any_of",
    "from_config",
    "from_data",
    "memoize",
    "never",
    "not_",
    "to_skip_condition",
    "to_skip_condition_with_jump",
    "when",
    "when_all",
    "when_any",
]

type SkipPredicate = Callable[[ExecutionContext], bool]


def _always_true(ctx: ExecutionContext) -> bool:
    return True


def _always_false(ctx: ExecutionContext) -> bool:
    return False


def memoize(predicate: SkipPredicate) -> SkipPredicate:
    """Evaluate ``predicate`` once per context object."""
    cache: WeakKeyDictionary[ExecutionContext, bool] = WeakKeyDictionary()

    def cached(ctx: ExecutionContext) -> bool:
        if ctx in cache:
            return cache[ctx]
        value = predicate(ctx)
        cache[ctx] = value
        return value

    return cached


def all_of(*predicates: SkipPredicate) -> SkipPredicate:
    """Skip only when every predicate says so. No predicates never skips."""
    if not predicates:
        return _always_false
    if len(predicates) == 1:
        return predicates[0]
    return lambda ctx: all(p(ctx) for p in predicates)


def any_of(*predicates: SkipPredicate) -> SkipPredicate:
    """Skip when at least one predicate says so. No predicates never skips."""
    if not predicates:
        return _always_false
    if len(predicates) == 1:
        return predicates[0]
    return lambda ctx: any(p(ctx) for p in predicates)


def not_(predicate: SkipPredicate) -> SkipPredicate:
    return lambda ctx: not predicate(ctx)


def from_config(key: str) -> SkipPredicate:
    return lambda ctx: bool(ctx.config.get(key))


def from_data(key: str) -> SkipPredicate:
    return lambda ctx: bool(ctx.get_or(key))


def always(value: bool) -> SkipPredicate:
    return _always_true if value else _always_false


def never() -> SkipPredicate:
    return _always_false


def to_skip_condition(predicate: SkipPredicate, reason: str) -> ShouldSkipFn:
    def should_skip(ctx: ExecutionContext) -> Result[SkipCondition, FireflyError]:
        return Ok(SkipCondition(should_skip=predicate(ctx), reason=reason))

    return should_skip


def to_skip_condition_with_jump(
    predicate: SkipPredicate, skip_to_tasks: Iterable[str], reason: str | None = None
) -> ShouldSkipFn:
    targets = tuple(skip_to_tasks)

    def should_skip(ctx: ExecutionContext) -> Result[SkipCondition, FireflyError]:
        return Ok(
            SkipCondition(
                should_skip=predicate(ctx),
                reason=reason or "Skip condition met",
                skip_to_tasks=targets,
            )
        )

    return should_skip


def when(predicate: SkipPredicate, reason: str) -> ShouldSkipFn:
    """Shorthand for ``to_skip_condition``; reads well on groups."""
    return to_skip_condition(predicate, reason)


def when_any(predicates: Iterable[SkipPredicate], reason: str) -> ShouldSkipFn:
    return to_skip_condition(any_of(*predicates), reason)


def when_all(predicates: Iterable[SkipPredicate], reason: str) -> ShouldSkipFn:
    return to_skip_condition(all_of(*predicates), reason)
