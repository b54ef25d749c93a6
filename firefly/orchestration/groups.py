"""Task groups: related tasks registered together under a namespace.

Expanding a group:

- prefixes each task id with the group id (``git`` + ``commit`` -> ``git:commit``)
- rewrites dependencies on sibling tasks to the namespaced ids
- makes the group's first task depend on the last task of every group listed
  in ``depends_on_groups`` (those groups must be expanded first)
- evaluates the group skip condition before each task's own condition
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace

from firefly.core.errors import FireflyError, validation_error
from firefly.core.result import Err, Ok, Result

from .context import ExecutionContext
from .skip import SkipPredicate
from .task import ShouldSkipFn, SkipCondition, Task

__all__ = [
    "GROUP_TASK_SEPARATOR",
    "ExpandedGroup",
    "TaskGroup",
    "expand_task_group",
    "group_id_of",
    "namespaced_id",
]

GROUP_TASK_SEPARATOR = ":"


def namespaced_id(group_id: str, task_id: str) -> str:
    return f"{group_id}{GROUP_TASK_SEPARATOR}{task_id}"


def group_id_of(task_id: str) -> str | None:
    group, sep, _ = task_id.partition(GROUP_TASK_SEPARATOR)
    return group if sep else None


@dataclass(frozen=True, slots=True)
class TaskGroup:
    """Tasks that belong together, in declaration order.

    ``skip_condition`` takes precedence over ``skip_when``; with ``skip_when``
    the group is skipped with ``skip_reason``.
    """

    id: str
    description: str
    tasks: tuple[Task, ...]
    depends_on_groups: tuple[str, ...] = ()
    skip_condition: ShouldSkipFn | None = None
    skip_when: SkipPredicate | None = None
    skip_reason: str | None = None


@dataclass(frozen=True, slots=True)
class ExpandedGroup:
    group_id: str
    tasks: tuple[Task, ...]
    id_mapping: Mapping[str, str]

    @property
    def last_task_id(self) -> str | None:
        return self.tasks[-1].id if self.tasks else None


def expand_task_group(
    group: TaskGroup, last_task_by_group: Mapping[str, str]
) -> Result[ExpandedGroup, FireflyError]:
    """Expand ``group`` given the last task id of each already-expanded group."""
    mapping = {t.id: namespaced_id(group.id, t.id) for t in group.tasks}

    inter_group: list[str] = []
    for dep_group in group.depends_on_groups:
        last = last_task_by_group.get(dep_group)
        if last is None:
            return Err(
                validation_error(
                    f'Group "{group.id}" depends on group "{dep_group}" which is not registered',
                    source="expand_task_group",
                )
            )
        inter_group.append(last)

    group_skip = _group_skip_condition(group)
    expanded: list[Task] = []
    for index, task in enumerate(group.tasks):
        deps = [mapping.get(d, d) for d in task.dependencies]
        if index == 0:
            deps.extend(d for d in inter_group if d not in deps)
        expanded.append(
            replace(
                task,
                id=mapping[task.id],
                name=task.name if task.name != task.id else mapping[task.id],
                dependencies=tuple(deps),
                should_skip=_merge_skip(group_skip, task.should_skip),
            )
        )

    return Ok(ExpandedGroup(group_id=group.id, tasks=tuple(expanded), id_mapping=mapping))


def _group_skip_condition(group: TaskGroup) -> ShouldSkipFn | None:
    if group.skip_condition is not None:
        return group.skip_condition
    predicate = group.skip_when
    if predicate is None:
        return None
    reason = group.skip_reason or f'Group "{group.id}" skip condition met'

    def should_skip(ctx: ExecutionContext) -> Result[SkipCondition, FireflyError]:
        return Ok(SkipCondition(should_skip=predicate(ctx), reason=reason))

    return should_skip


def _merge_skip(group_skip: ShouldSkipFn | None, task_skip: ShouldSkipFn | None) -> ShouldSkipFn | None:
    if group_skip is None:
        return task_skip
    if task_skip is None:
        return group_skip

    def should_skip(ctx: ExecutionContext) -> Result[SkipCondition, FireflyError]:
        outer = group_skip(ctx)
        if isinstance(outer, Err) or outer.value.should_skip:
            return outer
        return task_skip(ctx)

    return should_skip
