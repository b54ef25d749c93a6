"""Task registry, dependency graph validation and ordering.

Validation reports every problem at once (duplicate ids, each missing
dependency reference, cycles) before anything runs. Ordering is a depth-first
post-order walk in registration order with a recursion stack, so the output
is deterministic and every task appears after all of its dependencies.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from firefly.core.errors import FireflyError, conflict_error, not_found_error, validation_error
from firefly.core.result import Err, Ok, Result

from .groups import TaskGroup, expand_task_group
from .task import Task

__all__ = [
    "CYCLE_PREFIX",
    "GraphStatistics",
    "GraphValidation",
    "TaskGraph",
    "TaskRegistry",
    "check_task_set",
    "graph_statistics",
    "is_cycle_error",
    "task_graph_to_mermaid",
    "topological_order",
    "validate_task_graph",
]

CYCLE_PREFIX = "Circular dependency detected"
_SOURCE = "task-graph"


# =============================================================================
# Validation and ordering
# =============================================================================


@dataclass(frozen=True, slots=True)
class GraphValidation:
    """Outcome of ``validate_task_graph``.

    ``execution_order`` and ``depth_map`` are only filled when the graph is
    valid. Depth 0 means no dependencies.
    """

    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    execution_order: tuple[str, ...] = ()
    depth_map: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))


def _find_cycle(task_map: Mapping[str, Task]) -> list[str] | None:
    visited: set[str] = set()
    path: list[str] = []
    on_path: set[str] = set()

    def visit(task_id: str) -> list[str] | None:
        if task_id in on_path:
            return [*path[path.index(task_id) :], task_id]
        if task_id in visited:
            return None
        visited.add(task_id)
        path.append(task_id)
        on_path.add(task_id)
        for dep in task_map[task_id].dependencies:
            if dep in task_map:
                cycle = visit(dep)
                if cycle:
                    return cycle
        path.pop()
        on_path.discard(task_id)
        return None

    for task_id in task_map:
        cycle = visit(task_id)
        if cycle:
            return cycle
    return None


def _cycle_message(cycle: Sequence[str]) -> str:
    return f"{CYCLE_PREFIX}: {' -> '.join(cycle)}"


def is_cycle_error(error: FireflyError) -> bool:
    return any(d.startswith(CYCLE_PREFIX) for d in (error.message, *error.details))


def topological_order(tasks: Sequence[Task]) -> Result[list[Task], FireflyError]:
    """Order ``tasks`` so each one follows its dependencies.

    Dependencies that are not part of ``tasks`` are ignored here; use
    ``check_task_set`` to report them.
    """
    task_map: dict[str, Task] = {}
    for task in tasks:
        task_map.setdefault(task.id, task)

    ordered: list[Task] = []
    done: set[str] = set()
    stack: list[str] = []

    def visit(task_id: str) -> list[str] | None:
        if task_id in stack:
            return [*stack[stack.index(task_id) :], task_id]
        if task_id in done:
            return None
        task = task_map.get(task_id)
        if task is None:
            return None
        stack.append(task_id)
        for dep in task.dependencies:
            cycle = visit(dep)
            if cycle:
                return cycle
        stack.pop()
        done.add(task_id)
        ordered.append(task)
        return None

    for task_id in task_map:
        cycle = visit(task_id)
        if cycle:
            message = _cycle_message(cycle)
            return Err(validation_error(message, details=(message,), source=_SOURCE))
    return Ok(ordered)


def validate_task_graph(tasks: Sequence[Task]) -> GraphValidation:
    errors: list[str] = []
    warnings: list[str] = []
    task_map: dict[str, Task] = {}

    for task in tasks:
        if task.id in task_map:
            errors.append(f'Duplicate task ID: "{task.id}"')
        else:
            task_map[task.id] = task

    for task in tasks:
        for dep in task.dependencies:
            if dep not in task_map:
                errors.append(f'Task "{task.id}" depends on unknown task "{dep}"')
        if not task.description or not task.description.strip():
            warnings.append(f'Task "{task.id}" has no description')

    cycle = _find_cycle(task_map)
    if cycle:
        errors.append(_cycle_message(cycle))

    if errors:
        return GraphValidation(is_valid=False, errors=tuple(errors), warnings=tuple(warnings))

    ordered = topological_order(list(task_map.values())).unwrap()
    depth: dict[str, int] = {}
    for task in ordered:
        depth[task.id] = max((depth[d] + 1 for d in task.dependencies), default=0)

    return GraphValidation(
        is_valid=True,
        warnings=tuple(warnings),
        execution_order=tuple(t.id for t in ordered),
        depth_map=MappingProxyType(depth),
    )


def check_task_set(tasks: Sequence[Task]) -> Result[None, FireflyError]:
    """Fail with one validation error listing every problem in ``tasks``."""
    validation = validate_task_graph(tasks)
    if validation.is_valid:
        return Ok(None)

    if len(validation.errors) == 1:
        message = validation.errors[0]
    else:
        message = f"Task graph has {len(validation.errors)} problems"
    return Err(validation_error(message, details=validation.errors, source=_SOURCE))


# =============================================================================
# Derived graph
# =============================================================================


class TaskGraph:
    """Id lookup plus in-degree and dependents derived from dependency edges."""

    def __init__(self, tasks: Sequence[Task]) -> None:
        self._tasks: dict[str, Task] = {t.id: t for t in tasks}
        self._in_degree: dict[str, int] = {}
        self._dependents: dict[str, list[str]] = {t: [] for t in self._tasks}
        for task in self._tasks.values():
            known = [d for d in task.dependencies if d in self._tasks]
            self._in_degree[task.id] = len(known)
            for dep in known:
                self._dependents[dep].append(task.id)

    @classmethod
    def build(cls, tasks: Sequence[Task]) -> Result[TaskGraph, FireflyError]:
        checked = check_task_set(tasks)
        if isinstance(checked, Err):
            return checked
        return Ok(cls(tasks))

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(self._tasks)

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def in_degree(self, task_id: str) -> int:
        return self._in_degree.get(task_id, 0)

    def dependents_of(self, task_id: str) -> tuple[str, ...]:
        return tuple(self._dependents.get(task_id, ()))

    def roots(self) -> tuple[str, ...]:
        return tuple(t for t, n in self._in_degree.items() if n == 0)


# =============================================================================
# Registry
# =============================================================================


class TaskRegistry:
    """Tasks and task groups registered for one run.

    Dependencies need not be registered before their dependents; missing
    references are reported together by ``validate``/``build_execution_order``.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._group_tasks: dict[str, tuple[str, ...]] = {}

    def register(self, task: Task) -> Result[None, FireflyError]:
        if task.id in self._tasks:
            return Err(conflict_error(f'Task "{task.id}" is already registered', source=_SOURCE))
        self._tasks[task.id] = task
        return Ok(None)

    def register_all(self, tasks: Iterable[Task]) -> Result[None, FireflyError]:
        for task in tasks:
            result = self.register(task)
            if isinstance(result, Err):
                return result
        return Ok(None)

    def register_group(self, group: TaskGroup) -> Result[None, FireflyError]:
        if group.id in self._group_tasks:
            return Err(
                conflict_error(f'Task group "{group.id}" is already registered', source=_SOURCE)
            )

        last_by_group = {g: ids[-1] for g, ids in self._group_tasks.items() if ids}
        expanded = expand_task_group(group, last_by_group)
        if isinstance(expanded, Err):
            return expanded

        clashes = [t.id for t in expanded.value.tasks if t.id in self._tasks]
        if clashes:
            return Err(
                conflict_error(
                    f"Task(s) already registered: {', '.join(clashes)}", source=_SOURCE
                )
            )

        for task in expanded.value.tasks:
            self._tasks[task.id] = task
        self._group_tasks[group.id] = tuple(t.id for t in expanded.value.tasks)
        return Ok(None)

    def register_groups(self, groups: Iterable[TaskGroup]) -> Result[None, FireflyError]:
        for group in groups:
            result = self.register_group(group)
            if isinstance(result, Err):
                return result
        return Ok(None)

    def get(self, task_id: str) -> Result[Task, FireflyError]:
        task = self._tasks.get(task_id)
        if task is None:
            return Err(not_found_error(f'Task "{task_id}" is not registered', source=_SOURCE))
        return Ok(task)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        """Tasks in registration order."""
        return iter(list(self._tasks.values()))

    def tasks(self) -> list[Task]:
        return list(self._tasks.values())

    def group_task_ids(self, group_id: str) -> tuple[str, ...]:
        return self._group_tasks.get(group_id, ())

    def group_ids(self) -> tuple[str, ...]:
        return tuple(self._group_tasks)

    def has_group(self, group_id: str) -> bool:
        return group_id in self._group_tasks

    def validate(self) -> GraphValidation:
        return validate_task_graph(self.tasks())

    def build_execution_order(self) -> Result[list[Task], FireflyError]:
        checked = check_task_set(self.tasks())
        if isinstance(checked, Err):
            return checked
        return topological_order(self.tasks())


# =============================================================================
# Reporting
# =============================================================================


@dataclass(frozen=True, slots=True)
class GraphStatistics:
    total_tasks: int
    root_tasks: int
    leaf_tasks: int
    max_depth: int
    total_edges: int
    avg_dependencies: float
    most_dependent_tasks: tuple[str, ...]
    most_depended_upon_tasks: tuple[str, ...]


def graph_statistics(tasks: Sequence[Task]) -> GraphStatistics:
    validation = validate_task_graph(tasks)
    dependents = {t.id: 0 for t in tasks}
    total_edges = 0
    for task in tasks:
        total_edges += len(task.dependencies)
        for dep in task.dependencies:
            dependents[dep] = dependents.get(dep, 0) + 1

    max_deps = max((len(t.dependencies) for t in tasks), default=0)
    max_dependents = max(dependents.values(), default=0)

    return GraphStatistics(
        total_tasks=len(tasks),
        root_tasks=sum(1 for t in tasks if not t.dependencies),
        leaf_tasks=sum(1 for t in tasks if dependents.get(t.id, 0) == 0),
        max_depth=max(validation.depth_map.values(), default=0),
        total_edges=total_edges,
        avg_dependencies=total_edges / len(tasks) if tasks else 0.0,
        most_dependent_tasks=tuple(
            t.id for t in tasks if max_deps > 0 and len(t.dependencies) == max_deps
        ),
        most_depended_upon_tasks=tuple(
            t for t, n in dependents.items() if max_dependents > 0 and n == max_dependents
        ),
    )


def _mermaid_id(task_id: str) -> str:
    return "".join(c if c.isalnum() or c == "_" else "_" for c in task_id)


def _mermaid_label(text: str) -> str:
    return text.replace('"', "#quot;")


def task_graph_to_mermaid(
    tasks: Sequence[Task],
    *,
    direction: str = "TB",
    title: str | None = None,
    include_descriptions: bool = False,
) -> str:
    """Render tasks and dependency edges as a Mermaid flowchart."""
    lines: list[str] = []
    if title:
        lines += ["---", f"title: {title}", "---"]
    lines.append(f"flowchart {direction}")

    for task in tasks:
        label = _mermaid_label(task.name)
        if include_descriptions and task.description:
            label += f"<br/><small>{_mermaid_label(task.description)}</small>"
        lines.append(f'    {_mermaid_id(task.id)}["{label}"]')

    for task in tasks:
        for dep in task.dependencies:
            lines.append(f"    {_mermaid_id(dep)} --> {_mermaid_id(task.id)}")

    return "\n".join(lines) + "\n"
