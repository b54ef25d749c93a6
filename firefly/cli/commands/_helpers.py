"""Shared helpers for CLI commands."""

from __future__ import annotations

import importlib
from collections.abc import Iterable
from typing import TYPE_CHECKING

import typer

from firefly.core.errors import FireflyError, exit_code_for, not_found_error, validation_error
from firefly.core.result import Err, Ok, Result
from firefly.orchestration import Task, TaskGroup, TaskRegistry
from firefly.output.console import Style

if TYPE_CHECKING:
    from firefly.cli.context import CLIContext


def exit_on_error[T](result: Result[T, FireflyError], ctx: CLIContext) -> T:
    """Return the value, or print the error (with hint and details) and exit.

    The exit code comes from the error kind.
    """
    if isinstance(result, Err):
        error = result.error
        ctx.console.error(error.message)
        for detail in error.details:
            ctx.console.print(f"  {detail}", Style.DIM)
        if error.hint:
            ctx.console.print(f"hint: {error.hint}", Style.DIM)
        raise typer.Exit(code=exit_code_for(error))
    return result.value


def load_producer(target: str) -> Result[list[Task], FireflyError]:
    """Import ``module:callable`` and collect the tasks it produces.

    The callable takes no arguments and returns a ``TaskRegistry`` or an
    iterable of ``Task``/``TaskGroup`` items (groups are expanded in order).
    """
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        return Err(
            validation_error(
                f"Producer must look like 'package.module:function' (got {target!r})", source="cli"
            )
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        return Err(not_found_error(f"Cannot import {module_name}: {e}", source="cli"))

    producer = getattr(module, attr, None)
    if not callable(producer):
        return Err(not_found_error(f"{module_name} has no callable {attr!r}", source="cli"))

    produced = producer()
    if isinstance(produced, TaskRegistry):
        return Ok(produced.tasks())
    if not isinstance(produced, Iterable):
        return Err(
            validation_error(f"{target} must return tasks, got {type(produced).__name__}", source="cli")
        )
    return _collect(produced, target)


def _collect(items: Iterable[object], target: str) -> Result[list[Task], FireflyError]:
    registry = TaskRegistry()
    for item in items:
        match item:
            case Task():
                result = registry.register(item)
            case TaskGroup():
                result = registry.register_group(item)
            case _:
                return Err(
                    validation_error(
                        f"{target} produced {type(item).__name__}, expected Task or TaskGroup",
                        source="cli",
                    )
                )
        if isinstance(result, Err):
            return result
    return Ok(registry.tasks())
