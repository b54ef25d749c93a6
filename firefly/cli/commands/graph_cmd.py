"""Graph command - validate a task set and show its execution order."""

from __future__ import annotations

from pathlib import Path

import typer

from firefly.cli.commands._helpers import exit_on_error, load_producer
from firefly.cli.context import build_context
from firefly.core.errors import ErrorCode
from firefly.orchestration import graph_statistics, task_graph_to_mermaid, validate_task_graph
from firefly.output.console import Style


def graph(
    producer: str = typer.Argument(..., help="Task producer as 'package.module:function'"),
    mermaid: bool = typer.Option(False, "--mermaid", help="Print a Mermaid flowchart"),
    descriptions: bool = typer.Option(
        False, "--descriptions", help="Include task descriptions (with --mermaid)"
    ),
    direction: str = typer.Option("TB", "--direction", help="Mermaid direction (TB, LR, ...)"),
    config: Path | None = typer.Option(
        None, "--config", help="Path to firefly.toml", show_default=False
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Validate a task set and print its execution order."""
    ctx = build_context(config=config, verbose=verbose)
    tasks = exit_on_error(load_producer(producer), ctx)

    validation = validate_task_graph(tasks)
    for warning in validation.warnings:
        ctx.console.warning(warning)
    if not validation.is_valid:
        for error in validation.errors:
            ctx.console.error(error)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    if mermaid:
        typer.echo(
            task_graph_to_mermaid(
                tasks,
                direction=direction,
                title=ctx.config.engine.name,
                include_descriptions=descriptions,
            ),
            nl=False,
        )
        return

    by_id = {t.id: t for t in tasks}
    ctx.console.header(f"Execution order ({len(tasks)} tasks)")
    for index, task_id in enumerate(validation.execution_order, start=1):
        task = by_id[task_id]
        indent = "  " * validation.depth_map.get(task_id, 0)
        ctx.console.print(f"{index:>3}. {indent}{task.id}")
        if task.dependencies:
            ctx.console.print(f"     {indent}after {', '.join(task.dependencies)}", Style.DIM)

    stats = graph_statistics(tasks)
    ctx.console.debug(
        f"roots={stats.root_tasks} leaves={stats.leaf_tasks} max_depth={stats.max_depth}"
        f" avg_deps={stats.avg_dependencies:.2f}"
    )
