"""Run command - execute a task set."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

import typer

from firefly.cli.commands._helpers import exit_on_error, load_producer
from firefly.cli.context import build_context
from firefly.orchestration import ServiceLocator, options_from_config, run_tasks
from firefly.output.console import Style
from firefly.services import default_service_definitions


class Rollback(StrEnum):
    reverse = "reverse"
    compensation = "compensation"
    custom = "custom"
    none = "none"


def run(
    producer: str = typer.Argument(..., help="Task producer as 'package.module:function'"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Ask tasks not to make changes"),
    rollback: Rollback | None = typer.Option(
        None, "--rollback", help="Rollback strategy (default from firefly.toml)", show_default=False
    ),
    feature: list[str] = typer.Option(
        [], "--feature", "-f", help="Enable a feature flag (repeatable)"
    ),
    execution_id: str | None = typer.Option(
        None, "--execution-id", help="Run id (generated when omitted)", show_default=False
    ),
    config: Path | None = typer.Option(
        None, "--config", help="Path to firefly.toml", show_default=False
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
) -> None:
    """Run a task set through the orchestrator."""
    ctx = build_context(config=config, verbose=verbose)
    tasks = exit_on_error(load_producer(producer), ctx)

    configured = tuple(f.name for f in ctx.config.features if f.enabled)
    options = options_from_config(
        ctx.config,
        execution_id=execution_id,
        dry_run=dry_run or ctx.config.engine.dry_run,
        rollback_strategy=rollback.value if rollback else None,
        enabled_features=tuple(dict.fromkeys([*configured, *feature])),
    )

    locator = ServiceLocator(default_service_definitions(), ctx.base_path, console=ctx.console)
    result = run_tasks(tasks, options, services=locator.resolve_all(), console=ctx.console)

    if result.error is not None and result.error.hint:
        ctx.console.print(f"hint: {result.error.hint}", Style.DIM)
    if result.rollback is not None:
        for error in result.rollback.errors:
            ctx.console.print(f"rollback: {error.message}", Style.DIM)
    ctx.console.print(f"execution id: {result.execution_id}", Style.DIM)

    raise typer.Exit(code=result.exit_code())
