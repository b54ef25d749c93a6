"""Features command - list configured feature flags."""

from __future__ import annotations

from pathlib import Path

import typer

from firefly.cli.commands._helpers import exit_on_error
from firefly.cli.context import build_context
from firefly.orchestration import FeatureManager
from firefly.output.console import Style


def features(
    config: Path | None = typer.Option(
        None, "--config", help="Path to firefly.toml", show_default=False
    ),
) -> None:
    """List feature flags from firefly.toml."""
    ctx = build_context(config=config)
    manager = exit_on_error(FeatureManager.from_config(ctx.config.features), ctx)

    if not len(manager):
        ctx.console.info("No features configured")
        return

    for flag in sorted(manager.all_features(), key=lambda f: f.name):
        mark, style = ("on ", Style.SUCCESS) if flag.enabled else ("off", Style.DIM)
        ctx.console.print(f"{mark} {flag.name}", style)
        if flag.description:
            ctx.console.print(f"    {flag.description}", Style.DIM)
        if flag.dependencies:
            ctx.console.print(f"    requires: {', '.join(flag.dependencies)}", Style.DIM)
        if flag.conflicts_with:
            ctx.console.print(f"    conflicts: {', '.join(flag.conflicts_with)}", Style.DIM)
