from __future__ import annotations

import typer

from firefly import __version__
from firefly.cli.commands.features_cmd import features
from firefly.cli.commands.graph_cmd import graph
from firefly.cli.commands.run_cmd import run

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(graph)
app.command()(run)
app.command()(features)


@app.callback(invoke_without_command=True)
def _main(  # pyright: ignore[reportUnusedFunction]
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
) -> None:
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=0)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def main() -> None:
    app()
