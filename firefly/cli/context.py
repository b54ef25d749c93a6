from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from firefly.core.config import CONFIG_FILENAME, EngineConfig, load_config
from firefly.core.errors import ErrorCode
from firefly.core.result import Err
from firefly.output.console import ConsoleProtocol, RichConsole


@dataclass(frozen=True, slots=True)
class CLIContext:
    base_path: Path
    config_path: Path | None
    config: EngineConfig
    console: ConsoleProtocol


def build_context(*, config: Path | None = None, verbose: bool = False) -> CLIContext:
    """Load ``firefly.toml`` (explicit path, or the one in the current directory)."""
    console = RichConsole(verbose=verbose)

    config_path = config or Path.cwd() / CONFIG_FILENAME
    engine_config = EngineConfig()
    found: Path | None = None

    if config is not None or config_path.exists():
        result = load_config(config_path)
        if isinstance(result, Err):
            typer.echo(f"error: {result.error.message}", err=True)
            raise typer.Exit(code=int(ErrorCode.ENV_ERROR))
        engine_config = result.value
        found = config_path

    base = Path(engine_config.engine.base_path) if engine_config.engine.base_path else None
    if base is not None and not base.is_absolute():
        base = config_path.parent / base
    base_path = (base or Path.cwd()).resolve()

    return CLIContext(
        base_path=base_path,
        config_path=found,
        config=engine_config,
        console=console,
    )
