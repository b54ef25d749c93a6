"""Typed loading of ``firefly.toml``.

Example file:

    [engine]
    name = "release"
    rollback_strategy = "reverse"
    continue_on_error = false
    dry_run = false

    [features.changelog]
    enabled = true
    description = "Generate CHANGELOG.md"

    [features.github-release]
    enabled = true
    requires = ["changelog"]
    conflicts = ["gitlab-release"]
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_bool, get_str, get_str_list, get_table

__all__ = [
    "CONFIG_FILENAME",
    "ROLLBACK_STRATEGIES",
    "ConfigError",
    "EngineConfig",
    "EngineSettings",
    "FeatureConfig",
    "load_config",
    "load_config_or_default",
]

CONFIG_FILENAME = "firefly.toml"
ROLLBACK_STRATEGIES = ("reverse", "compensation", "custom", "none")


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class FeatureConfig:
    """One ``[features.<name>]`` table."""

    name: str
    enabled: bool = False
    description: str | None = None
    requires: tuple[str, ...] = ()
    conflicts: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class EngineSettings:
    """The ``[engine]`` table."""

    name: str | None = None
    description: str | None = None
    dry_run: bool = False
    rollback_strategy: str = "reverse"
    continue_on_error: bool = False
    base_path: str | None = None


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Main configuration container."""

    engine: EngineSettings = field(default_factory=EngineSettings)
    features: tuple[FeatureConfig, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> EngineConfig:
        """Create EngineConfig from a mapping (parsed TOML).

        Raises:
            ValueError: On values that are present but malformed.
        """
        engine: StrDict = get_table(data, "engine") or {}
        features: StrDict = get_table(data, "features") or {}

        strategy = get_str(engine, "rollback_strategy") or "reverse"
        if strategy not in ROLLBACK_STRATEGIES:
            raise ValueError(
                f"engine.rollback_strategy must be one of {', '.join(ROLLBACK_STRATEGIES)}"
                f" (got {strategy!r})"
            )

        parsed: list[FeatureConfig] = []
        for name, raw in features.items():
            table = as_str_dict(raw)
            if table is None:
                raise ValueError(f"features.{name} must be a table")
            requires = get_str_list(table, "requires")
            conflicts = get_str_list(table, "conflicts")
            if "requires" in table and requires is None:
                raise ValueError(f"features.{name}.requires must be a list of strings")
            if "conflicts" in table and conflicts is None:
                raise ValueError(f"features.{name}.conflicts must be a list of strings")
            parsed.append(
                FeatureConfig(
                    name=name,
                    enabled=get_bool(table, "enabled") or False,
                    description=get_str(table, "description"),
                    requires=tuple(requires or ()),
                    conflicts=tuple(conflicts or ()),
                )
            )

        return cls(
            engine=EngineSettings(
                name=get_str(engine, "name"),
                description=get_str(engine, "description"),
                dry_run=get_bool(engine, "dry_run") or False,
                rollback_strategy=strategy,
                continue_on_error=get_bool(engine, "continue_on_error") or False,
                base_path=get_str(engine, "base_path"),
            ),
            features=tuple(parsed),
        )


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[EngineConfig, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to firefly.toml

    Returns:
        Ok(EngineConfig) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(EngineConfig.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config structure: {e}", path=path))


def load_config_or_default(path: Path) -> EngineConfig:
    """Load config from file, or return the default config if it doesn't exist."""
    if not path.exists():
        return EngineConfig()
    result = load_config(path)
    if isinstance(result, Ok):
        return result.value
    return EngineConfig()
