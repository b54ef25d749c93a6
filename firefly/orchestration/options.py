"""Run options for the orchestrator."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from firefly.core.config import EngineConfig
from firefly.core.errors import FireflyError, validation_error
from firefly.core.result import Err, Ok, Result

from .features import FeatureFlag, validate_feature_name
from .rollback import ROLLBACK_STRATEGIES, RollbackStrategy

__all__ = ["OrchestratorOptions", "options_from_config", "validate_options"]


@dataclass(frozen=True, slots=True)
class OrchestratorOptions:
    """Options for one orchestration run.

    Attributes:
        execution_id: Caller-supplied run id; generated when None.
        name: Workflow name reported in the result.
        description: Free text for humans.
        dry_run: Carried in the context for tasks to honor.
        rollback_strategy: One of reverse, compensation, custom, none.
        enabled_features: Feature names switched on for this run.
        feature_flags: Explicit per-feature states, applied before
            ``enabled_features``.
        feature_definitions: Flags with dependency/conflict rules.
        continue_on_error: Keep undoing after a rollback failure.
    """

    execution_id: str | None = None
    name: str = "workflow"
    description: str | None = None
    dry_run: bool = False
    rollback_strategy: RollbackStrategy = "reverse"
    enabled_features: tuple[str, ...] = ()
    feature_flags: Mapping[str, bool] = field(default_factory=lambda: MappingProxyType({}))
    feature_definitions: tuple[FeatureFlag, ...] = ()
    continue_on_error: bool = False


def validate_options(options: OrchestratorOptions) -> Result[OrchestratorOptions, FireflyError]:
    problems: list[str] = []

    if options.execution_id is not None and not options.execution_id.strip():
        problems.append("execution_id must not be empty")
    if not options.name or not options.name.strip():
        problems.append("name must not be empty")
    if options.rollback_strategy not in ROLLBACK_STRATEGIES:
        problems.append(
            f"rollback_strategy must be one of {', '.join(ROLLBACK_STRATEGIES)}"
            f" (got {options.rollback_strategy!r})"
        )

    names = [
        *options.enabled_features,
        *options.feature_flags,
        *(d.name for d in options.feature_definitions),
    ]
    for name in names:
        checked = validate_feature_name(name)
        if isinstance(checked, Err):
            problems.append(checked.error.message)

    if problems:
        message = problems[0] if len(problems) == 1 else "Invalid orchestrator options"
        return Err(validation_error(message, details=tuple(problems), source="options"))
    return Ok(options)


def options_from_config(config: EngineConfig, **overrides: object) -> OrchestratorOptions:
    """Translate ``firefly.toml`` settings into options; keyword overrides win."""
    engine = config.engine
    values: dict[str, object] = {
        "name": engine.name or "workflow",
        "description": engine.description,
        "dry_run": engine.dry_run,
        "rollback_strategy": engine.rollback_strategy,
        "continue_on_error": engine.continue_on_error,
        "feature_definitions": tuple(FeatureFlag.from_config(f) for f in config.features),
    }
    values.update({k: v for k, v in overrides.items() if v is not None})
    return OrchestratorOptions(**values)  # type: ignore[arg-type]
