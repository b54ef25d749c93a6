"""Immutable feature-flag registry.

A ``FeatureManager`` holds named boolean flags with dependency and conflict
rules. Every update (``enable``, ``disable``, ``toggle``, ``set_features``)
returns a new manager or an error; the receiver is never changed. Rules:

- a flag cannot be enabled while one of its dependencies is disabled
- a flag cannot be enabled while one of its conflicts is enabled
- a flag cannot be disabled while an enabled flag depends on it

Names are validated up front (non-empty, at most 100 characters, letters,
digits and ``:_-``); a malformed name is rejected, never coerced.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from types import MappingProxyType

from firefly.core.config import FeatureConfig
from firefly.core.errors import FireflyError, conflict_error, validation_error
from firefly.core.result import Err, Ok, Result

__all__ = [
    "MAX_FEATURE_NAME_LENGTH",
    "FeatureFlag",
    "FeatureManager",
    "validate_feature_name",
]

MAX_FEATURE_NAME_LENGTH = 100
_NAME_RE = re.compile(r"^[A-Za-z0-9:_-]+$")
_SOURCE = "features"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class FeatureFlag:
    """A single flag and its rules."""

    name: str
    enabled: bool = False
    description: str | None = None
    dependencies: tuple[str, ...] = ()
    conflicts_with: tuple[str, ...] = ()
    metadata: Mapping[str, object] = field(default_factory=lambda: MappingProxyType({}))
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_config(cls, config: FeatureConfig) -> FeatureFlag:
        return cls(
            name=config.name,
            enabled=config.enabled,
            description=config.description,
            dependencies=config.requires,
            conflicts_with=config.conflicts,
        )


def validate_feature_name(name: object) -> Result[str, FireflyError]:
    if not isinstance(name, str) or not name.strip():
        return Err(validation_error("Feature name must be a non-empty string", source=_SOURCE))
    if len(name) > MAX_FEATURE_NAME_LENGTH:
        return Err(
            validation_error(
                f"Feature name must be at most {MAX_FEATURE_NAME_LENGTH} characters: {name[:20]}...",
                source=_SOURCE,
            )
        )
    if not _NAME_RE.match(name):
        return Err(
            validation_error(
                f"Feature name contains invalid characters: {name}"
                " (allowed: letters, digits, ':', '_', '-')",
                source=_SOURCE,
            )
        )
    return Ok(name)


class FeatureManager:
    """Read-only view over a set of flags; updates return a new manager."""

    __slots__ = ("_flags",)

    def __init__(self, flags: Mapping[str, FeatureFlag]) -> None:
        self._flags: Mapping[str, FeatureFlag] = MappingProxyType(dict(flags))

    # --- construction -----------------------------------------------------

    @classmethod
    def empty(cls) -> FeatureManager:
        return cls({})

    @classmethod
    def from_flags(cls, flags: Iterable[FeatureFlag]) -> Result[FeatureManager, FireflyError]:
        """Build a manager, checking names and the flag rules over the whole set."""
        by_name: dict[str, FeatureFlag] = {}
        for flag in flags:
            checked = validate_feature_name(flag.name)
            if isinstance(checked, Err):
                return checked
            for ref in (*flag.dependencies, *flag.conflicts_with):
                ref_checked = validate_feature_name(ref)
                if isinstance(ref_checked, Err):
                    return ref_checked
            if flag.name in by_name:
                return Err(conflict_error(f"Duplicate feature flag: {flag.name}", source=_SOURCE))
            by_name[flag.name] = flag

        manager = cls(by_name)
        problem = manager._first_violation()
        if problem is not None:
            return Err(problem)
        return Ok(manager)

    @classmethod
    def from_options(
        cls,
        enabled_features: Iterable[str] = (),
        feature_flags: Mapping[str, bool] | None = None,
        definitions: Iterable[FeatureFlag] = (),
    ) -> Result[FeatureManager, FireflyError]:
        """Seed a manager from run options.

        ``definitions`` supply rules and defaults; ``feature_flags`` overrides
        individual states; names in ``enabled_features`` are switched on.
        Names that have no definition become plain flags without rules.
        """
        flags: dict[str, FeatureFlag] = {d.name: d for d in definitions}

        for name, enabled in (feature_flags or {}).items():
            existing = flags.get(name)
            flags[name] = replace(existing, enabled=enabled) if existing else FeatureFlag(
                name=name, enabled=enabled
            )

        for name in enabled_features:
            existing = flags.get(name)
            flags[name] = replace(existing, enabled=True) if existing else FeatureFlag(
                name=name, enabled=True
            )

        return cls.from_flags(flags.values())

    @classmethod
    def from_config(cls, features: Iterable[FeatureConfig]) -> Result[FeatureManager, FireflyError]:
        return cls.from_flags(FeatureFlag.from_config(f) for f in features)

    # --- queries ----------------------------------------------------------

    def is_enabled(self, name: str) -> bool:
        flag = self._flags.get(name)
        return flag is not None and flag.enabled

    def are_all_enabled(self, names: Iterable[str]) -> bool:
        return all(self.is_enabled(n) for n in names)

    def is_any_enabled(self, names: Iterable[str]) -> bool:
        return any(self.is_enabled(n) for n in names)

    def enabled_features(self) -> frozenset[str]:
        return frozenset(n for n, f in self._flags.items() if f.enabled)

    def disabled_features(self) -> frozenset[str]:
        return frozenset(n for n, f in self._flags.items() if not f.enabled)

    def all_features(self) -> tuple[FeatureFlag, ...]:
        return tuple(self._flags.values())

    def get(self, name: str) -> FeatureFlag | None:
        return self._flags.get(name)

    def get_metadata(self, name: str) -> Mapping[str, object] | None:
        flag = self._flags.get(name)
        return flag.metadata if flag else None

    def export(self) -> dict[str, bool]:
        return {n: f.enabled for n, f in self._flags.items()}

    def __contains__(self, name: object) -> bool:
        return name in self._flags

    def __len__(self) -> int:
        return len(self._flags)

    def __repr__(self) -> str:
        return f"FeatureManager(enabled={sorted(self.enabled_features())})"

    # --- pure updates -----------------------------------------------------

    def enable(self, name: str) -> Result[FeatureManager, FireflyError]:
        checked = validate_feature_name(name)
        if isinstance(checked, Err):
            return checked

        flag = self._flags.get(name) or FeatureFlag(name=name)
        if flag.enabled:
            return Ok(self)

        missing = [d for d in flag.dependencies if not self.is_enabled(d)]
        if missing:
            return Err(
                validation_error(
                    f"Cannot enable {name}: missing dependencies {', '.join(missing)}",
                    source=_SOURCE,
                )
            )

        conflicts = [c for c in self._conflicts_of(flag) if self.is_enabled(c)]
        if conflicts:
            return Err(
                conflict_error(
                    f"Cannot enable {name}: conflicts with enabled {', '.join(conflicts)}",
                    source=_SOURCE,
                )
            )

        return Ok(self._with(replace(flag, enabled=True, updated_at=_utcnow())))

    def disable(self, name: str) -> Result[FeatureManager, FireflyError]:
        checked = validate_feature_name(name)
        if isinstance(checked, Err):
            return checked

        flag = self._flags.get(name)
        if flag is None or not flag.enabled:
            return Ok(self)

        dependents = [
            f.name for f in self._flags.values() if f.enabled and name in f.dependencies
        ]
        if dependents:
            return Err(
                validation_error(
                    f"Cannot disable {name}: required by {', '.join(dependents)}",
                    source=_SOURCE,
                )
            )

        return Ok(self._with(replace(flag, enabled=False, updated_at=_utcnow())))

    def toggle(self, name: str) -> Result[FeatureManager, FireflyError]:
        if self.is_enabled(name):
            return self.disable(name)
        return self.enable(name)

    def set_features(self, states: Mapping[str, bool]) -> Result[FeatureManager, FireflyError]:
        """Apply several states at once; the result must satisfy every rule."""
        flags = dict(self._flags)
        for name, enabled in states.items():
            checked = validate_feature_name(name)
            if isinstance(checked, Err):
                return checked
            existing = flags.get(name)
            if existing is None:
                flags[name] = FeatureFlag(name=name, enabled=enabled)
            elif existing.enabled != enabled:
                flags[name] = replace(existing, enabled=enabled, updated_at=_utcnow())

        manager = FeatureManager(flags)
        problem = manager._first_violation()
        if problem is not None:
            return Err(problem)
        return Ok(manager)

    def with_metadata(
        self, name: str, metadata: Mapping[str, object]
    ) -> Result[FeatureManager, FireflyError]:
        checked = validate_feature_name(name)
        if isinstance(checked, Err):
            return checked
        flag = self._flags.get(name) or FeatureFlag(name=name)
        merged = MappingProxyType({**flag.metadata, **metadata})
        return Ok(self._with(replace(flag, metadata=merged, updated_at=_utcnow())))

    def check_compatibility(self, names: Iterable[str]) -> Result[None, FireflyError]:
        """Check that ``names`` could all be enabled together, without changing anything."""
        wanted = list(dict.fromkeys(names))
        for name in wanted:
            checked = validate_feature_name(name)
            if isinstance(checked, Err):
                return checked

        prospective = set(wanted) | self.enabled_features()
        for name in wanted:
            flag = self._flags.get(name) or FeatureFlag(name=name)
            missing = [d for d in flag.dependencies if d not in prospective]
            if missing:
                return Err(
                    validation_error(
                        f"Cannot enable {name}: missing dependencies {', '.join(missing)}",
                        source=_SOURCE,
                    )
                )
            clashing = [c for c in self._conflicts_of(flag) if c in prospective]
            if clashing:
                return Err(
                    conflict_error(
                        f"Feature {name} conflicts with {', '.join(clashing)}", source=_SOURCE
                    )
                )
        return Ok(None)

    # --- internals --------------------------------------------------------

    def _with(self, flag: FeatureFlag) -> FeatureManager:
        return FeatureManager({**self._flags, flag.name: flag})

    def _conflicts_of(self, flag: FeatureFlag) -> list[str]:
        """Declared conflicts plus flags that declare a conflict with this one."""
        names = list(flag.conflicts_with)
        for other in self._flags.values():
            if flag.name in other.conflicts_with and other.name not in names:
                names.append(other.name)
        return names

    def _first_violation(self) -> FireflyError | None:
        for flag in self._flags.values():
            if not flag.enabled:
                continue
            missing = [d for d in flag.dependencies if not self.is_enabled(d)]
            if missing:
                return validation_error(
                    f"Feature {flag.name} is enabled but depends on disabled"
                    f" {', '.join(missing)}",
                    source=_SOURCE,
                )
            clashing = [c for c in flag.conflicts_with if self.is_enabled(c)]
            if clashing:
                return conflict_error(
                    f"Feature {flag.name} conflicts with enabled {', '.join(clashing)}",
                    source=_SOURCE,
                )
        return None
