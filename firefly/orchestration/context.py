"""Immutable execution context threaded through every task.

A context carries the run identity, read-only configuration, the resolved
collaborator services and a data mapping that tasks extend for downstream
consumers. It is never mutated: ``fork``/``fork_multiple`` return a new
context whose data is the old mapping overlaid with the update, so any
context a task was handed stays valid and unchanged.

Usage:
    ctx = ExecutionContext.create({"repo": "."})
    ctx2 = ctx.fork("next_version", "1.4.0")
    ctx.has("next_version")   # False
    ctx2.get("next_version")  # Ok("1.4.0")
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING
from uuid import uuid4

from firefly.core.errors import FireflyError, not_found_error
from firefly.core.result import Err, Ok, Result

if TYPE_CHECKING:
    from firefly.orchestration.services import ResolvedServices

__all__ = ["ExecutionContext", "new_execution_id"]

_EMPTY: Mapping[str, object] = MappingProxyType({})


def new_execution_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _freeze(mapping: Mapping[str, object] | None) -> Mapping[str, object]:
    if not mapping:
        return _EMPTY
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True, slots=True, eq=False, weakref_slot=True)
class ExecutionContext:
    """Snapshot of the run state handed to a task.

    Attributes:
        execution_id: Identifier shared by every context of one run.
        start_time: When the run started (UTC).
        config: Read-only configuration supplied by the caller.
        dry_run: Tasks should report instead of performing side effects.
        services: Lazily constructed collaborator services, if any.
    """

    execution_id: str
    start_time: datetime
    config: Mapping[str, object] = _EMPTY
    dry_run: bool = False
    services: ResolvedServices | None = None
    _data: Mapping[str, object] = field(default=_EMPTY, repr=False)

    @classmethod
    def create(
        cls,
        config: Mapping[str, object] | None = None,
        *,
        execution_id: str | None = None,
        data: Mapping[str, object] | None = None,
        services: ResolvedServices | None = None,
        dry_run: bool = False,
    ) -> ExecutionContext:
        return cls(
            execution_id=execution_id or new_execution_id(),
            start_time=_utcnow(),
            config=_freeze(config),
            dry_run=dry_run,
            services=services,
            _data=_freeze(data),
        )

    @property
    def data(self) -> Mapping[str, object]:
        """Read-only view of the data written so far."""
        return self._data

    def get(self, key: str) -> Result[object, FireflyError]:
        if key not in self._data:
            return Err(not_found_error(f'Key "{key}" not found in context', source="context"))
        return Ok(self._data[key])

    def get_or(self, key: str, default: object = None) -> object:
        return self._data.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._data

    def snapshot(self) -> Mapping[str, object]:
        """Detached read-only copy of the data mapping."""
        return MappingProxyType(dict(self._data))

    def fork(self, key: str, value: object) -> ExecutionContext:
        if key in self._data and self._data[key] is value:
            return self
        return self._with_data({**self._data, key: value})

    def fork_multiple(self, updates: Mapping[str, object]) -> ExecutionContext:
        changed = any(k not in self._data or self._data[k] is not v for k, v in updates.items())
        if not changed:
            return self
        return self._with_data({**self._data, **updates})

    def with_services(self, services: ResolvedServices | None) -> ExecutionContext:
        return ExecutionContext(
            execution_id=self.execution_id,
            start_time=self.start_time,
            config=self.config,
            dry_run=self.dry_run,
            services=services,
            _data=self._data,
        )

    def _with_data(self, data: dict[str, object]) -> ExecutionContext:
        return ExecutionContext(
            execution_id=self.execution_id,
            start_time=self.start_time,
            config=self.config,
            dry_run=self.dry_run,
            services=self.services,
            _data=MappingProxyType(data),
        )
