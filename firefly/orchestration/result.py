"""The single result shape returned by every orchestration run."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType

from firefly.core.errors import ErrorCode, FireflyError, exit_code_for

from .context import ExecutionContext
from .rollback import RollbackResult

__all__ = ["WorkflowResult"]


@dataclass(frozen=True, slots=True)
class WorkflowResult:
    """Outcome of one run.

    Task lists hold ids in the order things happened. A task that never
    became eligible appears in none of them.
    """

    success: bool
    execution_id: str
    workflow_name: str
    start_time: datetime
    end_time: datetime
    execution_time_ms: float
    executed_tasks: tuple[str, ...] = ()
    failed_tasks: tuple[str, ...] = ()
    skipped_tasks: tuple[str, ...] = ()
    skip_reasons: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    error: FireflyError | None = None
    rollback_executed: bool = False
    compensation_executed: bool = False
    rollback: RollbackResult | None = None
    context: ExecutionContext | None = field(default=None, repr=False)

    def exit_code(self) -> int:
        if self.success:
            return int(ErrorCode.OK)
        if self.rollback is not None and not self.rollback.success:
            return int(ErrorCode.ROLLBACK_ERROR)
        if self.error is not None:
            return exit_code_for(self.error)
        return int(ErrorCode.WORKFLOW_ERROR)

    def summary(self) -> str:
        status = "succeeded" if self.success else "failed"
        return (
            f"{self.workflow_name} {status} in {self.execution_time_ms:.0f}ms:"
            f" {len(self.executed_tasks)} executed,"
            f" {len(self.skipped_tasks)} skipped,"
            f" {len(self.failed_tasks)} failed"
        )
