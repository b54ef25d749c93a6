from __future__ import annotations

import pytest

from firefly.orchestration.context import ExecutionContext


@pytest.fixture
def ctx() -> ExecutionContext:
    return ExecutionContext.create(execution_id="test-run")
