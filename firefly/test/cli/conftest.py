from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    # Rich wraps at 80 columns when stdout is not a terminal.
    monkeypatch.setenv("COLUMNS", "200")
