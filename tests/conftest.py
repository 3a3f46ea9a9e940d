from __future__ import annotations

from pathlib import Path

import pytest

NANOS_PER_MILLI = 1_000_000


class FakeClock:
    """Monotonic nanosecond clock advanced by hand."""

    def __init__(self, start: int = 0) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance_millis(self, millis: float) -> None:
        self.now += int(millis * NANOS_PER_MILLI)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=1_000 * NANOS_PER_MILLI)


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        if "property" in path.parts:
            item.add_marker(pytest.mark.property)
