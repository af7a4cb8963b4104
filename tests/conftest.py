from __future__ import annotations

from pathlib import Path

import pytest

from omnilink.stores import CacheRoot


class FakeClock:
    """Settable clock for age-based cache pruning."""

    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(1_700_000_000.0)


@pytest.fixture
def cache_root(tmp_path: Path, clock: FakeClock) -> CacheRoot:
    """Cache rooted under the pytest tmp_path, driven by the fake clock."""
    return CacheRoot(tmp_path / "cache", clock=clock)
