"""
Shared test fixtures and utilities for the layertree test suite.
"""

import asyncio

import pytest

from layertree.config import reset_config


class ConcurrencyProbe:
    """Tracks how many instrumented coroutines run at once.

    Usage:
        async def work():
            async with probe.slot():
                ...
        assert probe.max <= 2
    """

    def __init__(self):
        self.current = 0
        self.max = 0
        self.calls = 0

    def enter(self) -> None:
        self.calls += 1
        self.current += 1
        self.max = max(self.max, self.current)

    def exit(self) -> None:
        self.current -= 1

    def slot(self):
        probe = self

        class _Slot:
            async def __aenter__(self):
                probe.enter()

            async def __aexit__(self, *exc_info):
                probe.exit()
                return False

        return _Slot()

    async def run(self, value, delay: float = 0.02):
        """Occupy a slot for `delay` seconds, then return `value`."""
        async with self.slot():
            await asyncio.sleep(delay)
        return value


@pytest.fixture
def probe():
    """Fresh concurrency probe for measuring overlapping coroutines."""
    return ConcurrencyProbe()


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch):
    """Isolate every test from LAYERTREE_* variables and earlier `configure` calls."""
    for name in (
        "LAYERTREE_MAX_DEPTH",
        "LAYERTREE_MAX_LAYER_DEPTH",
        "LAYERTREE_DEFAULT_CONCURRENCY",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
