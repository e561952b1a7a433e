from __future__ import annotations

import os

os.environ.setdefault("TEST_LOG_PATH", "/tmp/snowdrift-tests.log")

import pytest

from snowdrift import create_app
from snowdrift.coordination import MemoryNamespace


class FakeClock:
    """Wall clock in milliseconds that only moves when told to.

    ``script`` values are returned first, one per read; after that the clock
    keeps returning ``now``.
    """

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now
        self.script: list[int] = []
        self.reads = 0

    def __call__(self) -> int:
        self.reads += 1
        if self.script:
            self.now = self.script.pop(0)
        return self.now

    def advance(self, ms: int = 1) -> None:
        self.now += ms


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def namespace() -> MemoryNamespace:
    return MemoryNamespace()


@pytest.fixture
def app(namespace):
    app = create_app("testing", coordinator=namespace.session())
    yield app
    app.extensions["snowdrift"]["shutdown"]()


@pytest.fixture
def client(app):
    return app.test_client()
