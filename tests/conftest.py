from __future__ import annotations

import pytest

from database.memory import InMemoryStore
from tests.helpers import FakeEpochClock, FakeWallClock, RecordingSink


@pytest.fixture
def wall_clock() -> FakeWallClock:
    return FakeWallClock()


@pytest.fixture
def epoch_clock() -> FakeEpochClock:
    return FakeEpochClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
