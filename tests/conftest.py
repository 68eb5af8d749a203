import os
import random
from datetime import datetime, timedelta, timezone

import pytest

from lexicard.application.due_state import DueStateCache
from lexicard.application.lifecycle import CardLifecycleManager
from lexicard.application.queue_builder import ReviewQueueBuilder
from lexicard.infrastructure.adapters.memory_store import InMemoryCardStore

# Mid-morning, so "today" and "tomorrow" never straddle a day boundary
NOW = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock injected wherever production code asks for 'now'."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir and drops LEXICARD_* env vars."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config and the default db
    monkeypatch.setenv("HOME", str(home))
    for key in list(os.environ):
        if key.startswith("LEXICARD_"):
            monkeypatch.delenv(key)
    return home


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryCardStore(schema_version=4)


@pytest.fixture
def cache():
    return DueStateCache()


@pytest.fixture
def manager(store, clock, cache):
    return CardLifecycleManager(store, clock=clock, cache=cache)


@pytest.fixture
def builder(store, clock, cache):
    return ReviewQueueBuilder(store, clock=clock, rng=random.Random(7), cache=cache)
