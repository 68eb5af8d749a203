from datetime import datetime, timezone

import pytest

from lexicard.application.lifecycle import CardLifecycleManager
from lexicard.application.migration import MIGRATIONS, ensure_schema, migrate
from lexicard.domain.models import Rating
from lexicard.infrastructure.adapters.memory_store import InMemoryCardStore

NOW = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)

LEGACY = [
    {"word": "apple", "chatId": "1712", "repetitions": 2, "interval": 6, "easeFactor": 2.5,
     "dueDate": "2024-03-09T00:00:00.000Z", "status": "review"},
    {"word": "Pear", "dueDate": "2024-03-20T00:00:00.000Z"},
    {"chatId": "1712"},
    {"word": "   "},
]


@pytest.fixture
def legacy_store():
    return InMemoryCardStore(legacy_records=LEGACY, schema_version=3)


def test_registry_has_scoping_step():
    assert 4 in MIGRATIONS


@pytest.mark.asyncio
async def test_ensure_schema_scopes_legacy_cards(legacy_store):
    report = await ensure_schema(legacy_store, NOW)

    assert report.from_version == 3
    assert report.to_version == 4
    assert report.steps == [4]
    assert report.migrated == 2
    assert report.skipped == 2
    assert await legacy_store.get_schema_version() == 4

    apple = await legacy_store.get("chat:1712:apple")
    assert apple.repetitions == 2
    assert apple.interval == 6
    pear = await legacy_store.get("global:all:pear")
    assert pear.scope_key == "global:all"


@pytest.mark.asyncio
async def test_legacy_records_left_untouched(legacy_store):
    before = await legacy_store.get_legacy_records()
    await ensure_schema(legacy_store, NOW)
    assert await legacy_store.get_legacy_records() == before


@pytest.mark.asyncio
async def test_rerun_is_idempotent_and_keeps_progress(legacy_store):
    await ensure_schema(legacy_store, NOW)
    manager = CardLifecycleManager(legacy_store, clock=lambda: NOW)
    pear = await legacy_store.get("global:all:pear")
    rated = await manager.rate(pear, Rating.EASY)

    report = await migrate(legacy_store, 3, 4, NOW)

    assert report.migrated == 0
    assert report.existing == 2
    assert len(await legacy_store.get_all()) == 2
    assert await legacy_store.get("global:all:pear") == rated


@pytest.mark.asyncio
async def test_ensure_schema_noop_when_current():
    store = InMemoryCardStore(legacy_records=LEGACY, schema_version=4)

    report = await ensure_schema(store, NOW)

    assert report.steps == []
    assert report.migrated == 0
    assert await store.get_all() == []


@pytest.mark.asyncio
async def test_fresh_store_is_stamped():
    store = InMemoryCardStore()

    report = await ensure_schema(store, NOW)

    assert report.from_version == 0
    assert report.steps == [4]
    assert await store.get_schema_version() == 4


@pytest.mark.asyncio
async def test_chat_id_with_separator_is_skipped():
    store = InMemoryCardStore(legacy_records=[{"word": "apple", "chatId": "a:b"}], schema_version=3)

    report = await ensure_schema(store, NOW)

    assert report.skipped == 1
    assert await store.get_all() == []
