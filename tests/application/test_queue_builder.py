import random
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from lexicard.application.queue_builder import (
    ReviewQueueBuilder,
    ReviewSession,
    eligible_scope_keys,
)
from lexicard.domain.exceptions import InvalidStateError
from lexicard.domain.models import Card, Rating
from lexicard.domain.scope import GLOBAL_SCOPE, Scope

NOW = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)
TOMORROW = datetime(2024, 3, 11, tzinfo=timezone.utc)


async def seed(store, word, scope, **fields):
    card = replace(Card.create(word, scope, NOW), **fields)
    await store.upsert(card)
    return card


def test_eligible_scope_keys():
    assert eligible_scope_keys(GLOBAL_SCOPE) == ["global:all"]
    assert eligible_scope_keys(Scope.chat("1")) == ["chat:1", "global:all"]


@pytest.mark.asyncio
async def test_scope_isolation_with_global_fallback(store, builder):
    await seed(store, "apple", Scope.chat("1"))
    await seed(store, "pear", Scope.chat("2"))
    await seed(store, "fig", Scope.document("doc1"))
    await seed(store, "plum", GLOBAL_SCOPE)

    session = await builder.open(Scope.chat("1"))
    words = set()
    while (card := session.next()) is not None:
        words.add(card.word)
        session.complete(replace(card, interval=1))

    assert words == {"apple", "plum"}


@pytest.mark.asyncio
async def test_prefix_scope_ids_do_not_collide(store, builder):
    await seed(store, "apple", Scope.chat("1"))
    await seed(store, "pear", Scope.chat("12"))

    cards = await builder.collect(Scope.chat("1"))

    assert [c.word for c in cards] == ["apple"]


@pytest.mark.asyncio
async def test_global_session_sees_only_global_cards(store, builder):
    await seed(store, "apple", Scope.chat("1"))
    await seed(store, "plum", GLOBAL_SCOPE)

    cards = await builder.collect(GLOBAL_SCOPE)

    assert [c.word for c in cards] == ["plum"]


@pytest.mark.asyncio
async def test_scheduled_cards_excluded_and_stats(store, builder):
    await seed(store, "apple", Scope.chat("1"))  # new, due now
    await seed(
        store, "pear", Scope.chat("1"), repetitions=2, interval=6, due_date=NOW - timedelta(days=3)
    )
    await seed(store, "fig", Scope.chat("1"), repetitions=2, interval=6, due_date=TOMORROW)
    await seed(store, "kiwi", Scope.chat("1"), repetitions=1, interval=1, due_date=NOW)

    session = await builder.open(Scope.chat("1"))
    stats = session.stats()

    assert len(session) == 3
    assert stats.new_count == 1
    assert stats.review_count == 2
    assert stats.reviewed == 0
    assert stats.remaining == 3


@pytest.mark.asyncio
async def test_seeded_shuffle_is_reproducible(store, clock):
    for word in ["a", "b", "c", "d", "e", "f", "g", "h"]:
        await seed(store, word, GLOBAL_SCOPE)

    first = await ReviewQueueBuilder(store, clock, rng=random.Random(3)).open(GLOBAL_SCOPE)
    second = await ReviewQueueBuilder(store, clock, rng=random.Random(3)).open(GLOBAL_SCOPE)

    assert [c.id for c in first._queue] == [c.id for c in second._queue]
    assert sorted(c.word for c in first._queue) == ["a", "b", "c", "d", "e", "f", "g", "h"]


@pytest.mark.asyncio
async def test_empty_scope_gives_finished_session(builder):
    session = await builder.open(Scope.document("nothing"))

    assert session.is_finished()
    assert session.next() is None
    with pytest.raises(InvalidStateError):
        session.next()


def make_session(*words):
    return ReviewSession(GLOBAL_SCOPE, [Card.create(w, GLOBAL_SCOPE, NOW) for w in words])


def test_next_requires_rating_first():
    session = make_session("a", "b")
    session.next()
    with pytest.raises(InvalidStateError):
        session.next()


def test_complete_advances_and_counts():
    session = make_session("a", "b")
    card = session.next()
    assert session.current is card
    assert session.stats().remaining == 2

    session.complete(replace(card, interval=1, repetitions=1))

    assert session.current is None
    assert session.reviewed == 1
    assert session.stats().remaining == 1
    assert not session.is_finished()


def test_zero_interval_requeues_at_tail():
    session = make_session("a", "b")
    first = session.next()
    session.complete(replace(first, interval=0))

    second = session.next()
    assert second.id != first.id
    session.complete(replace(second, interval=1))

    again = session.next()
    assert again.id == first.id
    session.complete(replace(again, interval=1, repetitions=1))

    assert session.is_finished()
    assert session.next() is None
    assert session.reviewed == 3


def test_complete_rejects_wrong_card():
    session = make_session("a", "b")
    session.next()
    with pytest.raises(InvalidStateError):
        session.complete(Card.create("zzz", GLOBAL_SCOPE, NOW))
    with pytest.raises(InvalidStateError):
        make_session("a").complete(Card.create("a", GLOBAL_SCOPE, NOW))


def test_close_discards_queue():
    session = make_session("a", "b", "c")
    session.next()
    session.close()

    assert session.closed
    assert session.is_finished()
    assert session.current is None
    with pytest.raises(InvalidStateError):
        session.next()


@pytest.mark.asyncio
async def test_lapsed_card_is_admitted_again_same_day(store, manager, builder):
    # Again on a learned card: repetitions 0, due tomorrow. It classifies as
    # new, and new cards are reviewable, so a session reopened today holds it.
    await seed(store, "pear", GLOBAL_SCOPE, repetitions=3, interval=10, due_date=NOW)
    card = await store.get("global:all:pear")
    lapsed = await manager.rate(card, Rating.AGAIN)
    assert lapsed.repetitions == 0
    assert lapsed.due_date == TOMORROW

    cards = await builder.collect(GLOBAL_SCOPE)

    assert [c.id for c in cards] == [lapsed.id]
    assert manager.due_state(lapsed).value == "new"
