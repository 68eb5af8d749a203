"""
Card lifecycle service: creation, rating and due-state bookkeeping.

The only component that touches both the CardStore and the pure scheduler.
"""

import asyncio
import logging
from collections import Counter
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime

from lexicard.application import scheduler
from lexicard.application.due_state import DueStateCache
from lexicard.application.queue_builder import ReviewSession
from lexicard.domain.exceptions import CardNotFoundError, InvalidStateError
from lexicard.domain.models import Card, DueState, Rating, SchedulerUpdate
from lexicard.domain.ports import CardStore
from lexicard.domain.scope import Scope, card_id, normalize_word

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    """Default clock: timezone-aware local time."""
    return datetime.now().astimezone()


@dataclass
class AddResult:
    card: Card
    created: bool  # False when the card already existed in this scope


class CardLifecycleManager:
    """
    Application service for adding and rating cards.

    Follows Dependency Inversion: depends on the CardStore port and an injected
    clock, never on a concrete adapter or the global wall clock.
    """

    def __init__(
        self,
        store: CardStore,
        clock: Callable[[], datetime] = local_now,
        cache: DueStateCache | None = None,
    ):
        """
        Args:
            store: The repository (port) for cards.
            clock: Wall clock used for creation, rating and due dates.
            cache: Due-state cache; a fresh one is created if not provided.
        """
        self._store = store
        self._clock = clock
        self.cache = cache if cache is not None else DueStateCache()
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: Counter[str] = Counter()

    @asynccontextmanager
    async def _card_lock(self, cid: str) -> AsyncIterator[None]:
        """Serialize work on one card id; the lock is dropped once nobody holds or awaits it."""
        lock = self._locks.get(cid)
        if lock is None:
            lock = self._locks[cid] = asyncio.Lock()
        self._lock_users[cid] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[cid] -= 1
            if not self._lock_users[cid]:
                del self._lock_users[cid]
                del self._locks[cid]

    @property
    def store(self) -> CardStore:
        return self._store

    @property
    def clock(self) -> Callable[[], datetime]:
        return self._clock

    async def add(self, word: str, scope: Scope) -> AddResult:
        """
        Add `word` to `scope` unless it is already there.

        The same word may exist independently in a chat/document scope and
        in the global scope; those are different identities.

        Raises:
            ValueError: if the word is blank.
            StorageError: if the store fails.
        """
        normalized = normalize_word(word)
        if not normalized:
            raise ValueError("Cannot add an empty word")

        cid = card_id(normalized, scope)
        async with self._card_lock(cid):
            existing = await self._store.get(cid)
            if existing is not None:
                logger.debug(f"Card {cid} already exists; not adding")
                return AddResult(card=existing, created=False)

            card = Card.create(normalized, scope, self._clock())
            await self._store.upsert(card)

        self.cache.invalidate(card.scope_key, card.word)
        logger.info(f"Added card {cid}")
        return AddResult(card=card, created=True)

    async def rate(self, card: Card, rating: Rating | int | str) -> Card:
        """
        Apply a rating to `card` and persist the result.

        The card is re-read under a per-id lock so concurrent ratings of the
        same card apply one after the other.

        Raises:
            ValueError: for an unknown rating.
            CardNotFoundError: if the card is no longer in the store.
            StorageError: if reading or writing fails.
        """
        quality = scheduler.rating_to_quality(rating)

        async with self._card_lock(card.id):
            current = await self._store.get(card.id)
            if current is None:
                raise CardNotFoundError(card.id)

            now = self._clock()
            update = scheduler.apply(current, quality, now)
            updated = current.with_update(update, reviewed_at=now)
            await self._store.upsert(updated)

        self.cache.invalidate(updated.scope_key, updated.word)
        logger.info(
            f"Rated {updated.id} q={quality}: reps={updated.repetitions} "
            f"interval={updated.interval}d ease={updated.ease_factor:.2f}"
        )
        return updated

    async def rate_current(self, session: ReviewSession, rating: Rating | int | str) -> Card:
        """
        Rate the session's active card, then advance the session.

        The session only advances after the write succeeds; on StorageError the
        active card stays in place so the caller can retry or abandon.

        Raises:
            InvalidStateError: if the session has no active card.
        """
        if session.current is None:
            raise InvalidStateError("No active card to rate")
        updated = await self.rate(session.current, rating)
        session.complete(updated)
        return updated

    def due_state(self, card: Card, now: datetime | None = None) -> DueState:
        return self.cache.get(card, now or self._clock())

    def preview(self, card: Card) -> dict[Rating, SchedulerUpdate]:
        return scheduler.preview(card, self._clock())
