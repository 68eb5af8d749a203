"""
Queue builder for scoped review sessions.

Builds review queues by:
1. Selecting the requested scope's cards plus global cards
2. Keeping only cards classified new, due or overdue
3. Shuffling uniformly at random
"""

import logging
import random
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from lexicard.application.due_state import DueStateCache, classify
from lexicard.domain.exceptions import InvalidStateError
from lexicard.domain.models import Card, DueState
from lexicard.domain.ports import CardStore
from lexicard.domain.scope import GLOBAL_SCOPE, Scope

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


@dataclass
class SessionStats:
    """Counters for the session header line."""

    new_count: int  # cards never passed (repetitions == 0) at open time
    review_count: int  # everything else at open time
    reviewed: int  # successful ratings so far
    remaining: int  # queued cards, including the active one


def eligible_scope_keys(scope: Scope) -> list[str]:
    """A scope always sees its own cards; non-global scopes also see global cards."""
    if scope.is_global:
        return [scope.key]
    return [scope.key, GLOBAL_SCOPE.key]


class ReviewSession:
    """
    An ordered, consumable queue of cards for one scope.

    Holds no external references beyond its queue: abandoning or closing a
    session has no persisted side effect.
    """

    def __init__(self, scope: Scope, cards: list[Card]):
        self.id = str(uuid.uuid4())
        self.scope = scope
        self._queue: deque[Card] = deque(cards)
        self._current: Card | None = None
        self._exhausted = False
        self._closed = False
        self.reviewed = 0
        self.new_count = sum(1 for c in cards if c.repetitions == 0)
        self.review_count = len(cards) - self.new_count

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def current(self) -> Card | None:
        """The card handed out by next() and not yet rated."""
        return self._current

    @property
    def closed(self) -> bool:
        return self._closed

    def is_finished(self) -> bool:
        return self._closed or (not self._queue and self._current is None)

    def next(self) -> Card | None:
        """
        Remove the head of the queue and make it the active card.

        Returns None (and marks the session exhausted) once the queue is empty.

        Raises:
            InvalidStateError: if the session is closed or already exhausted,
                or if the active card has not been rated yet.
        """
        if self._closed or self._exhausted:
            raise InvalidStateError(f"Review session {self.id} is already finished")
        if self._current is not None:
            raise InvalidStateError(
                f"Card {self._current.id!r} must be rated before requesting the next one"
            )
        if not self._queue:
            self._exhausted = True
            return None
        self._current = self._queue.popleft()
        return self._current

    def complete(self, updated: Card) -> None:
        """
        Advance past the active card after its rating was persisted.

        Cards rescheduled with a zero interval come back at the end of this session.
        """
        if self._current is None:
            raise InvalidStateError("No active card to complete")
        if updated.id != self._current.id:
            raise InvalidStateError(
                f"Completed card {updated.id!r} is not the active card {self._current.id!r}"
            )
        self._current = None
        self.reviewed += 1
        if updated.interval == 0:
            self._queue.append(updated)

    def close(self) -> None:
        self._queue.clear()
        self._current = None
        self._closed = True

    def stats(self) -> SessionStats:
        remaining = len(self._queue) + (1 if self._current is not None else 0)
        return SessionStats(
            new_count=self.new_count,
            review_count=self.review_count,
            reviewed=self.reviewed,
            remaining=remaining,
        )


class ReviewQueueBuilder:
    """Assembles review sessions from the card store."""

    def __init__(
        self,
        store: CardStore,
        clock: Clock,
        rng: random.Random | None = None,
        cache: DueStateCache | None = None,
    ):
        """
        Args:
            store: Card storage port.
            clock: Wall clock; injected so date rules are testable.
            rng: Random source for shuffling; seed it for reproducible queues.
            cache: Optional due-state cache shared with the lifecycle manager.
        """
        self._store = store
        self._clock = clock
        self._rng = rng or random.Random()
        self._cache = cache

    def _classify(self, card: Card, now: datetime) -> DueState:
        if self._cache is not None:
            return self._cache.get(card, now)
        return classify(card, now)

    async def collect(self, scope: Scope) -> list[Card]:
        """Cards of `scope` (plus global cards) that are reviewable now, unshuffled."""
        now = self._clock()
        candidates = await self._store.get_by_scope(eligible_scope_keys(scope))
        return [card for card in candidates if self._classify(card, now).reviewable]

    async def open(self, scope: Scope) -> ReviewSession:
        """
        Open a review session for `scope`.

        Raises:
            StorageError: if the store cannot be read. No session is created.
        """
        cards = await self.collect(scope)
        self._rng.shuffle(cards)
        session = ReviewSession(scope, cards)
        logger.info(
            f"Opened review {session.id} for {scope.key}: "
            f"{session.new_count} new, {session.review_count} review"
        )
        return session
