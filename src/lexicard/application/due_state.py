"""
Due-state classification and its read-through cache.

`classify` is pure; `DueStateCache` memoizes it per card until the next
instant at which the answer could change, and is invalidated on every write.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from lexicard.application.scheduler import midnight
from lexicard.domain.constants import OVERDUE_AFTER_SECONDS, SCOPE_SEPARATOR
from lexicard.domain.models import Card, DueState
from lexicard.domain.scope import normalize_word

logger = logging.getLogger(__name__)

OVERDUE_AFTER = timedelta(seconds=OVERDUE_AFTER_SECONDS)


def is_due(card: Card, now: datetime) -> bool:
    """Day-granularity check: due on or after the calendar day of due_date."""
    return midnight(card.due_date) <= midnight(now)


def classify(card: Card, now: datetime) -> DueState:
    """
    Classify a card relative to `now`.

    Not due -> NEW (never reviewed successfully) or SCHEDULED.
    Due -> OVERDUE when more than 24h past due_date, otherwise DUE.
    """
    if not is_due(card, now):
        return DueState.NEW if card.repetitions == 0 else DueState.SCHEDULED
    if now - card.due_date > OVERDUE_AFTER:
        return DueState.OVERDUE
    return DueState.DUE


def valid_until(card: Card, state: DueState) -> datetime | None:
    """Last instant the classification holds without a write; None means indefinitely."""
    if state in (DueState.NEW, DueState.SCHEDULED):
        # Flips to due at the start of the due day
        return midnight(card.due_date) - timedelta(microseconds=1)
    if state is DueState.DUE:
        return card.due_date + OVERDUE_AFTER
    return None


@dataclass
class _Entry:
    state: DueState
    valid_until: datetime | None
    # Card fields the state was computed from
    basis: tuple[datetime, int]


class DueStateCache:
    """
    Cache of card id -> DueState.

    Derived data only: it is always safe to clear. Owners must call
    `invalidate` whenever a card is added or rated.
    """

    def __init__(self):
        self._entries: dict[str, _Entry] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, card: Card, now: datetime) -> DueState:
        entry = self._entries.get(card.id)
        basis = (card.due_date, card.repetitions)
        if (
            entry is not None
            and entry.basis == basis
            and (entry.valid_until is None or now <= entry.valid_until)
        ):
            self.hits += 1
            return entry.state

        self.misses += 1
        state = classify(card, now)
        self._entries[card.id] = _Entry(state, valid_until(card, state), basis)
        return state

    def invalidate(self, scope_key: str, word: str) -> None:
        """Drop the entry for one (scope, word) pair."""
        key = f"{scope_key}{SCOPE_SEPARATOR}{normalize_word(word)}"
        if self._entries.pop(key, None) is not None:
            logger.debug(f"Invalidated due state for {key}")

    def invalidate_scope(self, scope_key: str) -> None:
        """Drop every entry belonging to a scope."""
        prefix = f"{scope_key}{SCOPE_SEPARATOR}"
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug(f"Invalidated {len(stale)} due states in {scope_key}")

    def clear(self) -> None:
        self._entries.clear()
