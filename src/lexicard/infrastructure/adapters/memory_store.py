"""
In-memory card store.

Implements CardStore with plain dicts. Used by tests and by the
`memory` backend for throwaway sessions.
"""

import copy
from collections.abc import Iterable
from typing import Any

from lexicard.domain.models import Card
from lexicard.domain.ports import CardStore


class InMemoryCardStore(CardStore):
    """
    Dict-backed CardStore.

    Cards are copied on the way in and out so callers cannot mutate stored
    state behind the store's back, matching a durable backend.
    """

    def __init__(
        self,
        legacy_records: Iterable[dict[str, Any]] | None = None,
        schema_version: int = 0,
    ):
        self._cards: dict[str, Card] = {}
        self._legacy = [dict(r) for r in (legacy_records or [])]
        self._schema_version = schema_version

    async def get(self, card_id: str) -> Card | None:
        card = self._cards.get(card_id)
        return copy.copy(card) if card is not None else None

    async def get_all(self) -> list[Card]:
        return [copy.copy(c) for c in self._cards.values()]

    async def get_by_scope(self, scope_keys: Iterable[str]) -> list[Card]:
        wanted = set(scope_keys)
        return [copy.copy(c) for c in self._cards.values() if c.scope_key in wanted]

    async def upsert(self, card: Card) -> None:
        self._cards[card.id] = copy.copy(card)

    async def clear(self) -> None:
        self._cards.clear()

    async def get_schema_version(self) -> int:
        return self._schema_version

    async def set_schema_version(self, version: int) -> None:
        self._schema_version = version

    async def get_legacy_records(self) -> list[dict[str, Any]]:
        return [dict(r) for r in self._legacy]
