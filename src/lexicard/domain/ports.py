"""
Ports (interfaces) for card persistence.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from .models import Card


class CardStore(ABC):
    """
    Port for durable card storage keyed by composite card id.

    Every method may raise StorageError. Implementations:
        - SqliteCardStore: SQLite file with scope_key and due_date indexes.
        - InMemoryCardStore: dict-backed, for tests and throwaway sessions.
    """

    @abstractmethod
    async def get(self, card_id: str) -> Card | None:
        """Return the card with this id, or None."""
        pass

    @abstractmethod
    async def get_all(self) -> list[Card]:
        """Return every card, in no particular order."""
        pass

    async def get_by_scope(self, scope_keys: Iterable[str]) -> list[Card]:
        """
        Return cards whose scope_key is one of `scope_keys`.

        Adapters with an index should override this; the default filters get_all().
        """
        wanted = set(scope_keys)
        return [card for card in await self.get_all() if card.scope_key in wanted]

    @abstractmethod
    async def upsert(self, card: Card) -> None:
        """Create or replace the card with `card.id`."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Remove all cards. Used only by bulk restore."""
        pass

    @abstractmethod
    async def get_schema_version(self) -> int:
        pass

    @abstractmethod
    async def set_schema_version(self, version: int) -> None:
        pass

    @abstractmethod
    async def get_legacy_records(self) -> list[dict[str, Any]]:
        """
        Read raw records from the legacy unscoped table.

        The legacy table is read-only from the core's point of view; migration
        never deletes or rewrites it.
        """
        pass

    async def close(self) -> None:
        """Release underlying resources. No-op by default."""
        return None
