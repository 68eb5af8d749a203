"""
Backup export and restore.

Backups are JSON documents validated with pydantic so a damaged or foreign
file is rejected before anything is written to the store.
"""

import logging
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from lexicard.domain.constants import (
    DEFAULT_EASE_FACTOR,
    MIN_EASE_FACTOR,
    SCHEMA_VERSION,
    SCOPE_SEPARATOR,
)
from lexicard.domain.models import Card, CardStatus
from lexicard.domain.ports import CardStore
from lexicard.domain.scope import Scope, ScopeType, card_id, normalize_word

logger = logging.getLogger(__name__)


class CardRecord(BaseModel):
    id: str
    word: str = Field(min_length=1)
    scope_type: ScopeType
    scope_id: str
    scope_key: str
    created_at: datetime
    due_date: datetime
    repetitions: int = Field(default=0, ge=0)
    interval: int = Field(default=0, ge=0)
    ease_factor: float = Field(default=DEFAULT_EASE_FACTOR, ge=MIN_EASE_FACTOR)
    last_reviewed: datetime | None = None
    status: CardStatus = CardStatus.NEW

    @field_validator("scope_id")
    @classmethod
    def no_separator(cls, v: str) -> str:
        if SCOPE_SEPARATOR in v:
            raise ValueError(f"scope_id must not contain {SCOPE_SEPARATOR!r}")
        return v

    @classmethod
    def from_card(cls, card: Card) -> "CardRecord":
        return cls(**card.to_dict())

    def to_card(self) -> Card:
        # Identity is recomputed; a hand-edited id cannot break the invariant
        scope = Scope(self.scope_type, self.scope_id)
        word = normalize_word(self.word)
        return Card(
            id=card_id(word, scope),
            word=word,
            scope_type=scope.type,
            scope_id=scope.id,
            scope_key=scope.key,
            created_at=self.created_at,
            due_date=self.due_date,
            repetitions=self.repetitions,
            interval=self.interval,
            ease_factor=self.ease_factor,
            last_reviewed=self.last_reviewed,
            status=self.status,
        )


class CardBackup(BaseModel):
    schema_version: int = SCHEMA_VERSION
    exported_at: datetime
    cards: list[CardRecord] = Field(default_factory=list)


async def export_cards(store: CardStore, now: datetime) -> CardBackup:
    cards = sorted(await store.get_all(), key=lambda c: c.id)
    return CardBackup(exported_at=now, cards=[CardRecord.from_card(c) for c in cards])


async def import_cards(store: CardStore, backup: CardBackup, replace: bool = False) -> int:
    """
    Restore cards from a backup, upserting by id.

    Args:
        store: Destination store.
        backup: Parsed backup document.
        replace: Clear the store first instead of merging.

    Returns:
        Number of cards written.
    """
    if replace:
        logger.warning("Clearing card store before restore")
        await store.clear()

    count = 0
    for record in backup.cards:
        await store.upsert(record.to_card())
        count += 1
    logger.info(f"Restored {count} card(s)")
    return count


def write_backup(backup: CardBackup, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(backup.model_dump_json(indent=2), encoding="utf-8")


def read_backup(path: Path) -> CardBackup:
    """Raises pydantic.ValidationError for malformed files."""
    return CardBackup.model_validate_json(path.read_text(encoding="utf-8"))
