"""
Domain models for vocabulary cards.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any

from .constants import DEFAULT_EASE_FACTOR, GRADUATED_REPETITIONS
from .scope import Scope, ScopeType, card_id, normalize_word


class CardStatus(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"

    @classmethod
    def for_repetitions(cls, repetitions: int) -> "CardStatus":
        """Status of a card that has been rated at least once."""
        return cls.LEARNING if repetitions < GRADUATED_REPETITIONS else cls.REVIEW


class DueState(str, Enum):
    NEW = "new"
    SCHEDULED = "scheduled"
    DUE = "due"
    OVERDUE = "overdue"

    @property
    def reviewable(self) -> bool:
        return self is not DueState.SCHEDULED


class Rating(int, Enum):
    """The four user-facing answer buttons."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @classmethod
    def parse(cls, value: "Rating | int | str") -> "Rating":
        """Accept a Rating, its number (1-4) or its name ("good")."""
        if isinstance(value, Rating):
            return value
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls(int(text))
            try:
                return cls[text.upper()]
            except KeyError:
                raise ValueError(f"Unknown rating: {value!r}") from None
        return cls(value)


@dataclass(frozen=True)
class SchedulerUpdate:
    """
    Fields produced by one SM-2 step.

    Attributes:
        repetitions: Consecutive successful reviews since the last lapse.
        interval: Days until the next review (0 = again in this session).
        ease_factor: New ease factor, never below the floor.
        due_date: Local midnight of today plus `interval` days.
        status: learning or review, derived from repetitions.
    """

    repetitions: int
    interval: int
    ease_factor: float
    due_date: datetime
    status: CardStatus


@dataclass
class Card:
    """
    A reviewable vocabulary item owned by one scope.

    `id` and `scope_key` are derived from (scope, word) and must not be
    reassigned; build cards through `Card.create`.
    """

    id: str
    word: str
    scope_type: ScopeType
    scope_id: str
    scope_key: str
    created_at: datetime
    due_date: datetime
    repetitions: int = 0
    interval: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    last_reviewed: datetime | None = None
    status: CardStatus = CardStatus.NEW

    @classmethod
    def create(cls, word: str, scope: Scope, now: datetime) -> "Card":
        word = normalize_word(word)
        if not word:
            raise ValueError("Card word must not be empty")
        return cls(
            id=card_id(word, scope),
            word=word,
            scope_type=scope.type,
            scope_id=scope.id,
            scope_key=scope.key,
            created_at=now,
            due_date=now,
        )

    @property
    def scope(self) -> Scope:
        return Scope(self.scope_type, self.scope_id)

    def with_update(self, update: SchedulerUpdate, reviewed_at: datetime) -> "Card":
        """Return a copy with the scheduler fields merged in."""
        return replace(
            self,
            repetitions=update.repetitions,
            interval=update.interval,
            ease_factor=update.ease_factor,
            due_date=update.due_date,
            status=update.status,
            last_reviewed=reviewed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible primitives (ISO timestamps)."""
        data = asdict(self)
        data["scope_type"] = self.scope_type.value
        data["status"] = self.status.value
        for key in ("created_at", "due_date", "last_reviewed"):
            value = data[key]
            data[key] = value.isoformat() if value is not None else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Card":
        last_reviewed = data.get("last_reviewed")
        return cls(
            id=data["id"],
            word=data["word"],
            scope_type=ScopeType(data["scope_type"]),
            scope_id=data["scope_id"],
            scope_key=data["scope_key"],
            created_at=parse_timestamp(data["created_at"]),
            due_date=parse_timestamp(data["due_date"]),
            repetitions=int(data.get("repetitions", 0)),
            interval=int(data.get("interval", 0)),
            ease_factor=float(data.get("ease_factor", DEFAULT_EASE_FACTOR)),
            last_reviewed=parse_timestamp(last_reviewed) if last_reviewed else None,
            status=CardStatus(data.get("status", CardStatus.NEW.value)),
        )


def parse_timestamp(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        return value
    # Legacy browser timestamps end in "Z"
    return datetime.fromisoformat(value.replace("Z", "+00:00"))
