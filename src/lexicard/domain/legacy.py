"""
Conversion of legacy (pre-scope) card records.

Legacy records were keyed by word alone and optionally carried a chat id:

    {"word": "apple", "chatId": "1712", "dueDate": "...", "repetitions": 1, ...}

Pure functions only; the migration runner lives in the application layer.
"""

from datetime import datetime
from typing import Any

from .constants import DEFAULT_EASE_FACTOR, MIN_EASE_FACTOR
from .models import Card, CardStatus, parse_timestamp
from .scope import Scope, card_id, normalize_word


class MalformedLegacyRecord(ValueError):
    """A legacy record that cannot be converted (e.g. missing word)."""


def legacy_scope(record: dict[str, Any]) -> Scope:
    """Chat-associated records keep their chat; everything else becomes global."""
    chat_id = record.get("chatId")
    if chat_id:
        return Scope.chat(str(chat_id))
    return Scope.global_()


def card_from_legacy(record: dict[str, Any], now: datetime) -> Card:
    """
    Convert one legacy record into a scoped Card.

    Missing scheduling fields fall back to new-card defaults, and timestamps
    fall back to `now`.

    Raises:
        MalformedLegacyRecord: if the record has no usable word.
    """
    raw_word = record.get("word")
    word = normalize_word(raw_word) if isinstance(raw_word, str) else ""
    if not word:
        raise MalformedLegacyRecord(f"Legacy record has no word: {record!r}")

    scope = legacy_scope(record)
    repetitions = max(0, int(record.get("repetitions") or 0))
    ease_factor = max(MIN_EASE_FACTOR, float(record.get("easeFactor") or DEFAULT_EASE_FACTOR))

    status = record.get("status")
    if status not in {s.value for s in CardStatus}:
        status = CardStatus.NEW if repetitions == 0 else CardStatus.for_repetitions(repetitions)

    last_reviewed = record.get("lastReviewed")
    return Card(
        id=card_id(word, scope),
        word=word,
        scope_type=scope.type,
        scope_id=scope.id,
        scope_key=scope.key,
        created_at=parse_timestamp(record["createdAt"]) if record.get("createdAt") else now,
        due_date=parse_timestamp(record["dueDate"]) if record.get("dueDate") else now,
        repetitions=repetitions,
        interval=max(0, int(record.get("interval") or 0)),
        ease_factor=ease_factor,
        last_reviewed=parse_timestamp(last_reviewed) if last_reviewed else None,
        status=CardStatus(status),
    )
