# Domain Package
from .exceptions import CardNotFoundError, InvalidStateError, LexicardError, StorageError
from .models import Card, CardStatus, DueState, Rating, SchedulerUpdate
from .ports import CardStore
from .scope import GLOBAL_SCOPE, Scope, ScopeType, card_id, normalize_word, scope_key

__all__ = [
    "Card",
    "CardNotFoundError",
    "CardStatus",
    "CardStore",
    "DueState",
    "GLOBAL_SCOPE",
    "InvalidStateError",
    "LexicardError",
    "Rating",
    "SchedulerUpdate",
    "Scope",
    "ScopeType",
    "StorageError",
    "card_id",
    "normalize_word",
    "scope_key",
]
