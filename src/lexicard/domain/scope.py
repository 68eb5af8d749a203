"""
Review scopes and card identity.

A scope names the context a card was collected in: a specific chat,
a specific document, or the global pool. Card ids are derived from
(scope, word) and never reassigned.
"""

from dataclasses import dataclass
from enum import Enum

from .constants import GLOBAL_SCOPE_ID, SCOPE_SEPARATOR


class ScopeType(str, Enum):
    GLOBAL = "global"
    CHAT = "chat"
    DOCUMENT = "document"


def normalize_word(word: str) -> str:
    """Trim and lower-case a word token."""
    return word.strip().lower()


def scope_key(scope_type: ScopeType | str, scope_id: str | None = None) -> str:
    """
    Build the composite key for a scope.

    Global scopes always map to "global:all"; other scopes fall back to the
    sentinel id when none is given.
    """
    scope_type = ScopeType(scope_type)
    if scope_type is ScopeType.GLOBAL:
        return f"{ScopeType.GLOBAL.value}{SCOPE_SEPARATOR}{GLOBAL_SCOPE_ID}"
    return f"{scope_type.value}{SCOPE_SEPARATOR}{scope_id or GLOBAL_SCOPE_ID}"


@dataclass(frozen=True)
class Scope:
    """A review context. Use the classmethods rather than the constructor."""

    type: ScopeType
    id: str = GLOBAL_SCOPE_ID

    def __post_init__(self):
        # frozen: coerce through object.__setattr__
        object.__setattr__(self, "type", ScopeType(self.type))
        if self.type is ScopeType.GLOBAL or not self.id:
            object.__setattr__(self, "id", GLOBAL_SCOPE_ID)
        elif SCOPE_SEPARATOR in self.id:
            # Card ids are <type>:<id>:<word>
            raise ValueError(f"Scope id must not contain {SCOPE_SEPARATOR!r}: {self.id!r}")

    @classmethod
    def global_(cls) -> "Scope":
        return cls(ScopeType.GLOBAL, GLOBAL_SCOPE_ID)

    @classmethod
    def chat(cls, chat_id: str) -> "Scope":
        return cls(ScopeType.CHAT, chat_id)

    @classmethod
    def document(cls, document_id: str) -> "Scope":
        return cls(ScopeType.DOCUMENT, document_id)

    @classmethod
    def parse(cls, text: str | None) -> "Scope":
        """
        Parse "global", "chat:<id>" or "document:<id>".

        Raises ValueError for unknown scope types and for ids containing ":".
        """
        if not text:
            return cls.global_()
        kind, _, ident = text.strip().partition(SCOPE_SEPARATOR)
        try:
            scope_type = ScopeType(kind.lower())
        except ValueError:
            raise ValueError(f"Unknown scope type: {kind!r}") from None
        if scope_type is ScopeType.GLOBAL:
            return cls.global_()
        return cls(scope_type, ident or GLOBAL_SCOPE_ID)

    @property
    def key(self) -> str:
        return scope_key(self.type, self.id)

    @property
    def is_global(self) -> bool:
        return self.type is ScopeType.GLOBAL

    def __str__(self) -> str:
        return self.key


GLOBAL_SCOPE = Scope.global_()


def card_id(word: str, scope: Scope) -> str:
    """Composite card id: scope key plus the normalized word."""
    return f"{scope.key}{SCOPE_SEPARATOR}{normalize_word(word)}"
