"""Exception hierarchy shared by every layer."""


class LexicardError(Exception):
    """Base class for lexicard errors."""


class StorageError(LexicardError):
    """
    Durable storage failed.

    Never retried: the caller logs it and surfaces it so review state
    cannot silently diverge from what the user sees.
    """


class InvalidStateError(LexicardError):
    """A caller broke the session contract (e.g. rating with no active card)."""


class CardNotFoundError(LexicardError):
    """The card to update is not in the store."""

    def __init__(self, card_id: str):
        super().__init__(f"Card not found: {card_id}")
        self.card_id = card_id
