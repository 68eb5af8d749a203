"""lexicard: scoped spaced-repetition scheduling for vocabulary cards."""

from lexicard.consts import VERSION

__version__ = VERSION
