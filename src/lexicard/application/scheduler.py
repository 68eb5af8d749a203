"""
SM-2 scheduler with learning steps.

This is a pure computation module with no I/O. Quality scores follow the
classic 0-5 scale, but only four values are produced by the rating buttons:

    Again -> 0, Hard -> 2, Good -> 3, Easy -> 5
"""

import math
from datetime import datetime, timedelta

from lexicard.domain.constants import (
    DAYS_PER_MONTH,
    DEFAULT_EASE_FACTOR,
    EASY_BONUS,
    FIRST_EASY_INTERVAL,
    GRADUATED_REPETITIONS,
    GRADUATING_INTERVAL,
    LAPSE_EASE_PENALTY,
    MIN_EASE_FACTOR,
    MONTHS_PER_YEAR,
    PASSING_QUALITY,
)
from lexicard.domain.models import Card, CardStatus, Rating, SchedulerUpdate

QUALITY_BY_RATING: dict[Rating, int] = {
    Rating.AGAIN: 0,
    Rating.HARD: 2,
    Rating.GOOD: 3,
    Rating.EASY: 5,
}

VALID_QUALITIES = frozenset(QUALITY_BY_RATING.values())


def rating_to_quality(rating: Rating | int | str) -> int:
    """Map a user-facing rating to its SM-2 quality score."""
    return QUALITY_BY_RATING[Rating.parse(rating)]


def midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def round_half_up(value: float) -> int:
    # round() would use banker's rounding: round(2.5) == 2
    return math.floor(value + 0.5)


def next_ease_factor(ease_factor: float, quality: int) -> float:
    if quality < PASSING_QUALITY:
        return max(MIN_EASE_FACTOR, ease_factor - LAPSE_EASE_PENALTY)
    miss = 5 - quality
    return max(MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))


def apply(card: Card, quality: int, today: datetime) -> SchedulerUpdate:
    """
    Compute the scheduling fields that follow a review of `card`.

    Args:
        card: Current card state (only repetitions, interval, ease_factor are read).
        quality: SM-2 quality, one of 0, 2, 3, 5.
        today: Review time; the due date is anchored to its midnight.

    Returns:
        SchedulerUpdate with repetitions, interval, ease factor, due date and status.

    Raises:
        ValueError: for a quality outside {0, 2, 3, 5}.
    """
    if quality not in VALID_QUALITIES:
        raise ValueError(f"quality must be one of {sorted(VALID_QUALITIES)}, got {quality}")

    repetitions = card.repetitions or 0
    interval = card.interval or 0
    ease_factor = card.ease_factor or DEFAULT_EASE_FACTOR

    new_ease = next_ease_factor(ease_factor, quality)

    if quality < PASSING_QUALITY:
        # Lapse: new cards come back this session, learned cards tomorrow.
        # Hard (2) is below the pass mark, so it always lands here.
        new_repetitions = 0
        new_interval = 0 if repetitions == 0 else 1
    elif repetitions == 0:
        if quality == 5:
            new_repetitions, new_interval = GRADUATED_REPETITIONS, FIRST_EASY_INTERVAL
        else:
            new_repetitions, new_interval = 1, 1
    elif repetitions == 1:
        if quality == 5:
            new_interval = round_half_up(interval * new_ease * EASY_BONUS)
        else:
            new_interval = GRADUATING_INTERVAL
        new_repetitions = GRADUATED_REPETITIONS
    else:
        if quality == 5:
            new_interval = round_half_up(interval * new_ease * EASY_BONUS)
        else:
            new_interval = round_half_up(interval * new_ease)
        new_repetitions = repetitions + 1

    return SchedulerUpdate(
        repetitions=new_repetitions,
        interval=new_interval,
        ease_factor=new_ease,
        due_date=midnight(today) + timedelta(days=new_interval),
        status=CardStatus.for_repetitions(new_repetitions),
    )


def apply_rating(card: Card, rating: Rating | int | str, today: datetime) -> SchedulerUpdate:
    return apply(card, rating_to_quality(rating), today)


def preview(card: Card, today: datetime) -> dict[Rating, SchedulerUpdate]:
    """What each rating button would do to `card`, without persisting anything."""
    return {rating: apply(card, quality, today) for rating, quality in QUALITY_BY_RATING.items()}


def format_interval(days: int | None) -> str:
    """Human label for an interval: <1d, 1 day, 12 days, 3 months, 2 years."""
    if not days or days < 1:
        return "<1d"
    if days == 1:
        return "1 day"
    if days < DAYS_PER_MONTH:
        return f"{days} days"
    months = round_half_up(days / DAYS_PER_MONTH)
    if months == 1:
        return "1 month"
    if months < MONTHS_PER_YEAR:
        return f"{months} months"
    years = round_half_up(months / MONTHS_PER_YEAR)
    return "1 year" if years == 1 else f"{years} years"
