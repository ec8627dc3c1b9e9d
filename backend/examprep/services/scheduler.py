"""
SM-2 review scheduling for flashcards.

The four study buttons (again / hard / good / easy) stand in for SM-2's
0–5 grades. `again` is a lapse: it resets the card and leaves the ease
factor alone. The other three map to qualities 3, 4 and 5.

Everything here is pure; callers persist the returned card.
"""
from __future__ import annotations

from datetime import datetime, timedelta

from examprep.errors import InvalidResponse
from examprep.models.flashcard import Flashcard, ReviewResponse
from examprep.services.scoring import round_half_up

MIN_EASE_FACTOR = 1.3

_RESPONSE_QUALITY = {
    ReviewResponse.HARD: 3,
    ReviewResponse.GOOD: 4,
    ReviewResponse.EASY: 5,
}
_CORRECT_RESPONSES = {ReviewResponse.GOOD, ReviewResponse.EASY}


def parse_response(response: ReviewResponse | str) -> ReviewResponse:
    try:
        return ReviewResponse(response)
    except ValueError:
        raise InvalidResponse() from None


def next_ease_factor(ease_factor: float, quality: int) -> float:
    """Standard SM-2 ease update, floored at MIN_EASE_FACTOR."""
    ease_factor += 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
    return max(MIN_EASE_FACTOR, ease_factor)


def review(
    card: Flashcard,
    response: ReviewResponse | str,
    now: datetime,
) -> Flashcard:
    """Apply one review to a card and return the updated copy.

    Raises InvalidResponse for anything but again / hard / good / easy.
    """
    response = parse_response(response)
    updated = card.model_copy(deep=True)
    perf = updated.performance
    sr = updated.spaced_repetition

    perf.total_reviews += 1
    perf.last_response = response
    if response in _CORRECT_RESPONSES:
        perf.correct_reviews += 1
        perf.streak_count += 1
    else:
        # hard breaks the streak but is not counted as a lapse below
        perf.streak_count = 0

    if response is ReviewResponse.AGAIN:
        sr.repetition = 0
        sr.interval = 1
    else:
        sr.repetition += 1
        if sr.repetition == 1:
            sr.interval = 1
        elif sr.repetition == 2:
            sr.interval = 6
        else:
            # uses the ease factor from before this review
            sr.interval = round_half_up(sr.interval * sr.ease_factor)
        sr.ease_factor = next_ease_factor(sr.ease_factor, _RESPONSE_QUALITY[response])

    sr.next_review = now + timedelta(days=sr.interval)
    sr.last_reviewed = now
    return updated


def due_for_review(card: Flashcard, as_of: datetime) -> bool:
    return card.is_active and card.spaced_repetition.next_review <= as_of
